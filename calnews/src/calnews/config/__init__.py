"""Calnews configuration package.

What:
  Provide a single import surface for runtime configuration loading, schedule
  persistence, and the schema types shared with the resolver.

How:
  Re-export the loader helpers, the schedule store, and the Pydantic models.
  ``__all__`` is explicit so low-level modules stay private.

Interfaces:
  - load_runtime_config / reset_runtime_config
  - load_schedule / dump_schedule / ScheduleStore
  - RecurrenceRule / IntervalKind / Ordinal / Weekday / Month /
    RuntimeConfig / ScheduleDocument / ConfigurationError / ConfigLoadError
"""

from .loader import (
    ConfigLoadError,
    RuntimeConfigError,
    dump_schedule,
    load_runtime_config,
    load_schedule,
    reset_runtime_config,
)
from .schedule_store import ScheduleStore
from .schema import (
    ConfigurationError,
    IntervalKind,
    Month,
    Ordinal,
    RecurrenceRule,
    RuntimeConfig,
    ScheduleDocument,
    Weekday,
)

__all__ = [
    "ConfigLoadError",
    "RuntimeConfigError",
    "dump_schedule",
    "load_runtime_config",
    "load_schedule",
    "reset_runtime_config",
    "ScheduleStore",
    "ConfigurationError",
    "IntervalKind",
    "Month",
    "Ordinal",
    "RecurrenceRule",
    "RuntimeConfig",
    "ScheduleDocument",
    "Weekday",
]
