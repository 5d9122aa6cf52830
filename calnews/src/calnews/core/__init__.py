"""Scheduling core: the recurrence resolver and the dispatch gate.

Interfaces:
  - next_fire_instant / iter_fire_instants / REFERENCE_ZONE: Pure resolution
    of a rule's next occurrence.
  - DispatchGate / PollOutcome: Caller-side policy that fires when due.
"""

from .gate import DispatchGate, PollOutcome
from .recurrence import REFERENCE_ZONE, iter_fire_instants, last_day_of_month, next_fire_instant, nth_weekday_of_month

__all__ = [
    "DispatchGate",
    "PollOutcome",
    "REFERENCE_ZONE",
    "iter_fire_instants",
    "last_day_of_month",
    "next_fire_instant",
    "nth_weekday_of_month",
]
