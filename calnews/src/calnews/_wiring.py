"""Helper utilities bridging the CLI with runtime subsystems.

What:
  Build the dispatch gate from the runtime configuration and compute how long
  the watch loop sleeps between polls.

Why:
  Keeping construction and timing out of :mod:`calnews.cli` keeps the command
  bodies short and lets tests replace a single factory.

Interfaces:
  ``build_gate``, ``schedule_path``, ``poll_delay``, ``exponential_backoff``.

Invariants & Safety:
  - ``exponential_backoff`` clamps values between the configured base and cap
    to avoid unbounded sleep times.
"""
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Optional

from .accounts import AccountLocator
from .config.cron import seconds_until_next
from .config.schedule_store import ScheduleStore
from .config.schema import RuntimeConfig
from .core.gate import DispatchGate
from .mail.dispatcher import SmtpDispatcher


def schedule_path(runtime: RuntimeConfig) -> Path:
    """Return where ``schedule.yaml`` lives for ``runtime``."""

    return Path(runtime.paths.state_dir) / "schedule.yaml"


def build_gate(runtime: RuntimeConfig) -> DispatchGate:
    """Assemble a :class:`DispatchGate` from the runtime configuration.

    What:
      Wire the schedule store, the SMTP dispatcher, and the account locator
      with the configured calendars and time zone.

    Args:
      runtime: Validated runtime configuration.

    Returns:
      Ready-to-poll gate.
    """

    store = ScheduleStore(schedule_path(runtime))
    dispatcher = SmtpDispatcher(runtime.smtp, body=runtime.newsletter.body)
    locator = AccountLocator(Path(runtime.paths.accounts_file))
    return DispatchGate(
        store,
        dispatcher,
        locator,
        required_calendars=runtime.required_calendars(),
        tz=runtime.zone,
    )


def poll_delay(runtime: RuntimeConfig, *, now: Optional[datetime] = None) -> float:
    """Seconds until the next ``poll.cron`` tick."""

    return seconds_until_next(runtime.poll.cron, now=now)


def exponential_backoff(
    *,
    base: int = 5,
    factor: float = 2.0,
    cap: int = 300,
    failures: int = 0,
) -> int:
    """Return an exponential backoff delay for ``failures`` retries.

    What:
      Calculate ``base * factor**failures`` and clamp it to ``cap`` while
      keeping the result at least ``base``.

    Args:
      base: Smallest delay returned.
      factor: Multiplicative growth factor.
      cap: Maximum delay permitted.
      failures: Number of consecutive failures (zero-indexed).

    Returns:
      Delay in whole seconds.
    """

    delay = base * (factor ** max(failures, 0))
    if delay < base:
        delay = base
    if delay > cap:
        delay = cap
    return int(delay)
