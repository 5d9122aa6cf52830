"""Cron helpers deciding when the watch loop wakes up.

What:
  Compute the next tick of the poll cron expression and how long the watch
  loop should sleep until then.

Why:
  The newsletter rule is evaluated on every tick; the tick cadence itself is an
  operator setting (``poll.cron``) and must behave the same on every host.

How:
  Wrap :mod:`croniter` with timezone-aware defaults, defaulting to UTC when the
  caller omits ``now``. Helpers accept explicit timestamps to simplify testing.

Interfaces:
  - :func:`next_run`: Calculate the next tick.
  - :func:`seconds_until_next`: Sleep duration for the watch loop.

Invariants:
  - All returned datetimes include timezone information (UTC by default).
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from croniter import croniter


def next_run(cron_expr: str, *, now: Optional[datetime] = None) -> datetime:
    """Return the next tick of ``cron_expr`` strictly after ``now``.

    Args:
      cron_expr: Cron syntax string specifying the poll cadence.
      now: Reference timestamp; defaults to the current UTC time.

    Returns:
      A timezone-aware datetime.
    """

    base = now or datetime.now(timezone.utc)
    next_time = croniter(cron_expr, base).get_next(datetime)
    # NOTE: croniter returns naive datetimes for naive bases.
    if next_time.tzinfo is None:
        next_time = next_time.replace(tzinfo=timezone.utc)
    return next_time


def seconds_until_next(cron_expr: str, *, now: Optional[datetime] = None) -> float:
    """Return how many seconds the watch loop should sleep.

    Never negative; a tick that is already due yields ``0.0``.
    """

    current = now or datetime.now(timezone.utc)
    delta = (next_run(cron_expr, now=current) - current).total_seconds()
    return max(delta, 0.0)
