"""Conversions between persisted timestamp strings and aware datetimes.

What:
  Parse and format the ISO8601 strings stored in ``schedule.yaml`` (the last
  execution time and the rule's anchor time) and extract the clock time a rule
  fires at.

Why:
  The schedule editor emits browser-style timestamps (``...Z`` or
  ``+01:00``) while the store writes Python ISO strings. Keeping both
  directions here means the resolver only ever sees timezone-aware values.

Interfaces:
  :func:`parse_instant`, :func:`format_instant`, :func:`anchor_clock`.

Invariants:
  - Returned datetimes always carry tzinfo; naive input is read as UTC unless
    a zone is supplied.
  - :func:`anchor_clock` keeps hour and minute exactly as written, in the
    offset of the string itself.
"""
from __future__ import annotations

import re
from datetime import datetime, time, timezone, tzinfo
from typing import Optional


def parse_instant(text: str, tz: Optional[tzinfo] = None) -> datetime:
    """Parse an ISO8601 timestamp into an aware datetime.

    What:
      Accept the formats produced by :func:`format_instant` as well as the
      ``Z`` suffix emitted by JavaScript clients.

    How:
      Map a trailing ``Z`` to ``+00:00`` (``datetime.fromisoformat`` rejects it
      on older interpreters), then attach ``tz`` or UTC to naive values.
      Aware values are converted into ``tz`` when one is given.

    Args:
      text: Timestamp string.
      tz: Optional zone used for naive input and as conversion target.

    Returns:
      A timezone-aware :class:`datetime`.

    Raises:
      ValueError: If ``text`` is not an ISO8601 timestamp.
    """

    dt = datetime.fromisoformat(re.sub(r"Z$", "+00:00", text.strip()))
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz or timezone.utc)
    if tz is not None:
        return dt.astimezone(tz)
    return dt


def format_instant(value: datetime) -> str:
    """Serialise an aware datetime for persistence."""

    if value.tzinfo is None:
        raise ValueError("refusing to persist a naive datetime")
    return value.isoformat()


def anchor_clock(text: str) -> time:
    """Return the hour:minute a rule's ``anchor_time`` string designates.

    Seconds and sub-second fields of the string are ignored.
    """

    dt = datetime.fromisoformat(re.sub(r"Z$", "+00:00", text.strip()))
    return time(dt.hour, dt.minute)
