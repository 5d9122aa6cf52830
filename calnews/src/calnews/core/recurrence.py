"""Next-occurrence resolution for newsletter recurrence rules.

What:
  Map a :class:`~calnews.config.schema.RecurrenceRule`, the instant the
  newsletter last went out, and the current time to the next instant the rule
  is satisfied (or ``None`` when the schedule is switched off).

Why:
  Everything else in calnews is plumbing around this calculation. Keeping it a
  pure function of its inputs makes every schedule reproducible from the
  stored document alone and lets tests pin exact calendar edge cases.

How:
  Anchor on the last execution (or midnight yesterday for a schedule that
  never ran), move into the reference time zone, advance by ``skip`` whole
  periods, position the date with the rule's qualifier using
  :class:`dateutil.relativedelta.relativedelta`, and finally stamp the rule's
  hour:minute onto the result.

Interfaces:
  :data:`REFERENCE_ZONE`, :func:`next_fire_instant`, :func:`iter_fire_instants`,
  :func:`nth_weekday_of_month`, :func:`last_day_of_month`.

Invariants:
  - ``interval == off`` always yields ``None``.
  - The result carries exactly the anchor hour:minute, zero seconds.
  - ``skip`` is applied before the positional qualifier.
  - Ordinal weekdays never leave the target month.
"""
from __future__ import annotations

from datetime import datetime, time, timedelta, tzinfo
from typing import Iterator, Optional
from zoneinfo import ZoneInfo

from dateutil.relativedelta import FR, MO, SA, SU, TH, TU, WE, relativedelta

from ..config.schema import ConfigurationError, IntervalKind, Month, Ordinal, RecurrenceRule, Weekday
from ..config.timestamps import anchor_clock


REFERENCE_ZONE = ZoneInfo("Europe/Berlin")

_WEEKDAYS = (MO, TU, WE, TH, FR, SA, SU)
_ORDINALS = {
    Ordinal.FIRST: 1,
    Ordinal.SECOND: 2,
    Ordinal.THIRD: 3,
    Ordinal.FOURTH: 4,
    Ordinal.LAST: -1,
}


def last_day_of_month(value: datetime) -> datetime:
    """Return ``value`` moved to the last day of its month.

    Computed as the first day of the following month minus one day, which
    covers every month length and leap years.
    """

    first_of_next = value + relativedelta(months=+1, day=1)
    return first_of_next - timedelta(days=1)


def nth_weekday_of_month(value: datetime, ordinal: Ordinal, weekday: Weekday) -> datetime:
    """Return the ``ordinal`` ``weekday`` of the month ``value`` falls in.

    ``first`` to ``fourth`` count from day 1; ``last`` counts back from the
    final day. Only the date changes; the clock time of ``value`` is kept.
    """

    marker = _WEEKDAYS[weekday.index]
    n = _ORDINALS[ordinal]
    if n > 0:
        return value + relativedelta(day=1, weekday=marker(+n))
    return last_day_of_month(value) + relativedelta(weekday=marker(-1))


def _interval(rule: RecurrenceRule) -> IntervalKind:
    try:
        return IntervalKind(rule.interval)
    except ValueError as exc:
        raise ConfigurationError("interval", f"unrecognised interval {rule.interval!r}") from exc


def _skip(rule: RecurrenceRule) -> int:
    skip = rule.skip
    if isinstance(skip, bool) or not isinstance(skip, int):
        raise ConfigurationError("skip", f"expected an integer, got {skip!r}")
    if skip < 0:
        raise ConfigurationError("skip", f"must not be negative, got {skip}")
    return skip


def _clock(rule: RecurrenceRule) -> time:
    if not rule.anchor_time:
        raise ConfigurationError("anchor_time", "required when the schedule is enabled")
    try:
        return anchor_clock(rule.anchor_time)
    except ValueError as exc:
        raise ConfigurationError("anchor_time", f"not an ISO8601 timestamp: {rule.anchor_time!r}") from exc


def _require_ordinal(rule: RecurrenceRule) -> Ordinal:
    if rule.ordinal is None:
        raise ConfigurationError("ordinal", f"required for {_interval(rule).value} schedules")
    try:
        return Ordinal(rule.ordinal)
    except ValueError as exc:
        raise ConfigurationError("ordinal", f"unrecognised ordinal {rule.ordinal!r}") from exc


def _require_weekday(rule: RecurrenceRule) -> Weekday:
    if rule.weekday is None:
        raise ConfigurationError("weekday", f"required for {_interval(rule).value} schedules")
    try:
        return Weekday(rule.weekday)
    except ValueError as exc:
        raise ConfigurationError("weekday", f"unrecognised weekday {rule.weekday!r}") from exc


def _require_month(rule: RecurrenceRule) -> Month:
    if rule.month is None:
        raise ConfigurationError("month", f"required for {_interval(rule).value} schedules")
    try:
        return Month(rule.month)
    except ValueError as exc:
        raise ConfigurationError("month", f"unrecognised month {rule.month!r}") from exc


def _shift_day_of_month(boundary: datetime, day_of_month: int) -> datetime:
    # 0 keeps the boundary; any other value moves day_of_month - 1 days from it.
    if day_of_month != 0:
        return boundary + timedelta(days=day_of_month - 1)
    return boundary


def _month_boundary(value: datetime, day_of_month: int) -> datetime:
    first = value + relativedelta(day=1)
    if day_of_month > 0:
        return first
    return last_day_of_month(first)


def _anchor(last_fired_at: Optional[datetime], now: Optional[datetime], tz: tzinfo) -> datetime:
    if last_fired_at is not None:
        if last_fired_at.tzinfo is None:
            raise ValueError("last_fired_at must be timezone-aware")
        return last_fired_at.astimezone(tz)
    current = (now or datetime.now(tz)).astimezone(tz)
    yesterday = current - timedelta(days=1)
    return yesterday.replace(hour=0, minute=0, second=0, microsecond=0)


def next_fire_instant(
    rule: RecurrenceRule,
    last_fired_at: Optional[datetime],
    now: Optional[datetime] = None,
    *,
    tz: tzinfo = REFERENCE_ZONE,
) -> Optional[datetime]:
    """Return the next instant at which ``rule`` fires.

    What:
      Resolve the single next occurrence after ``last_fired_at``. When the
      schedule never ran, resolution starts from midnight yesterday (relative
      to ``now``) so a fresh schedule can fire soon instead of a full period
      later.

    How:
      1. ``off`` returns ``None`` without looking at any other field.
      2. Validate ``skip``, ``anchor_time`` and the qualifiers the interval
         needs; invalid input raises before any date arithmetic.
      3. Convert the anchor into ``tz`` and advance it:

         - ``yearly``: +skip years, +1 year, ``ordinal`` ``weekday`` of
           ``month``.
         - ``yearly_dom``: +skip years, +1 year, first (``day_of_month > 0``)
           or last day of ``month``, then ``day_of_month - 1`` days.
         - ``monthly``: +skip months, ``ordinal`` ``weekday`` of next month.
         - ``monthly_dom``: +skip months, first/last day of next month, then
           ``day_of_month - 1`` days.
         - ``weekly``: +skip weeks, next ``weekday`` strictly after.
         - ``daily``: +skip days, next day.

      4. Replace the clock time with the anchor hour:minute.

    Args:
      rule: Recurrence rule to evaluate.
      last_fired_at: Aware instant of the last successful dispatch, or ``None``.
      now: Current time, used only when ``last_fired_at`` is ``None``.
      tz: Zone all calendar arithmetic happens in.

    Returns:
      Aware datetime in ``tz``, or ``None`` when the schedule is off.

    Raises:
      ConfigurationError: For an unknown interval, a negative skip, a missing
        or malformed anchor time, or a missing qualifier.
    """

    interval = _interval(rule)
    if interval is IntervalKind.OFF:
        return None
    skip = _skip(rule)
    clock = _clock(rule)

    t = _anchor(last_fired_at, now, tz)

    if interval is IntervalKind.YEARLY:
        ordinal, weekday, month = _require_ordinal(rule), _require_weekday(rule), _require_month(rule)
        t = t + relativedelta(years=skip) + relativedelta(years=1)
        t = nth_weekday_of_month(t + relativedelta(month=month.number, day=1), ordinal, weekday)
    elif interval is IntervalKind.YEARLY_DOM:
        month = _require_month(rule)
        t = t + relativedelta(years=skip) + relativedelta(years=1)
        t = _month_boundary(t + relativedelta(month=month.number, day=1), rule.day_of_month)
        t = _shift_day_of_month(t, rule.day_of_month)
    elif interval is IntervalKind.MONTHLY:
        ordinal, weekday = _require_ordinal(rule), _require_weekday(rule)
        t = t + relativedelta(months=skip)
        t = nth_weekday_of_month(t + relativedelta(months=1, day=1), ordinal, weekday)
    elif interval is IntervalKind.MONTHLY_DOM:
        t = t + relativedelta(months=skip)
        t = _month_boundary(t + relativedelta(months=1, day=1), rule.day_of_month)
        t = _shift_day_of_month(t, rule.day_of_month)
    elif interval is IntervalKind.WEEKLY:
        weekday = _require_weekday(rule)
        t = t + relativedelta(weeks=skip)
        t = t + relativedelta(days=1, weekday=_WEEKDAYS[weekday.index](+1))
    elif interval is IntervalKind.DAILY:
        t = t + relativedelta(days=skip) + relativedelta(days=1)

    return t.replace(hour=clock.hour, minute=clock.minute, second=0, microsecond=0)


def iter_fire_instants(
    rule: RecurrenceRule,
    last_fired_at: Optional[datetime],
    now: Optional[datetime] = None,
    *,
    tz: tzinfo = REFERENCE_ZONE,
) -> Iterator[datetime]:
    """Yield successive fire instants, each resolved from the previous one.

    Stops immediately for a disabled rule. Used to preview upcoming sends.
    """

    current = next_fire_instant(rule, last_fired_at, now, tz=tz)
    while current is not None:
        yield current
        current = next_fire_instant(rule, current, tz=tz)
