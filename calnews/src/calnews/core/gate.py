"""Poll-driven dispatch policy around the recurrence resolver.

What:
  Decide on each poll whether the newsletter is due, send it when it is, and
  record the dispatch time only after the send succeeded.

Why:
  The resolver is a calculator; something has to own the side effects. A
  failed lookup or SMTP error must leave the execution state untouched so the
  same occurrence is retried on the next poll, and two overlapping polls must
  never send twice.

How:
  :class:`DispatchGate` reads the rule and last execution time from the
  :class:`~calnews.config.schedule_store.ScheduleStore`, asks
  :func:`~calnews.core.recurrence.next_fire_instant` for the next instant, and
  when that instant is not in the future locates a sender account and calls the
  dispatcher. A non-blocking :class:`threading.Lock` guards the send.

Interfaces:
  :class:`DispatchGate`, :class:`PollOutcome`.

Invariants & Safety:
  - ``last_fired_at`` is written only after :meth:`Dispatcher.send` returned,
    and it holds the actual dispatch time rather than the computed instant,
    so a scheduler that was down for a week sends once instead of catching
    up every missed occurrence.
  - :class:`~calnews.config.schema.ConfigurationError` propagates. Account
    lookup failures (including an unreadable ``accounts.yaml``) and send
    failures become a ``failed`` outcome.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Iterable, Literal, Optional

from ..accounts import AccountLocator, AccountLookupError
from ..config.schedule_store import ScheduleStore
from ..mail.dispatcher import DispatchFailure, Dispatcher
from ..utils.logging import JsonLogger, get_logger
from .recurrence import REFERENCE_ZONE, next_fire_instant


OutcomeStatus = Literal["disabled", "pending", "sent", "failed", "busy"]


@dataclass(frozen=True)
class PollOutcome:
    """Result of one gate evaluation.

    Attributes:
      status: What the poll did.
      next_fire_at: Instant the rule resolved to, when it was evaluated.
      fired_at: Dispatch time recorded on success.
      error: Failure description for ``failed`` outcomes.
    """

    status: OutcomeStatus
    next_fire_at: Optional[datetime] = None
    fired_at: Optional[datetime] = None
    error: Optional[str] = None


def _current(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        raise ValueError("now must be timezone-aware")
    return now


class DispatchGate:
    """Serialised, retry-safe newsletter dispatch.

    What:
      Couples the schedule store, a dispatcher, and the account locator.

    How:
      Every public method takes the dispatch lock without blocking; a caller
      that finds it held gets a ``busy`` outcome and tries again next poll.
    """

    def __init__(
        self,
        store: ScheduleStore,
        dispatcher: Dispatcher,
        locator: AccountLocator,
        *,
        required_calendars: Iterable[str] = (),
        tz: tzinfo = REFERENCE_ZONE,
        logger: Optional[JsonLogger] = None,
    ):
        self._store = store
        self._dispatcher = dispatcher
        self._locator = locator
        self._required = list(required_calendars)
        self._tz = tz
        self._logger = logger or get_logger("calnews.gate")
        self._lock = threading.Lock()

    def next_fire_at(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """Resolve the next instant from the stored rule and execution state."""

        rule = self._store.load()
        return next_fire_instant(rule, self._store.get_last_fired_at(), now, tz=self._tz)

    def poll(self, now: Optional[datetime] = None) -> PollOutcome:
        """Evaluate the schedule once and dispatch if it is due.

        What:
          Implements one tick of the scheduler loop.

        How:
          Resolve the next instant; ``None`` means disabled, a future instant
          means pending. Otherwise locate an account, send, and persist
          ``now`` as the new last execution time.

        Args:
          now: Current time; defaults to the wall clock.

        Returns:
          A :class:`PollOutcome` describing what happened.

        Raises:
          ConfigurationError: If the stored rule cannot be resolved.
          ValueError: If ``now`` is naive.
        """

        current = _current(now)
        if not self._lock.acquire(blocking=False):
            self._logger.warning("poll_skipped_busy")
            return PollOutcome(status="busy")
        try:
            due_at = self.next_fire_at(current)
            if due_at is None:
                return PollOutcome(status="disabled")
            if due_at > current:
                return PollOutcome(status="pending", next_fire_at=due_at)
            return self._dispatch(current, due_at=due_at, record=True)
        finally:
            self._lock.release()

    def send_now(self, now: Optional[datetime] = None) -> PollOutcome:
        """Send the newsletter immediately without touching execution state."""

        current = _current(now)
        if not self._lock.acquire(blocking=False):
            self._logger.warning("send_now_skipped_busy")
            return PollOutcome(status="busy")
        try:
            self._logger.info("send_now_requested")
            return self._dispatch(current, due_at=None, record=False)
        finally:
            self._lock.release()

    def _dispatch(self, now: datetime, *, due_at: Optional[datetime], record: bool) -> PollOutcome:
        rule = self._store.load()
        try:
            account = self._locator.find_account_with_calendar_access(self._required)
            self._dispatcher.send(rule.recipients, rule.subject, account=account)
        except (AccountLookupError, DispatchFailure) as exc:
            self._logger.error(
                "dispatch_failed",
                error=str(exc),
                kind=type(exc).__name__,
                due_at=due_at.isoformat() if due_at else None,
            )
            return PollOutcome(status="failed", next_fire_at=due_at, error=str(exc))
        if record:
            self._store.set_last_fired_at(now)
        self._logger.info(
            "dispatch_succeeded",
            account=account.name,
            recipients=rule.recipients,
            due_at=due_at.isoformat() if due_at else None,
            fired_at=now.isoformat(),
        )
        return PollOutcome(status="sent", next_fire_at=due_at, fired_at=now)
