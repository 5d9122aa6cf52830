"""Unit tests for :class:`calnews.core.gate.DispatchGate`.

What:
  Verify the poll policy: disabled and pending polls do nothing, due polls
  send exactly once, and failures leave the execution state untouched so the
  same occurrence is retried.

How:
  Use the ``gate`` fixture (real schedule store and account locator in
  ``tmp_path``, in-memory dispatcher) and drive it with explicit ``now``
  values.
"""
from __future__ import annotations

import io
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from calnews.accounts import AccountLocator
from calnews.config.schedule_store import ScheduleStore
from calnews.config.schema import ConfigurationError, RecurrenceRule
from calnews.core.gate import DispatchGate
from calnews.utils.logging import JsonLogger

from fakes import FakeDispatcher, SentMail, log_lines, memory_logger


BERLIN = ZoneInfo("Europe/Berlin")


def _daily() -> RecurrenceRule:
    return RecurrenceRule(
        interval="daily",
        anchor_time="2024-01-01T09:00:00+01:00",
        subject="Daily agenda",
        recipients=["team@example.org", "boss@example.org"],
    )


def _berlin(*parts: int) -> datetime:
    return datetime(*parts, tzinfo=BERLIN)


def test_disabled_schedule_sends_nothing(gate: DispatchGate, dispatcher: FakeDispatcher) -> None:
    outcome = gate.poll(_berlin(2024, 5, 15, 9, 0))

    assert outcome.status == "disabled"
    assert dispatcher.attempts == 0


def test_pending_until_instant_reached(gate: DispatchGate, store: ScheduleStore, dispatcher: FakeDispatcher) -> None:
    store.save(_daily())
    store.set_last_fired_at(_berlin(2024, 5, 14, 9, 0))

    outcome = gate.poll(_berlin(2024, 5, 15, 8, 59))

    assert outcome.status == "pending"
    assert outcome.next_fire_at == _berlin(2024, 5, 15, 9, 0)
    assert dispatcher.attempts == 0


def test_due_poll_sends_and_records_dispatch_time(
    gate: DispatchGate, store: ScheduleStore, dispatcher: FakeDispatcher
) -> None:
    store.save(_daily())
    store.set_last_fired_at(_berlin(2024, 5, 14, 9, 0))
    now = _berlin(2024, 5, 15, 9, 0, 30)

    outcome = gate.poll(now)

    assert outcome.status == "sent"
    assert outcome.fired_at == now
    assert dispatcher.sent == [SentMail(["team@example.org", "boss@example.org"], "Daily agenda", "editor")]
    assert store.get_last_fired_at() == now


def test_second_poll_after_send_is_pending(gate: DispatchGate, store: ScheduleStore, dispatcher: FakeDispatcher) -> None:
    store.save(_daily())
    store.set_last_fired_at(_berlin(2024, 5, 14, 9, 0))
    gate.poll(_berlin(2024, 5, 15, 9, 0, 30))

    outcome = gate.poll(_berlin(2024, 5, 15, 9, 1))

    assert outcome.status == "pending"
    assert outcome.next_fire_at == _berlin(2024, 5, 16, 9, 0)
    assert len(dispatcher.sent) == 1


def test_missed_occurrences_send_once(gate: DispatchGate, store: ScheduleStore, dispatcher: FakeDispatcher) -> None:
    store.save(_daily())
    store.set_last_fired_at(_berlin(2024, 4, 1, 9, 0))

    assert gate.poll(_berlin(2024, 5, 15, 12, 0)).status == "sent"
    assert gate.poll(_berlin(2024, 5, 15, 12, 1)).status == "pending"
    assert len(dispatcher.sent) == 1


def test_never_ran_schedule_fires_today(gate: DispatchGate, store: ScheduleStore, dispatcher: FakeDispatcher) -> None:
    store.save(_daily())

    outcome = gate.poll(_berlin(2024, 5, 15, 10, 0))

    assert outcome.status == "sent"
    assert outcome.next_fire_at == _berlin(2024, 5, 15, 9, 0)


def test_dispatch_failure_keeps_state_and_retries(store: ScheduleStore, accounts_file: Path) -> None:
    dispatcher = FakeDispatcher(failures=1)
    gate = DispatchGate(
        store,
        dispatcher,
        AccountLocator(accounts_file, logger=memory_logger("calnews.accounts")),
        required_calendars=["team"],
        logger=memory_logger("calnews.gate"),
    )
    last = _berlin(2024, 5, 14, 9, 0)
    store.save(_daily())
    store.set_last_fired_at(last)

    failed = gate.poll(_berlin(2024, 5, 15, 9, 0))

    assert failed.status == "failed"
    assert failed.error == "relay unavailable"
    assert store.get_last_fired_at() == last

    retried = gate.poll(_berlin(2024, 5, 15, 9, 1))

    assert retried.status == "sent"
    assert dispatcher.sent[0].account == "viewer"


def test_no_suitable_account_fails_without_sending(
    store: ScheduleStore, dispatcher: FakeDispatcher, accounts_file: Path
) -> None:
    gate = DispatchGate(
        store,
        dispatcher,
        AccountLocator(accounts_file, logger=memory_logger("calnews.accounts")),
        required_calendars=["team", "secret"],
        logger=memory_logger("calnews.gate"),
    )
    store.save(_daily())

    outcome = gate.poll(_berlin(2024, 5, 15, 10, 0))

    assert outcome.status == "failed"
    assert "No suitable account found" in outcome.error
    assert dispatcher.attempts == 0
    assert store.get_last_fired_at() is None


def test_invalid_rule_propagates(gate: DispatchGate, store: ScheduleStore) -> None:
    store.save(RecurrenceRule(interval="weekly", anchor_time="2024-01-01T09:00:00+01:00"))

    with pytest.raises(ConfigurationError) as excinfo:
        gate.poll(_berlin(2024, 5, 15, 10, 0))

    assert excinfo.value.field == "weekday"


def test_overlapping_poll_is_busy(store: ScheduleStore, accounts_file: Path) -> None:
    nested: list = []
    dispatcher = FakeDispatcher(on_send=lambda: nested.append(gate.poll(_berlin(2024, 5, 15, 10, 0))))
    gate = DispatchGate(
        store,
        dispatcher,
        AccountLocator(accounts_file, logger=memory_logger("calnews.accounts")),
        logger=memory_logger("calnews.gate"),
    )
    store.save(_daily())

    outcome = gate.poll(_berlin(2024, 5, 15, 10, 0))

    assert outcome.status == "sent"
    assert [item.status for item in nested] == ["busy"]
    assert len(dispatcher.sent) == 1


def test_send_now_does_not_advance_schedule(gate: DispatchGate, store: ScheduleStore, dispatcher: FakeDispatcher) -> None:
    store.save(_daily())

    outcome = gate.send_now(_berlin(2024, 5, 15, 10, 0))

    assert outcome.status == "sent"
    assert len(dispatcher.sent) == 1
    assert store.get_last_fired_at() is None


def test_success_log_redacts_recipients(store: ScheduleStore, dispatcher: FakeDispatcher, accounts_file: Path) -> None:
    logger = JsonLogger(stream=io.StringIO(), component="calnews.gate")
    gate = DispatchGate(
        store,
        dispatcher,
        AccountLocator(accounts_file, logger=memory_logger("calnews.accounts")),
        logger=logger,
    )
    store.save(_daily())

    gate.poll(_berlin(2024, 5, 15, 10, 0))

    entries = [entry for entry in log_lines(logger) if entry["msg"] == "dispatch_succeeded"]
    assert len(entries) == 1
    assert entries[0]["recipients"] == "[redacted]"
    assert entries[0]["account"] == "viewer"
    assert "team@example.org" not in logger.stream.getvalue()


@pytest.mark.parametrize(
    "content",
    ["accounts:\n  - nam: typo\n", "accounts: [unclosed\n", "- just\n- a list\n"],
)
def test_unreadable_accounts_file_fails_and_retries(
    gate: DispatchGate, store: ScheduleStore, dispatcher: FakeDispatcher, accounts_file: Path, content: str
) -> None:
    original = accounts_file.read_text()
    last = _berlin(2024, 5, 14, 9, 0)
    store.save(_daily())
    store.set_last_fired_at(last)
    accounts_file.write_text(content)

    outcome = gate.poll(_berlin(2024, 5, 15, 9, 1))

    assert outcome.status == "failed"
    assert "Unable to load accounts" in outcome.error
    assert dispatcher.attempts == 0
    assert store.get_last_fired_at() == last

    accounts_file.write_text(original)

    assert gate.poll(_berlin(2024, 5, 15, 9, 2)).status == "sent"


def test_naive_now_is_rejected(gate: DispatchGate, store: ScheduleStore, dispatcher: FakeDispatcher) -> None:
    store.save(_daily())

    with pytest.raises(ValueError):
        gate.poll(datetime(2024, 5, 15, 10, 0))
    with pytest.raises(ValueError):
        gate.send_now(datetime(2024, 5, 15, 10, 0))

    assert dispatcher.attempts == 0
    assert gate.poll(_berlin(2024, 5, 15, 10, 0)).status == "sent"
