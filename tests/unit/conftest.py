"""Pytest fixtures for unit tests around the dispatch gate.

What:
  Make ``tests/unit`` importable and expose a temporary schedule store, an
  accounts file, and a gate wired to an in-memory dispatcher.

Why:
  Gate tests assert on what was sent and on what was persisted. Building the
  pieces from real stores in ``tmp_path`` keeps the assertions honest while the
  fake dispatcher avoids any network access.

Interfaces:
  :func:`store`, :func:`accounts_file`, :func:`dispatcher`, :func:`gate`.
"""

import sys
from pathlib import Path

import pytest
import yaml

from calnews.accounts import AccountLocator
from calnews.config.schedule_store import ScheduleStore
from calnews.core.gate import DispatchGate

UNIT_DIR = Path(__file__).resolve().parent
if str(UNIT_DIR) not in sys.path:
    sys.path.insert(0, str(UNIT_DIR))

from fakes import FakeDispatcher, memory_logger


@pytest.fixture
def store(tmp_path: Path) -> ScheduleStore:
    return ScheduleStore(tmp_path / "state" / "schedule.yaml")


@pytest.fixture
def accounts_file(tmp_path: Path) -> Path:
    """Write an accounts document where only ``editor`` sees every calendar."""

    path = tmp_path / "accounts.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "accounts": [
                    {"name": "viewer", "calendars": ["team"]},
                    {
                        "name": "editor",
                        "email": "editor@example.org",
                        "calendars": ["team", "holidays", "birthdays"],
                    },
                    {"name": "admin", "calendars": ["team", "holidays"]},
                ]
            }
        )
    )
    return path


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture
def gate(store: ScheduleStore, dispatcher: FakeDispatcher, accounts_file: Path) -> DispatchGate:
    """Return a gate requiring the ``team`` and ``holidays`` calendars."""

    logger = memory_logger("calnews.gate")
    return DispatchGate(
        store,
        dispatcher,
        AccountLocator(accounts_file, logger=memory_logger("calnews.accounts")),
        required_calendars=["team", "holidays"],
        logger=logger,
    )
