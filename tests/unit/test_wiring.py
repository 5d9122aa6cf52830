"""Unit tests for :mod:`calnews._wiring`."""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

from calnews._wiring import build_gate, exponential_backoff, poll_delay, schedule_path
from calnews.config.schema import RuntimeConfig


def _runtime(tmp_path: Path) -> RuntimeConfig:
    return RuntimeConfig.model_validate(
        {
            "timezone": "America/New_York",
            "paths": {"state_dir": str(tmp_path / "state"), "accounts_file": str(tmp_path / "accounts.yaml")},
            "poll": {"cron": "0 * * * *"},
            "smtp": {"host": "localhost", "sender": "news@example.org"},
        }
    )


def test_backoff_grows_and_caps() -> None:
    assert [exponential_backoff(failures=n) for n in range(4)] == [5, 10, 20, 40]
    assert exponential_backoff(failures=20) == 300
    assert exponential_backoff(failures=-3) == 5


def test_poll_delay_follows_cron(tmp_path: Path) -> None:
    now = datetime(2024, 1, 1, 10, 59, 0, tzinfo=timezone.utc)

    assert poll_delay(_runtime(tmp_path), now=now) == 60.0


def test_build_gate_uses_configured_zone_and_state_dir(tmp_path: Path) -> None:
    runtime = _runtime(tmp_path)

    gate = build_gate(runtime)

    assert schedule_path(runtime) == tmp_path / "state" / "schedule.yaml"
    assert (tmp_path / "state").is_dir()
    assert gate.poll(datetime(2024, 1, 1, tzinfo=ZoneInfo("America/New_York"))).status == "disabled"
