"""Calnews command-line interface wiring for operational flows.

What:
  Provide a Typer-based entry point for inspecting and running the newsletter
  schedule: ``next``, ``poll``, ``watch``, ``send-now``, and ``reset``.

Why:
  Operators run calnews from cron, systemd, or a shell. Routing every path
  through the same gate keeps the "record only after a successful send" rule
  in force no matter how the dispatch was triggered.

How:
  Load the runtime configuration, build a
  :class:`~calnews.core.gate.DispatchGate` through :mod:`calnews._wiring`, and
  call it. ``watch`` loops on the ``poll.cron`` cadence and backs off
  exponentially after failed cycles.

Interfaces:
  ``app`` (Typer application), ``next_cmd``, ``poll``, ``watch``, ``send_now``,
  ``reset``, ``main``.

Invariants & Safety:
  - Exit codes: ``0`` success, ``1`` runtime or dispatch failure, ``2``
    invalid schedule configuration.
  - ``watch`` never exits on a failed cycle; it logs and retries.
"""
from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from itertools import islice
from typing import Any, Optional

import typer

from ._wiring import build_gate, exponential_backoff, poll_delay, schedule_path
from .config.loader import ConfigLoadError, load_runtime_config
from .config.schedule_store import ScheduleStore
from .config.schema import ConfigurationError
from .core.recurrence import iter_fire_instants


app = typer.Typer(help="Calendar newsletter scheduler")

LOGGER = logging.getLogger("calnews.cli")

EXIT_FAILURE = 1
EXIT_CONFIG = 2


def _runtime(config_path: Optional[str]) -> Any:
    try:
        if config_path:
            return load_runtime_config(config_path)
        return load_runtime_config()
    except ConfigLoadError as exc:
        LOGGER.error("runtime_load_failed: %s", exc)
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=EXIT_FAILURE) from exc


def _config_error(exc: Exception) -> typer.Exit:
    LOGGER.error("schedule_invalid error=%s", exc)
    typer.echo(f"invalid schedule: {exc}", err=True)
    return typer.Exit(code=EXIT_CONFIG)


@app.command("next")
def next_cmd(
    count: int = typer.Option(1, "--count", "-n", help="Number of upcoming sends to list."),
    config: Optional[str] = typer.Option(None, "--config", help="Path to config.yaml."),
) -> None:
    """Print the next send time(s), or ``disabled``."""

    runtime = _runtime(config)
    store = ScheduleStore(schedule_path(runtime))
    try:
        upcoming = list(
            islice(
                iter_fire_instants(
                    store.load(),
                    store.get_last_fired_at(),
                    datetime.now(timezone.utc),
                    tz=runtime.zone,
                ),
                max(count, 1),
            )
        )
    except (ConfigurationError, ConfigLoadError) as exc:
        raise _config_error(exc) from exc
    if not upcoming:
        typer.echo("disabled")
        return
    for instant in upcoming:
        typer.echo(instant.isoformat())


@app.command("poll")
def poll(
    config: Optional[str] = typer.Option(None, "--config", help="Path to config.yaml."),
) -> None:
    """Evaluate the schedule once and send if it is due."""

    runtime = _runtime(config)
    gate = build_gate(runtime)
    try:
        outcome = gate.poll()
    except (ConfigurationError, ConfigLoadError) as exc:
        raise _config_error(exc) from exc
    LOGGER.info("poll_completed status=%s next=%s", outcome.status, outcome.next_fire_at)
    typer.echo(outcome.status)
    if outcome.status == "failed":
        raise typer.Exit(code=EXIT_FAILURE)


@app.command("watch")
def watch(
    config: Optional[str] = typer.Option(None, "--config", help="Path to config.yaml."),
) -> None:
    """Poll on every ``poll.cron`` tick until interrupted.

    What:
      Long-running counterpart of ``poll``.

    How:
      After a successful or idle cycle sleep until the next cron tick; after a
      failed cycle (dispatch failure or invalid schedule) sleep for a capped
      exponential backoff so a broken SMTP relay is not hammered.
    """

    runtime = _runtime(config)
    gate = build_gate(runtime)
    failures = 0
    try:
        while True:
            try:
                outcome = gate.poll()
            except (ConfigurationError, ConfigLoadError) as exc:
                LOGGER.error("watch_cycle_invalid error=%s", exc)
                outcome = None
            if outcome is None or outcome.status == "failed":
                delay: float = exponential_backoff(failures=failures)
                failures += 1
                LOGGER.warning("watch_cycle_failed backoff=%s", delay)
            else:
                failures = 0
                delay = poll_delay(runtime)
                LOGGER.info("watch_cycle_completed status=%s", outcome.status)
            time.sleep(delay)
    except KeyboardInterrupt:
        LOGGER.info("watch_stopped")
        raise typer.Exit(code=0) from None


@app.command("send-now")
def send_now(
    config: Optional[str] = typer.Option(None, "--config", help="Path to config.yaml."),
) -> None:
    """Send the newsletter immediately; the schedule is not advanced."""

    runtime = _runtime(config)
    outcome = build_gate(runtime).send_now()
    typer.echo(outcome.status)
    if outcome.status != "sent":
        raise typer.Exit(code=EXIT_FAILURE)


@app.command("reset")
def reset(
    config: Optional[str] = typer.Option(None, "--config", help="Path to config.yaml."),
) -> None:
    """Forget the last send so the schedule resolves from yesterday."""

    runtime = _runtime(config)
    ScheduleStore(schedule_path(runtime)).clear_last_fired_at()
    typer.echo("reset")


def main() -> None:
    """Execute the Typer application entry point."""

    app()


if __name__ == "__main__":  # pragma: no cover
    main()
