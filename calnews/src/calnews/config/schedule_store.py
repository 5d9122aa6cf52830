"""Calnews schedule persistence utilities.

What:
  Provide a filesystem-backed accessor for ``schedule.yaml`` that persists the
  operator's recurrence rule and the time the newsletter was last sent.

Why:
  The scheduler polls every minute and may be restarted at any time. Keeping
  the rule and the execution state in one small document gives a single source
  of truth that survives reboots without a database.

How:
  Wraps :func:`calnews.config.loader.load_schedule` and
  :func:`calnews.config.loader.dump_schedule`. Every mutation performs a
  load-modify-save cycle and writes through a temporary file that is renamed
  into place, so a crash never leaves a truncated document behind.

Interfaces:
  ``ScheduleStore`` exposing ``load``, ``save``, ``get_last_fired_at``,
  ``set_last_fired_at``, and ``clear_last_fired_at``.

Invariants & Safety:
  - ``load`` returns a disabled rule with no recipients when nothing has been
    configured yet.
  - Saving the rule never touches the last execution time and vice versa.
  - Callers must treat methods as non-transactional; each helper reloads the
    document to avoid stale mutations.
"""
from __future__ import annotations

import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional

from .loader import ConfigLoadError, dump_schedule, load_schedule
from .schema import RecurrenceRule, ScheduleDocument
from .timestamps import format_instant, parse_instant


class ScheduleStore:
    """High-level wrapper for manipulating ``schedule.yaml`` on disk.

    What:
      Encapsulates filesystem access and schema-aware mutations so callers
      deal with :class:`RecurrenceRule` objects and datetimes instead of raw
      YAML.

    How:
      Creates the parent directory on construction, treats a missing file as
      the minimal document, and rewrites the whole document on every change.
    """

    def __init__(self, path: Path):
        """Create a store that reads and writes ``path``.

        Args:
          path: Location on disk for ``schedule.yaml``.
        """
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def _read(self) -> ScheduleDocument:
        try:
            return load_schedule(self._path.read_bytes())
        except FileNotFoundError:
            return ScheduleDocument.minimal()

    def _write(self, document: ScheduleDocument) -> None:
        payload = dump_schedule(document)
        handle = tempfile.NamedTemporaryFile("wb", dir=str(self._path.parent), delete=False)
        temp_path = Path(handle.name)
        try:
            with handle:
                handle.write(payload)
            temp_path.replace(self._path)
        except Exception:
            temp_path.unlink(missing_ok=True)
            raise

    def load(self) -> RecurrenceRule:
        """Return the configured recurrence rule.

        What:
          Reads the document and returns its ``schedule`` section.

        Why:
          A fresh installation has no file yet; the scheduler must treat that
          as "switched off" rather than as an error.

        Returns:
          The stored :class:`RecurrenceRule`, or a disabled rule when the file
          does not exist.
        """
        return self._read().schedule

    def save(self, rule: RecurrenceRule) -> None:
        """Persist ``rule`` verbatim, keeping the execution state intact."""
        document = self._read()
        document.schedule = rule
        self._write(document)

    def get_last_fired_at(self) -> Optional[datetime]:
        """Return when the newsletter was last sent, if ever.

        Raises:
          ConfigLoadError: If the stored timestamp is not ISO8601.
        """
        raw = self._read().last_execution_time
        if not raw:
            return None
        try:
            return parse_instant(raw)
        except ValueError as exc:
            raise ConfigLoadError(f"Invalid last_execution_time in {self._path}: {raw!r}") from exc

    def set_last_fired_at(self, instant: datetime) -> None:
        """Record ``instant`` as the last successful dispatch."""
        document = self._read()
        document.last_execution_time = format_instant(instant)
        self._write(document)

    def clear_last_fired_at(self) -> None:
        """Forget the last dispatch so the next poll resolves from yesterday."""
        document = self._read()
        document.last_execution_time = None
        self._write(document)
