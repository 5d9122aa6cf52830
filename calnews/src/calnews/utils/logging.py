"""Calnews logging helpers with deterministic JSON emission and redaction.

What:
  Offer a tiny facade over Python streams so every calnews component can emit
  JSON log lines with consistent fields and automatic masking of recipient
  addresses and credentials.

Why:
  The scheduler runs unattended; operators diagnose missed or duplicate
  newsletters by grepping logs. A structured layout keeps parsing trivial while
  keeping subscriber addresses out of shared log storage.

How:
  Provide a :class:`JsonLogger` dataclass that accepts a target stream and
  enforces uppercase severity levels. ``extra`` dictionaries are scrubbed via a
  recursive redaction helper before being serialised with ``json.dump``.

Interfaces:
  :class:`JsonLogger`, :func:`get_logger`.

Invariants & Safety:
  - Every payload includes an ISO8601 timestamp, severity, and component name.
  - ``recipients`` and ``password`` values are replaced with ``[redacted]``
    even inside nested dictionaries.
  - Streams are flushed after every write.
"""
from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


REDACTED = "[redacted]"
SENSITIVE_KEYS = frozenset({"recipients", "password"})


@dataclass
class JsonLogger:
    """Structured JSON logger with automatic redaction.

    What:
      Emits single-line JSON entries that include timestamps, severity, a
      component tag, and optional supplemental fields.

    How:
      Stores the destination stream and component label, then exposes
      :meth:`log`, :meth:`info`, :meth:`warning` and :meth:`error` which merge
      a canonical payload with redacted extras.
    """

    stream: Any = field(default_factory=lambda: sys.stdout)
    component: str = "calnews"

    def log(self, level: str, message: str, *, extra: Optional[Dict[str, Any]] = None) -> None:
        """Emit a structured JSON log entry.

        Args:
          level: Human-readable severity (e.g., ``"info"`` or ``"error"``).
          message: Core log message.
          extra: Optional context dictionary that will be redacted recursively.
        """

        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "lvl": level.upper(),
            "msg": message,
            "component": self.component,
        }
        if extra:
            payload.update(self._redact(extra))
        json.dump(payload, self.stream, separators=(",", ":"), default=str)
        self.stream.write("\n")
        self.stream.flush()

    def info(self, message: str, **kwargs: Any) -> None:
        self.log("INFO", message, extra=kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.log("WARN", message, extra=kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.log("ERROR", message, extra=kwargs)

    @staticmethod
    def _redact(data: Dict[str, Any]) -> Dict[str, Any]:
        """Return a copy of ``data`` with sensitive keys masked recursively."""

        result: Dict[str, Any] = {}
        for key, value in data.items():
            if key in SENSITIVE_KEYS:
                result[key] = REDACTED
            elif isinstance(value, dict):
                result[key] = JsonLogger._redact(value)
            else:
                result[key] = value
        return result


def get_logger(component: str) -> JsonLogger:
    """Construct a :class:`JsonLogger` bound to ``component``.

    Call sites go through this helper instead of instantiating
    :class:`JsonLogger` directly so the default stream and redaction keys can
    evolve in one place.
    """

    return JsonLogger(component=component)
