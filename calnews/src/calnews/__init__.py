"""
Module: calnews.__init__

What:
  Package root for the calendar newsletter scheduler: it decides when a
  periodic newsletter is due and sends it.

Interfaces:
  - config: Runtime configuration, schedule schema, and schedule persistence.
  - core: Recurrence resolution and the dispatch gate.
  - mail: Newsletter delivery.
  - utils: Structured logging.
"""

__all__ = [
    "config",
    "core",
    "mail",
    "utils",
]
