"""Expose the public utility surface for calnews.

Interfaces:
  ``get_logger`` and ``JsonLogger``.
"""

from .logging import JsonLogger, get_logger

__all__ = [
    "JsonLogger",
    "get_logger",
]
