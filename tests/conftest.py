"""Pytest configuration shared by every calnews suite.

What:
  Establish project import paths and apply a canned runtime configuration to
  every test.

Why:
  Tests must import the package from the source tree rather than an installed
  wheel, and the runtime configuration is cached globally, so each test needs
  a clean cache pointing at a known file.

How:
  Prepend ``calnews/src`` to ``sys.path`` when present and define the autouse
  :func:`runtime_config` fixture that sets ``CALNEWS_CONFIG_PATH`` and resets
  the cache before and after each test.

Interfaces:
  :func:`runtime_config` (pytest fixture).
"""

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "calnews" / "src"
if SRC_DIR.exists():
    sys.path.insert(0, str(SRC_DIR))

import pytest

from calnews.config.loader import reset_runtime_config

CONFIG_PATH = Path(__file__).resolve().parent / "data" / "config.yaml"


@pytest.fixture(autouse=True)
def runtime_config(monkeypatch: pytest.MonkeyPatch):
    """Apply the canned configuration file for every test.

    Args:
      monkeypatch: Pytest helper injected automatically for environment control.
    """

    monkeypatch.setenv("CALNEWS_CONFIG_PATH", str(CONFIG_PATH))
    reset_runtime_config()
    try:
        yield
    finally:
        reset_runtime_config()
