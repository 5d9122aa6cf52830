"""Strict loaders and serializers for calnews configuration documents.

What:
  Locate, parse, and validate the runtime configuration (``config.yaml``) and
  convert the schedule document (``schedule.yaml``) between bytes and models.

Why:
  Both files live outside the application bundle and are edited by hand or by
  other tools. Centralising the parsing keeps validation consistent so the
  scheduler only ever works with checked models.

How:
  Resolve candidate file locations from an explicit argument, the
  ``CALNEWS_CONFIG_PATH`` environment variable, and well-known defaults. Parse
  YAML with :func:`yaml.safe_load`, validate with the Pydantic models from
  :mod:`calnews.config.schema`, and cache the runtime configuration until
  :func:`reset_runtime_config` is called.

Interfaces:
  - :func:`load_runtime_config` / :func:`reset_runtime_config`: Manage
    ``config.yaml`` discovery and caching.
  - :func:`load_schedule` / :func:`dump_schedule`: Convert ``schedule.yaml``
    payloads.

Invariants:
  - External payloads pass strict Pydantic validation before they are returned.
  - The runtime cache respects explicit reload requests and the precedence
    order of candidate paths.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Iterable, Optional, Tuple

import yaml
from pydantic import ValidationError as _PydanticValidationError

from .schema import ConfigurationError, RuntimeConfig, ScheduleDocument


class ConfigLoadError(Exception):
    """Base error for configuration parsing or validation failures.

    Grouping failures under a single type lets callers handle operator mistakes
    separately from SMTP or filesystem outages.
    """


class RuntimeConfigError(ConfigLoadError):
    """Error raised when ``config.yaml`` cannot be loaded or validated."""


_CONFIG_ENV = "CALNEWS_CONFIG_PATH"
_DEFAULT_LOCATIONS: Tuple[Path, ...] = (
    Path("config.yaml"),
    Path("/etc/calnews/config.yaml"),
)
_RUNTIME_CACHE: Optional[Tuple[Path, RuntimeConfig]] = None


def _candidate_paths(path: Optional[Path]) -> Iterable[Path]:
    """Yield configuration file locations in priority order.

    What:
      Produce the ordered, deduplicated list of paths inspected for
      ``config.yaml``.

    How:
      Check the explicit argument, then ``CALNEWS_CONFIG_PATH``, then the
      default locations, expanding ``~`` along the way.

    Args:
      path: Explicit path requested by the caller, or ``None``.

    Yields:
      Candidate paths ordered from most specific to least specific.
    """

    seen: set[Path] = set()
    if path is not None:
        candidate = path.expanduser()
        seen.add(candidate)
        yield candidate
    env_path = os.environ.get(_CONFIG_ENV)
    if env_path:
        candidate = Path(env_path).expanduser()
        if candidate not in seen:
            seen.add(candidate)
            yield candidate
    for default in _DEFAULT_LOCATIONS:
        candidate = default.expanduser()
        if candidate not in seen:
            seen.add(candidate)
            yield candidate


def _parse_mapping(text: str, source: str) -> dict[str, Any]:
    """Decode YAML ``text`` and insist on a top-level mapping.

    Raises:
      ConfigLoadError: If the text is not valid YAML or not a mapping.
    """

    try:
        payload = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigLoadError(f"Invalid YAML in {source}: {exc}") from exc
    if not isinstance(payload, dict):
        raise ConfigLoadError(f"{source} must contain a mapping at the top-level")
    return payload


def _load_runtime_from_path(path: Path) -> RuntimeConfig:
    """Load and validate ``config.yaml`` from a specific path.

    What:
      Read the file at ``path`` and convert it into a validated
      :class:`RuntimeConfig` model.

    How:
      Read the file, parse it via :func:`_parse_mapping`, and validate using
      :meth:`RuntimeConfig.model_validate`. Filesystem, YAML and schema
      failures surface as :class:`RuntimeConfigError` naming the path.

    Args:
      path: Filesystem location of the runtime configuration.

    Returns:
      The validated :class:`RuntimeConfig` model.
    """

    try:
        text = path.read_text()
    except FileNotFoundError as exc:
        raise RuntimeConfigError(f"Configuration file missing: {path}") from exc
    except OSError as exc:  # pragma: no cover - filesystem surface
        raise RuntimeConfigError(f"Unable to read configuration file {path}: {exc}") from exc
    try:
        payload = _parse_mapping(text, str(path))
    except ConfigLoadError as exc:
        raise RuntimeConfigError(str(exc)) from exc
    try:
        return RuntimeConfig.model_validate(payload)
    except _PydanticValidationError as exc:
        raise RuntimeConfigError(f"Invalid config.yaml: {exc}") from exc


def load_runtime_config(
    path: Optional[Path | str] = None,
    *,
    reload: bool = False,
) -> RuntimeConfig:
    """Resolve, parse, and cache the runtime configuration.

    What:
      Locate ``config.yaml`` using the precedence chain, parse it, and return a
      validated :class:`RuntimeConfig` instance.

    How:
      Consult the module cache unless ``reload`` is requested or a different
      path is asked for, then walk :func:`_candidate_paths` until a file
      exists. The first readable file wins and is cached.

    Args:
      path: Optional explicit location of ``config.yaml``.
      reload: When ``True`` forces a fresh load bypassing the cache.

    Returns:
      The validated runtime configuration.

    Raises:
      RuntimeConfigError: If no configuration file can be located or
      validated.
    """

    global _RUNTIME_CACHE

    requested_path = Path(path).expanduser() if isinstance(path, (str, Path)) else None
    if not reload and _RUNTIME_CACHE is not None:
        cached_path, cached_config = _RUNTIME_CACHE
        if requested_path is None or cached_path == requested_path:
            return cached_config

    searched: list[str] = []
    for candidate in _candidate_paths(requested_path):
        if not candidate.exists():
            searched.append(str(candidate))
            continue
        config = _load_runtime_from_path(candidate)
        _RUNTIME_CACHE = (candidate, config)
        return config

    listing = ", ".join(searched) if searched else "<none>"
    raise RuntimeConfigError(f"Unable to locate config.yaml (searched: {listing})")


def reset_runtime_config() -> None:
    """Clear the runtime configuration cache."""

    global _RUNTIME_CACHE
    _RUNTIME_CACHE = None


def load_schedule(source: bytes) -> ScheduleDocument:
    """Parse and validate a ``schedule.yaml`` payload.

    What:
      Turn the stored bytes into a :class:`ScheduleDocument` holding the
      recurrence rule and the last execution time.

    How:
      Decode UTF-8, parse through :func:`_parse_mapping`, and validate. An
      empty file yields the minimal document (schedule switched off).

    Args:
      source: Raw bytes of the YAML document.

    Returns:
      The validated document.

    Raises:
      ConfigLoadError: If the YAML is malformed or violates the schema.
    """

    payload = _parse_mapping(source.decode("utf-8"), "schedule.yaml")
    if not payload:
        return ScheduleDocument.minimal()
    try:
        return ScheduleDocument.model_validate(payload)
    except ConfigurationError as exc:
        raise ConfigLoadError(f"Invalid schedule.yaml: {exc}") from exc


def dump_schedule(document: ScheduleDocument) -> bytes:
    """Serialise a :class:`ScheduleDocument` into canonical YAML bytes."""

    payload = document.model_dump(mode="json")
    return yaml.safe_dump(payload, sort_keys=True, allow_unicode=True).encode("utf-8")
