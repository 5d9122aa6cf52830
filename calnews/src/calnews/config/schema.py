"""Pydantic models describing calnews configuration documents."""
from __future__ import annotations

from enum import Enum
from typing import Any, List, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, ValidationError as _PydanticValidationError
from pydantic import field_validator

from .timestamps import anchor_clock


class ConfigurationError(ValueError):
    """Raised when a schedule or runtime document holds an unusable field."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class IntervalKind(str, Enum):
    """How often a schedule repeats."""

    OFF = "off"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    MONTHLY_DOM = "monthly_dom"
    YEARLY = "yearly"
    YEARLY_DOM = "yearly_dom"


class Ordinal(str, Enum):
    """Position of a weekday inside its month."""

    FIRST = "first"
    SECOND = "second"
    THIRD = "third"
    FOURTH = "fourth"
    LAST = "last"


class Weekday(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @property
    def index(self) -> int:
        """Zero-based position, Monday first, as used by :mod:`datetime`."""

        return list(Weekday).index(self)


class Month(str, Enum):
    JANUARY = "january"
    FEBRUARY = "february"
    MARCH = "march"
    APRIL = "april"
    MAY = "may"
    JUNE = "june"
    JULY = "july"
    AUGUST = "august"
    SEPTEMBER = "september"
    OCTOBER = "october"
    NOVEMBER = "november"
    DECEMBER = "december"

    @property
    def number(self) -> int:
        return list(Month).index(self) + 1


def _first_error_field(exc: _PydanticValidationError, default: str) -> tuple[str, str]:
    errors = exc.errors()
    if not errors:
        return default, str(exc)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return location or default, first.get("msg", str(exc))


class RecurrenceRule(BaseModel):
    """A newsletter schedule as edited by the operator.

    Only the fields relevant to ``interval`` are consulted when resolving the
    next occurrence; the rest may hold stale values from an earlier edit.
    Both the constructor and :meth:`model_validate` report invalid input as
    :class:`ConfigurationError` naming the offending field.
    """

    model_config = ConfigDict(extra="forbid")

    interval: IntervalKind = IntervalKind.OFF
    skip: int = Field(default=0, ge=0)
    ordinal: Optional[Ordinal] = None
    weekday: Optional[Weekday] = None
    month: Optional[Month] = None
    day_of_month: int = 0
    anchor_time: Optional[str] = None
    subject: str = ""
    recipients: List[str] = Field(default_factory=list)

    @field_validator("ordinal", "weekday", "month", mode="before")
    @classmethod
    def _lower_names(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower() or None
        return value

    @field_validator("anchor_time")
    @classmethod
    def _validate_anchor(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            anchor_clock(value)
        except ValueError as exc:
            raise ValueError(f"not an ISO8601 timestamp: {value!r}") from exc
        return value

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except _PydanticValidationError as exc:
            field, message = _first_error_field(exc, "schedule")
            raise ConfigurationError(field, message) from exc

    @classmethod
    def model_validate(cls, data: Any, **kwargs: Any) -> "RecurrenceRule":  # type: ignore[override]
        try:
            return super().model_validate(data, **kwargs)
        except _PydanticValidationError as exc:
            field, message = _first_error_field(exc, "schedule")
            raise ConfigurationError(field, message) from exc

    @classmethod
    def disabled(cls) -> "RecurrenceRule":
        return cls(interval=IntervalKind.OFF, subject="", recipients=[])


class ScheduleDocument(BaseModel):
    """On-disk layout of ``schedule.yaml``: the rule plus execution state."""

    model_config = ConfigDict(extra="forbid")

    schedule: RecurrenceRule = Field(default_factory=RecurrenceRule.disabled)
    last_execution_time: Optional[str] = None

    def __init__(self, **data: Any) -> None:
        try:
            super().__init__(**data)
        except _PydanticValidationError as exc:
            field, message = _first_error_field(exc, "document")
            raise ConfigurationError(field, message) from exc

    @classmethod
    def model_validate(cls, data: Any, **kwargs: Any) -> "ScheduleDocument":  # type: ignore[override]
        try:
            return super().model_validate(data, **kwargs)
        except _PydanticValidationError as exc:
            field, message = _first_error_field(exc, "document")
            raise ConfigurationError(field, message) from exc

    @classmethod
    def minimal(cls) -> "ScheduleDocument":
        return cls(schedule=RecurrenceRule.disabled(), last_execution_time=None)


class PathsConfig(BaseModel):
    """Filesystem layout used by the runtime."""

    model_config = ConfigDict(extra="forbid")

    state_dir: str
    accounts_file: str


class PollConfig(BaseModel):
    """When the watch loop wakes up to evaluate the schedule."""

    model_config = ConfigDict(extra="forbid")

    cron: str = "* * * * *"


class SmtpConfig(BaseModel):
    """Outgoing mail server settings."""

    model_config = ConfigDict(extra="forbid")

    host: str
    port: int = Field(default=587, ge=1, le=65535)
    starttls: bool = True
    username: Optional[str] = None
    password_file: Optional[str] = None
    sender: str
    timeout_s: int = Field(default=30, gt=0)


class NewsletterConfig(BaseModel):
    """Content settings for the newsletter mail."""

    model_config = ConfigDict(extra="forbid")

    calendars: List[str] = Field(default_factory=list)
    body: str = ""


class RuntimeConfig(BaseModel):
    """Root configuration loaded from ``config.yaml``."""

    model_config = ConfigDict(extra="forbid")

    version: int = 1
    timezone: str = "Europe/Berlin"
    paths: PathsConfig
    poll: PollConfig = Field(default_factory=PollConfig)
    smtp: SmtpConfig
    newsletter: NewsletterConfig = Field(default_factory=NewsletterConfig)

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"unknown time zone {value!r}") from exc
        return value

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def required_calendars(self) -> List[str]:
        return list(self.newsletter.calendars)
