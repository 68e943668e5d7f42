from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from .clock import format_duration, format_rfc3339, from_nanoseconds, parse_rfc3339

EventKind = Literal["join", "leave"]


@dataclass(slots=True)
class Session:
    """One player's open/closed interval and accumulated time for the current day.

    Durations are kept in integer nanoseconds. ``latest_end_nanos`` holds the
    sub-microsecond part of ``latest_end`` (set when the end is clamped to the
    last nanosecond of the day).
    """

    player_name: str
    latest_start: datetime | None = None
    latest_end: datetime | None = None
    latest_end_nanos: int = 0
    duration_ns: int = 0

    @property
    def duration(self) -> timedelta:
        return from_nanoseconds(self.duration_ns)

    @property
    def is_open(self) -> bool:
        if self.latest_start is None:
            return False
        # An unset end sorts before every real start.
        return self.latest_end is None or self.latest_start > self.latest_end


@dataclass(frozen=True, slots=True)
class LineEvent:
    kind: EventKind
    player_name: str


@dataclass(frozen=True, slots=True)
class LineReceived:
    text: str
    observed_at: datetime


@dataclass(frozen=True, slots=True)
class Tick:
    now: datetime


@dataclass(frozen=True, slots=True)
class ShutdownRequested:
    signal_name: str


def _ensure_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


_TIMESTAMP_FIELDS = (
    ("latestStart", "latest_start", "latest_start_nanos"),
    ("latestEnd", "latest_end", "latest_end_nanos"),
)


class PlayTimeRecord(BaseModel):
    """Serialized form of a Session inside a day snapshot."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    player_name: str = Field(alias="playerName")
    latest_start: datetime | None = Field(default=None, alias="latestStart")
    latest_end: datetime | None = Field(default=None, alias="latestEnd")
    readable_duration: str = Field(alias="readableDurationOnServer")
    duration_ns: int = Field(alias="durationOnServer", ge=0)
    latest_start_nanos: int = Field(default=0, ge=0, lt=1000, exclude=True)
    latest_end_nanos: int = Field(default=0, ge=0, lt=1000, exclude=True)

    @model_validator(mode="before")
    @classmethod
    def _split_nanoseconds(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        data = dict(data)
        for alias, name, nanos_name in _TIMESTAMP_FIELDS:
            key = alias if alias in data else name
            value = data.get(key)
            if isinstance(value, str):
                data[key], data[nanos_name] = parse_rfc3339(value)
        return data

    @field_validator("latest_start", "latest_end")
    @classmethod
    def _ensure_timezone(cls, value: datetime | None) -> datetime | None:
        return _ensure_utc(value)

    @model_validator(mode="after")
    def _check_readable_duration(self) -> PlayTimeRecord:
        expected = format_duration(self.duration_ns)
        if self.readable_duration != expected:
            msg = f"readableDurationOnServer {self.readable_duration!r} does not match {expected!r}"
            raise ValueError(msg)
        return self

    @field_serializer("latest_start")
    def _serialize_start(self, value: datetime | None) -> str | None:
        if value is None:
            return None
        return format_rfc3339(value, self.latest_start_nanos)

    @field_serializer("latest_end")
    def _serialize_end(self, value: datetime | None) -> str | None:
        if value is None:
            return None
        return format_rfc3339(value, self.latest_end_nanos)

    @property
    def duration(self) -> timedelta:
        return from_nanoseconds(self.duration_ns)

    @classmethod
    def from_session(cls, session: Session) -> PlayTimeRecord:
        return cls(
            player_name=session.player_name,
            latest_start=session.latest_start,
            latest_end=session.latest_end,
            latest_end_nanos=session.latest_end_nanos,
            readable_duration=format_duration(session.duration_ns),
            duration_ns=session.duration_ns,
        )


class DaySnapshot(BaseModel):
    """Immutable projection of the ledger at rollover or shutdown."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    day: datetime
    play_times: list[PlayTimeRecord] = Field(default_factory=list, alias="playTimes")

    @field_validator("day", mode="before")
    @classmethod
    def _parse_day(cls, value: Any) -> Any:
        if isinstance(value, str):
            parsed, _nanos = parse_rfc3339(value)
            return parsed
        return value

    @field_validator("day")
    @classmethod
    def _ensure_timezone(cls, value: datetime) -> datetime:
        return _ensure_utc(value)

    @field_validator("play_times", mode="before")
    @classmethod
    def _null_as_empty(cls, value: Any) -> Any:
        # Files written by older builds store an empty day as null.
        if value is None:
            return []
        return value

    @field_serializer("day")
    def _serialize_day(self, value: datetime) -> str:
        return format_rfc3339(value)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)
