"""Pydantic models for EPG (XMLTV) data."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class EpgChannel(BaseModel):
    """A channel declared in an XMLTV feed."""
    model_config = ConfigDict(frozen=True)

    id: str
    display_names: list[str] = Field(default_factory=list)
    icon_url: Optional[str] = None

    @property
    def name(self) -> str:
        return self.display_names[0] if self.display_names else self.id


class EpgProgram(BaseModel):
    """A single programme; times are always UTC."""
    model_config = ConfigDict(frozen=True)

    channel_id: str
    title: str
    start_time: datetime
    end_time: datetime
    description: Optional[str] = None
    category: Optional[str] = None
    language: Optional[str] = None
    episode_number: Optional[str] = None
    subtitle: Optional[str] = None
    icon_url: Optional[str] = None

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    @model_validator(mode="after")
    def _check_interval(self):
        if self.start_time >= self.end_time:
            raise ValueError(
                f"programme '{self.title}' must start before it ends "
                f"({self.start_time.isoformat()} >= {self.end_time.isoformat()})"
            )
        return self

    def is_airing(self, at: datetime) -> bool:
        return self.start_time <= _as_utc(at) < self.end_time

    def progress(self, at: datetime) -> float:
        """Fraction of the programme elapsed at *at*, in [0, 1]."""
        at = _as_utc(at)
        if at < self.start_time:
            return 0.0
        if at >= self.end_time:
            return 1.0
        total = (self.end_time - self.start_time).total_seconds()
        if total <= 0:
            return 1.0
        return (at - self.start_time).total_seconds() / total


class EpgSummary(BaseModel):
    """Current / next programme attached to a channel."""
    model_config = ConfigDict(frozen=True)

    current: Optional[EpgProgram] = None
    next: Optional[EpgProgram] = None
    progress: Optional[float] = None


class EpgData(BaseModel):
    """Parsed XMLTV document: channels by id, programmes by channel id."""

    channels: dict[str, EpgChannel] = Field(default_factory=dict)
    programs: dict[str, list[EpgProgram]] = Field(default_factory=dict)
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source_url: Optional[str] = None

    @property
    def total_programs(self) -> int:
        return sum(len(p) for p in self.programs.values())

    def programs_for(self, channel_id: str) -> list[EpgProgram]:
        return self.programs.get(channel_id, [])
