"""Pydantic models for application configuration."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from streamcatalog.models.profile import Profile


class CacheTtls(BaseModel):
    """One TTL (seconds) per cache class."""
    model_config = ConfigDict(extra="allow")

    channels: int = 86400  # 24 hours
    categories: int = 86400
    epg_xtream: int = 21600  # 6 hours
    epg_url: int = 21600

    @field_validator("channels", "categories", "epg_xtream", "epg_url")
    @classmethod
    def validate_positive(cls, value: int, info) -> int:
        if value <= 0:
            raise ValueError(f"{info.field_name} TTL must be > 0")
        return value


class Timeouts(BaseModel):
    """Per-call upstream timeouts (seconds)."""
    model_config = ConfigDict(extra="allow")

    login: float = 15.0
    catalog: float = 60.0
    epg: float = 180.0
    connect: float = 15.0


class Options(BaseModel):
    """Application options."""
    model_config = ConfigDict(extra="allow")

    cache_ttls: CacheTtls = Field(default_factory=CacheTtls)
    timeouts: Timeouts = Field(default_factory=Timeouts)
    live_output_format: str = "ts"
    epg_fuzzy_threshold: int = 90
    user_agent: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 " \
                      "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"

    @field_validator("live_output_format")
    @classmethod
    def validate_output_format(cls, value: str) -> str:
        normalized = value.lower().lstrip(".")
        if normalized not in ("ts", "m3u8"):
            raise ValueError("live_output_format must be 'ts' or 'm3u8'")
        return normalized


class AppConfig(BaseModel):
    """Root application configuration."""
    model_config = ConfigDict(extra="allow")

    profiles: list[Profile] = Field(default_factory=list)
    active_profile_id: Optional[str] = None
    options: Options = Field(default_factory=Options)
