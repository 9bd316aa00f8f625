"""Pydantic models for configured providers (profiles) and Xtream credentials."""
from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field


class SourceType(str, enum.Enum):
    M3U_FILE = "m3u_file"
    M3U_URL = "m3u_url"
    XTREAM = "xtream"


class ContentSourceStrategy(str, enum.Enum):
    # Catalog reads go to player_api.php (through the cache)
    XTREAM_API_DIRECT = "xtream_api_direct"
    # One get.php playlist snapshot is imported and served locally
    XTREAM_M3U_IMPORT = "xtream_m3u_import"


class XtreamCredentials(BaseModel):
    """Xtream Codes login plus the deterministic URL builders derived from it."""
    model_config = ConfigDict(frozen=True)

    host: str
    username: str
    password: str
    port: Optional[int] = None

    @property
    def base_url(self) -> str:
        base = self.host.strip().rstrip("/")
        if self.port:
            base = f"{base}:{self.port}"
        return base

    @property
    def api_url(self) -> str:
        return f"{self.base_url}/player_api.php"

    @property
    def xmltv_url(self) -> str:
        query = urlencode({"username": self.username, "password": self.password})
        return f"{self.base_url}/xmltv.php?{query}"

    def playlist_url(self, output: str = "ts") -> str:
        query = urlencode({
            "username": self.username,
            "password": self.password,
            "type": "m3u_plus",
            "output": output,
        })
        return f"{self.base_url}/get.php?{query}"

    def live_url(self, stream_id: str, extension: str = "ts") -> str:
        return f"{self.base_url}/live/{self.username}/{self.password}/{stream_id}.{extension or 'ts'}"

    def movie_url(self, stream_id: str, extension: str | None = None) -> str:
        return f"{self.base_url}/movie/{self.username}/{self.password}/{stream_id}.{extension or 'mp4'}"

    def series_url(self, episode_id: str, extension: str | None = None) -> str:
        return f"{self.base_url}/series/{self.username}/{self.password}/{episode_id}.{extension or 'mp4'}"

    @property
    def is_valid(self) -> bool:
        return bool(
            self.username
            and self.password
            and self.host.lower().startswith(("http://", "https://"))
        )


class AccountInfo(BaseModel):
    """``user_info`` / ``server_info`` from a successful Xtream login."""
    model_config = ConfigDict(extra="allow")

    username: str = ""
    status: str = ""
    is_active: bool = False
    expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    is_trial: bool = False
    max_connections: int = 1
    active_connections: int = 0
    allowed_output_formats: list[str] = Field(default_factory=list)
    server_url: Optional[str] = None
    server_timezone: Optional[str] = None


class Profile(BaseModel):
    """One configured provider (an M3U playlist or an Xtream account)."""
    model_config = ConfigDict(extra="allow")

    id: str = Field(default_factory=lambda: str(uuid.uuid4())[:8])
    name: str = "New Profile"
    type: SourceType = SourceType.XTREAM
    url: Optional[str] = None
    credentials: Optional[XtreamCredentials] = None
    strategy: ContentSourceStrategy = ContentSourceStrategy.XTREAM_API_DIRECT
    epg_url: Optional[str] = None
    added_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    last_updated: Optional[datetime] = None
    is_active: bool = False

    @property
    def is_xtream(self) -> bool:
        return self.type == SourceType.XTREAM

    @property
    def uses_playlist_snapshot(self) -> bool:
        """True when catalog reads are served from an imported M3U snapshot."""
        if not self.is_xtream:
            return True
        return self.strategy == ContentSourceStrategy.XTREAM_M3U_IMPORT
