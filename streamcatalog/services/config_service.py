"""Configuration service: loads, saves and provides access to AppConfig."""
from __future__ import annotations

import json
import logging
import os

from pydantic import ValidationError

from streamcatalog.models.config import AppConfig, Options
from streamcatalog.models.profile import Profile

logger = logging.getLogger(__name__)


def default_data_dir() -> str:
    """``DATA_DIR`` env var, else ``/data`` (Docker) if present, else ``./data``."""
    return os.environ.get("DATA_DIR", "/data" if os.path.exists("/data") else "./data")


class ConfigService:
    """Manages application configuration with file persistence.

    The config is kept in memory after the first load and re-read on an
    explicit ``load()`` or ``reload()``.  Everything that needs the config
    goes through this service rather than reading the JSON directly.
    """

    def __init__(self, data_dir: str):
        self.data_dir = data_dir
        self.config_file = os.path.join(data_dir, "config.json")
        self._config: AppConfig = AppConfig()

    # ------------------------------------------------------------------
    # Load / Save
    # ------------------------------------------------------------------

    def load(self) -> AppConfig:
        """Load configuration from disk; a missing or broken file yields defaults."""
        if os.path.exists(self.config_file):
            try:
                with open(self.config_file) as f:
                    raw = json.load(f)
                config = AppConfig.model_validate(raw)

                # Exactly one active profile, matching active_profile_id
                ids = {p.id for p in config.profiles}
                if config.active_profile_id not in ids:
                    active = next((p for p in config.profiles if p.is_active), None)
                    config.active_profile_id = active.id if active else None
                for profile in config.profiles:
                    profile.is_active = profile.id == config.active_profile_id

                self._config = config
                return self._config

            except (OSError, json.JSONDecodeError, ValidationError) as e:
                logger.error(f"Error loading config: {e}")

        self._config = AppConfig()
        return self._config

    def save(self, config: AppConfig | None = None) -> None:
        """Persist the config to disk."""
        if config is not None:
            self._config = config
        os.makedirs(os.path.dirname(self.config_file), exist_ok=True)
        with open(self.config_file, "w") as f:
            json.dump(self._config.model_dump(mode="json"), f, indent=2)

    @property
    def config(self) -> AppConfig:
        return self._config

    # ------------------------------------------------------------------
    # Convenience accessors
    # ------------------------------------------------------------------

    @property
    def options(self) -> Options:
        return self._config.options

    def get_profiles(self) -> list[Profile]:
        return self._config.profiles

    def get_profile_by_id(self, profile_id: str) -> Profile | None:
        for profile in self._config.profiles:
            if profile.id == profile_id:
                return profile
        return None

    def get_active_profile(self) -> Profile | None:
        if not self._config.active_profile_id:
            return None
        return self.get_profile_by_id(self._config.active_profile_id)
