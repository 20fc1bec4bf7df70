"""
Configuration Management Module

Responsibilities:
1. Read engine thresholds and gate roles from engine_config.json
2. Read auth role mapping from environment variables
3. Config validation and defaults

Environment Variables:
    AUTH_USER_ROLES  - JSON object mapping username to role list,
                       e.g. {"alice": ["admin"], "bob": ["production"]}
    AUTH_DEFAULT_ROLES - JSON list of roles for users not in AUTH_USER_ROLES
    WOFLOW_DB_PATH   - SQLite database path (default: data/woflow.db)
"""

import json
import os
import re
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.exceptions import ConfigError


class AuthConfig(BaseSettings):
    """Role mapping used by the authorization layer."""

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    user_roles: dict[str, list[str]] = Field(
        default_factory=dict, description="Username -> roles"
    )
    default_roles: list[str] = Field(
        default_factory=list, description="Roles for users without an explicit mapping"
    )

    def roles_for(self, username: str) -> list[str]:
        return list(self.user_roles.get(username, self.default_roles))


class GateConfig(BaseSettings):
    """Roles allowed to drive the production gates."""

    release_roles: list[str] = Field(
        ["admin", "production"], description="Roles that may release or reopen release"
    )
    completion_roles: list[str] = Field(
        ["admin", "production"], description="Roles that may close or reopen production"
    )


class BottleneckConfig(BaseSettings):
    """Bottleneck classification thresholds"""

    rejection_rate_threshold: float = Field(0.10, gt=0, lt=1, description="Quality issue above this")
    downtime_fraction_threshold: float = Field(0.30, gt=0, lt=1, description="Downtime issue above this")
    slow_progress_ratio: float = Field(0.30, gt=0, le=1, description="Slow when OK qty below planned x ratio")
    slow_progress_min_logs: int = Field(5, ge=0, description="Logs needed before pace is judged")


class RefreshConfig(BaseSettings):
    """Change-notification and cache configuration"""

    debounce_seconds: float = Field(3.0, ge=0, le=60, description="Coalescing window for change bursts")
    cache_enabled: bool = Field(True, description="Enable in-memory state cache")
    cache_max_size: int = Field(500, ge=10, le=10000, description="Max cached work orders")
    cache_ttl_seconds: int = Field(300, ge=5, le=7200, description="Cache TTL in seconds")


class MonitorConfig(BaseSettings):
    """Overdue external return monitor"""

    enabled: bool = Field(True, description="Enable the daily overdue check")
    schedule: list[str] = Field(["07:30"], description="Check times (HH:MM format)")
    due_soon_days: int = Field(2, ge=0, le=30, description="Days ahead counted as due soon")

    @field_validator("schedule")
    def validate_schedule(cls, value: list[str]) -> list[str]:
        for time_str in value:
            if not re.match(r"^([01]?\d|2[0-3]):([0-5]\d)$", time_str):
                raise ValueError(f"Invalid time format: {time_str}")
        return value


class EngineConfig(BaseSettings):
    """Complete engine configuration"""

    gates: GateConfig = Field(default_factory=GateConfig)
    bottleneck: BottleneckConfig = Field(default_factory=BottleneckConfig)
    refresh: RefreshConfig = Field(default_factory=RefreshConfig)
    monitor: MonitorConfig = Field(default_factory=MonitorConfig)

    _config_path: str = "engine_config.json"

    @classmethod
    def load(cls, path: str = "engine_config.json") -> "EngineConfig":
        """Load config from JSON file."""
        config_path = Path(path)
        if config_path.exists():
            try:
                with config_path.open("r", encoding="utf-8") as handle:
                    data = json.load(handle)
            except json.JSONDecodeError as exc:
                raise ConfigError(f"Invalid JSON in {path}: {exc}") from exc
            instance = cls(**data)
        else:
            instance = cls()
        instance._config_path = path
        return instance

    def save(self) -> None:
        """Save config to JSON file."""
        with open(self._config_path, "w", encoding="utf-8") as handle:
            json.dump(self.model_dump(), handle, indent=2, ensure_ascii=False)


class Config:
    """Main Config Class - Factory Pattern (NOT Singleton).

    The app builds one instance in its lifespan and stores it on app.state;
    tests construct their own.
    """

    def __init__(
        self,
        engine: EngineConfig,
        auth: AuthConfig,
        db_path: Path = Path("data/woflow.db"),
    ):
        self.engine = engine
        self.auth = auth
        self.db_path = db_path

    @classmethod
    def load(cls, engine_path: str = "engine_config.json") -> "Config":
        """Factory method to load config.

        Engine config: engine_config.json
        Auth roles: Environment variables > .env
        """
        return cls(
            engine=EngineConfig.load(engine_path),
            auth=AuthConfig(),
            db_path=Path(os.getenv("WOFLOW_DB_PATH", "data/woflow.db")),
        )


@lru_cache()
def get_config() -> Config:
    """Get config instance (cached for performance)."""
    return Config.load()

