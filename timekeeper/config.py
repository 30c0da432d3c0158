"""Timekeeper configuration management using pydantic-settings."""

from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env from project root so AUTH_PROVIDER_URL (and friends) are available
load_dotenv(Path(__file__).resolve().parent.parent / ".env")

DEFAULT_CONFIG_PATH = Path.home() / ".config/timekeeper/config.toml"


class GeneralSettings(BaseSettings):
    db_url: str = Field(default="postgresql+asyncpg://localhost/timekeeper")
    log_level: str = "INFO"


class ServerSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SERVER_")
    host: str = "0.0.0.0"
    port: int = 5001
    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000"])
    # Per-client request budget on the authenticated API; max 0 disables it
    rate_limit_max: int = 100
    rate_limit_window_seconds: int = 900
    broadcast_timeout_seconds: float = 5.0


class AuthSettings(BaseSettings):
    """Identity provider settings.

    When ``provider_url`` is empty, tokens are resolved through
    ``static_tokens`` instead (local development only).
    """

    model_config = SettingsConfigDict(env_prefix="AUTH_")
    provider_url: str = ""
    timeout_seconds: float = 10.0
    static_tokens: dict[str, str] = Field(default_factory=dict)


class SessionSettings(BaseSettings):
    min_duration: int = 300  # 5 minutes
    max_duration: int = 14400  # 4 hours
    default_duration: int = 1500
    exclusive: bool = True


class TaskSettings(BaseSettings):
    default_importance: int = 50
    due_offset_hours: int = 24


class StatsSettings(BaseSettings):
    focus_measure: Literal["requested", "elapsed"] = "requested"


class Settings(BaseSettings):
    """Top-level settings assembled from subsections."""

    general: GeneralSettings = Field(default_factory=GeneralSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    auth: AuthSettings = Field(default_factory=AuthSettings)
    sessions: SessionSettings = Field(default_factory=SessionSettings)
    tasks: TaskSettings = Field(default_factory=TaskSettings)
    stats: StatsSettings = Field(default_factory=StatsSettings)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Settings":
        """Load settings from TOML config file, falling back to defaults."""
        if config_path is None:
            config_path = DEFAULT_CONFIG_PATH

        if config_path.exists():
            import toml

            data = toml.load(config_path)
            return cls(
                general=GeneralSettings(**data.get("general", {})),
                server=ServerSettings(**data.get("server", {})),
                auth=AuthSettings(**data.get("auth", {})),
                sessions=SessionSettings(**data.get("sessions", {})),
                tasks=TaskSettings(**data.get("tasks", {})),
                stats=StatsSettings(**data.get("stats", {})),
            )

        return cls()


# Module-level singleton
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings.load()
    return _settings
