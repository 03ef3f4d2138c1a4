"""Runtime configuration, read from ZKMIX_* environment variables or a .env file."""

from functools import lru_cache
import logging

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


MAX_DEPOSIT_DEPTH = 64


class MixerSettings(BaseSettings):
    """Mixer deployment settings."""

    model_config = SettingsConfigDict(env_prefix="ZKMIX_", env_file=".env", extra="ignore")

    denomination: int = Field(default=1_000_000_000, gt=0, lt=2**64,
                              description="Fixed amount moved by every deposit and withdrawal")
    deposit_tree_depth: int = Field(default=20, ge=1, le=MAX_DEPOSIT_DEPTH)
    database_url: str = "sqlite:///zkmix.db"
    emit_withdrawal_events: bool = True
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        value = value.upper()
        if not isinstance(logging.getLevelName(value), int):
            raise ValueError(f"Unknown log level: {value}")
        return value


@lru_cache(maxsize=1)
def get_settings() -> MixerSettings:
    """Get or create the process-wide settings."""
    return MixerSettings()


def reset_settings() -> None:
    """Forget cached settings (for testing)."""
    get_settings.cache_clear()


def configure_logging(settings: MixerSettings = None) -> None:
    """Configure root logging for scripts."""
    settings = settings or get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # basicConfig is a no-op once the root logger has handlers
    logging.getLogger("zkmix").setLevel(settings.log_level)
