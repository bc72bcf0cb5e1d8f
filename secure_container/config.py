import logging
from pathlib import Path
from typing import Any

from pydantic import (
    Field,
    ModelWrapValidatorHandler,
    PrivateAttr,
    computed_field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import (
    DATABASE_PASSWORD_SECRET,
    DEFAULT_HOST,
    DEFAULT_PORT,
    DEFAULT_SECRET_NAMES,
    DEFAULT_SECRETS_DIR,
    DEFAULT_SHUTDOWN_TIMEOUT,
    MAX_PORT,
    MIN_PORT,
    UNKNOWN_IDENTITY,
)
from .logging_config import get_logger

logger = get_logger(__name__)


def _parse_port(value: Any) -> int | None:
    """Return the port as an int, or None when it is not a usable TCP port."""
    try:
        port = int(value)
    except (TypeError, ValueError):
        return None
    return port if MIN_PORT <= port <= MAX_PORT else None


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env files.

    Secret values are deliberately not part of the settings: they are read
    from files under ``secrets_dir`` by the secret loader.
    """

    # Server configuration
    host: str = Field(default=DEFAULT_HOST, description="Server bind address")
    port: int = Field(
        default=DEFAULT_PORT, ge=MIN_PORT, le=MAX_PORT, description="Server port"
    )
    shutdown_timeout: float = Field(
        default=DEFAULT_SHUTDOWN_TIMEOUT,
        gt=0,
        description="Seconds to wait for in-flight requests on shutdown",
    )

    # Secrets configuration
    secrets_dir: Path = Field(
        default=DEFAULT_SECRETS_DIR,
        description="Directory holding one mounted file per secret",
    )
    secret_names: tuple[str, ...] = Field(
        default=DEFAULT_SECRET_NAMES, description="Secrets read at startup"
    )
    status_secret: str = Field(
        default=DATABASE_PASSWORD_SECRET,
        description="Secret whose presence is reported on the status page",
    )

    # Identity (cosmetic only, the privilege check uses the effective uid)
    user: str = Field(default=UNKNOWN_IDENTITY, description="Running account name")

    # Application configuration
    app_name: str = Field(default="Secure Container Demo", description="App name")
    version: str = Field(default="0.1.0", description="Application version")

    # Logging configuration
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str | None = Field(
        default=None, description="Override the level derived from debug mode"
    )
    log_to_file: bool = Field(
        default=False, description="Also write logs to logs/secure-container.log"
    )

    # Pydantic Settings configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    _rejected_port: str | None = PrivateAttr(default=None)

    @model_validator(mode="wrap")
    @classmethod
    def fall_back_on_invalid_port(
        cls, data: Any, handler: ModelWrapValidatorHandler["Settings"]
    ) -> "Settings":
        """Replace a non-numeric or out-of-range port with the default.

        The rejected value is kept so log_fallbacks() can report it once
        logging is configured.
        """
        rejected = None
        if isinstance(data, dict) and "port" in data:
            port = _parse_port(data["port"])
            if port is None:
                rejected = str(data["port"])[:50]
            data = {**data, "port": DEFAULT_PORT if port is None else port}

        settings = handler(data)
        settings._rejected_port = rejected
        return settings

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str | None) -> str | None:
        """Normalize the log level name and reject unknown ones."""
        if v is None:
            return None
        level = v.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return not self.debug

    def log_fallbacks(self) -> None:
        """Report values that were replaced by defaults.

        Called once logging is configured, validation runs before that.
        """
        if self._rejected_port is not None:
            logger.warning(
                "Invalid PORT value, falling back to default",
                value=self._rejected_port,
                default=DEFAULT_PORT,
            )


def get_settings(**overrides: Any) -> Settings:
    """Build a fresh settings object, letting explicit overrides win over env."""
    return Settings(**{k: v for k, v in overrides.items() if v is not None})
