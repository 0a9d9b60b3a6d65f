"""Configuration management for SiteCrew."""

from __future__ import annotations

import os
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sitecrew.core.exceptions import ConfigurationError


class NotifierType(str, Enum):
    """Supported invitation email channels."""

    MAILGUN = "mailgun"
    LOG = "log"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    CONSOLE = "console"


# ============================================================================
# Database Configuration
# ============================================================================
class DatabaseConfig(BaseModel):
    """Tenancy store connection settings."""

    url: str = Field(default="sqlite:///./sitecrew.db", description="SQLAlchemy database URL")
    pool_size: int = Field(default=5, ge=1)
    max_overflow: int = Field(default=10, ge=0)
    echo: bool = Field(default=False)


# ============================================================================
# Invitation Configuration
# ============================================================================
class InvitationConfig(BaseModel):
    """Invitation lifecycle settings."""

    expiry_days: int = Field(default=7, ge=1, le=30)
    max_pending_per_company: int = Field(default=50, ge=1)
    # When False a full company only logs a warning at creation time;
    # capacity is always re-checked when the invitation is accepted.
    enforce_seats_on_create: bool = Field(default=False)
    base_url: str = Field(default="http://localhost:3000", description="Public app URL for accept links")

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")


# ============================================================================
# Notification Configuration
# ============================================================================
class MailgunConfig(BaseModel):
    """Mailgun delivery settings."""

    api_key: str | None = Field(default=None)
    domain: str | None = Field(default=None)
    base_url: str = Field(default="https://api.mailgun.net/v3")
    from_email: str = Field(default="noreply@sitecrew.app")


class NotificationConfig(BaseModel):
    """Outbound notification settings."""

    channel: NotifierType = Field(default=NotifierType.LOG)
    timeout_seconds: float = Field(default=10.0, gt=0)
    mailgun: MailgunConfig = Field(default_factory=MailgunConfig)


# ============================================================================
# Identity Configuration
# ============================================================================
class IdentityConfig(BaseModel):
    """External identity provider settings."""

    user_endpoint: str = Field(default="http://localhost:54321/auth/v1/user")
    api_key: str | None = Field(default=None, description="Project key sent as 'apikey' header")
    timeout_seconds: float = Field(default=5.0, gt=0)


class CacheConfig(BaseModel):
    """Identity session cache settings."""

    enabled: bool = Field(default=True)
    ttl_seconds: int = Field(default=300, ge=1)
    max_entries: int = Field(default=10000, ge=1)


# ============================================================================
# Logging Configuration
# ============================================================================
class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO")
    format: LogFormat = Field(default=LogFormat.JSON)
    file: str | None = Field(default=None)
    sanitize: bool = Field(default=True)


# ============================================================================
# Main Settings
# ============================================================================
class Settings(BaseSettings):
    """Main settings for SiteCrew."""

    model_config = SettingsConfigDict(
        env_prefix="SITECREW_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    environment: str = Field(default="development")
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    invitations: InvitationConfig = Field(default_factory=InvitationConfig)
    notifications: NotificationConfig = Field(default_factory=NotificationConfig)
    identity: IdentityConfig = Field(default_factory=IdentityConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        with open(path) as f:
            try:
                config_dict = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

        config_dict = cls._expand_env_vars(config_dict)

        return cls(**config_dict)

    @classmethod
    def _expand_env_vars(cls, config: Any) -> Any:
        """Recursively expand ${VAR} and ${VAR:default} references."""
        if isinstance(config, dict):
            return {k: cls._expand_env_vars(v) for k, v in config.items()}
        elif isinstance(config, list):
            return [cls._expand_env_vars(item) for item in config]
        elif isinstance(config, str):
            if config.startswith("${") and "}" in config:
                var_part = config[2 : config.index("}")]
                if ":" in var_part:
                    var_name, default = var_part.split(":", 1)
                else:
                    var_name, default = var_part, None

                value = os.environ.get(var_name, default)
                return value if value is not None else config
            return config
        return config

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    def accept_url(self, token: str) -> str:
        """Build the link that carries an invitation token."""
        return f"{self.invitations.base_url}/invitations/accept?token={token}"


@lru_cache
def get_settings(config_path: str | None = None) -> Settings:
    """Get cached settings instance."""
    if config_path:
        return Settings.from_yaml(config_path)

    default_paths = [
        Path("config/sitecrew.yaml"),
        Path("sitecrew.yaml"),
        Path.home() / ".sitecrew" / "settings.yaml",
    ]

    for path in default_paths:
        if path.exists():
            return Settings.from_yaml(path)

    return Settings()
