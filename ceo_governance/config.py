"""Audit trail configuration via pydantic-settings."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import ValidationError as PydanticValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ceo_governance.audit.exceptions import ConfigurationError


class AuditSettings(BaseSettings):
    """Audit settings loaded from environment.

    Security rules:
    - Production: a stable ``signing_key`` is required
    - ``require_signing_key``: same rule in any environment
    - Otherwise a missing key is replaced by a random one per logger,
      and signatures cannot be re-verified after a restart
    """

    model_config = SettingsConfigDict(
        env_prefix="AUDIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # === SIGNING ===
    signing_key: str | None = None
    require_signing_key: bool = False

    # === STORAGE ===
    storage_type: Literal["file", "memory"] = "file"
    log_path: str = "data/audit/audit.log"
    fsync: bool = False

    environment: Literal["production", "staging", "development", "test"] = (
        "development"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    @model_validator(mode="after")
    def validate_signing_key(self) -> "AuditSettings":
        """Enforce a stable signing key where signatures must survive restarts."""
        if self.signing_key == "":
            self.signing_key = None
        if self.signing_key is None and self.signing_key_required:
            raise ValueError(
                "SECURITY ERROR: AUDIT_SIGNING_KEY must be set in production "
                "(or when AUDIT_REQUIRE_SIGNING_KEY is enabled)."
            )
        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.environment == "production"

    @property
    def signing_key_required(self) -> bool:
        return self.require_signing_key or self.is_production


def load_settings(**overrides: Any) -> AuditSettings:
    """Build settings from the environment plus explicit overrides."""
    try:
        return AuditSettings(**overrides)
    except PydanticValidationError as exc:
        raise ConfigurationError(str(exc)) from exc


@lru_cache
def get_settings() -> AuditSettings:
    """Process-wide settings, read once from the environment."""
    return load_settings()
