"""
Application settings loaded from environment variables.
Uses pydantic-settings for type-safe configuration.

Only operational knobs live here. Protocol constants (name/room limits,
heartbeat and rate-limit timings) are fixed and defined in
presence_gateway.components.core.constants.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with defaults for development."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    presence_gateway_host: str = "0.0.0.0"
    presence_gateway_port: int = 8000

    # Environment
    environment: str = "development"
    debug: bool = True

    # Comma-separated list of allowed origins for the HTTP routes (empty = "*")
    allowed_origins: str = ""

    # Who receives userJoined / userLeft notifications:
    # "room"   - only connections sharing the departed/joining connection's room
    # "global" - every open connection
    presence_broadcast_scope: Literal["room", "global"] = "room"

    def get_allowed_origins(self) -> list[str]:
        """Parse allowed_origins into a list, defaulting to wildcard."""
        origins = [o.strip() for o in self.allowed_origins.split(",") if o.strip()]
        return origins or ["*"]

    def validate_production_settings(self) -> list[str]:
        """
        Validate settings for production deployments.
        Returns a list of validation errors. Empty list means all checks pass.
        """
        errors = []

        if self.environment == "production":
            if self.debug:
                errors.append("DEBUG must be False in production")

            if not self.allowed_origins:
                errors.append(
                    "ALLOWED_ORIGINS must be set in production (comma-separated list of allowed domains)"
                )

        return errors


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export
settings = get_settings()
