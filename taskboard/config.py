"""
Configuration and settings for the Taskboard API.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from taskboard.errors import ConfigurationError


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    api_prefix: str = Field(default="/api")
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=5000)
    log_level: str = Field(default="INFO")

    # Allowed cross-origin caller (the web client)
    client_url: Optional[str] = Field(default=None)

    # Supabase project
    supabase_url: Optional[str] = Field(default=None)
    supabase_service_role_key: Optional[str] = Field(default=None)
    supabase_anon_key: Optional[str] = Field(default=None)
    upstream_timeout_seconds: float = Field(default=10.0, gt=0)

    # Direct Postgres access (optional, bypasses the REST interface)
    database_url: Optional[str] = Field(default=None)

    # Avatar storage
    avatar_bucket: str = Field(default="avatars")
    storage_backend: Literal["supabase", "s3"] = Field(default="supabase")
    s3_endpoint: Optional[str] = Field(default=None)
    s3_region: Optional[str] = Field(default=None)
    s3_access_key_id: Optional[str] = Field(default=None)
    s3_secret_access_key: Optional[str] = Field(default=None)
    avatar_public_base_url: Optional[str] = Field(default=None)

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False, validation_alias="TASKBOARD_USE_IN_MEMORY_BACKENDS"
    )

    def missing_required(self) -> list[str]:
        """Names of required environment variables that are unset."""
        if self.use_in_memory_backends:
            return []
        required = {
            "SUPABASE_URL": self.supabase_url,
            "SUPABASE_SERVICE_ROLE_KEY": self.supabase_service_role_key,
            "SUPABASE_ANON_KEY": self.supabase_anon_key,
        }
        if self.storage_backend == "s3":
            required.update(
                {
                    "S3_ENDPOINT": self.s3_endpoint,
                    "S3_ACCESS_KEY_ID": self.s3_access_key_id,
                    "S3_SECRET_ACCESS_KEY": self.s3_secret_access_key,
                    "AVATAR_PUBLIC_BASE_URL": self.avatar_public_base_url,
                }
            )
        return [name for name, value in required.items() if not value]

    def validate_required(self) -> None:
        missing = self.missing_required()
        if missing:
            raise ConfigurationError(
                "Missing required configuration: " + ", ".join(missing)
            )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
