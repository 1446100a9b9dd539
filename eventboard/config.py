"""
Configuration and settings for the event board backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")

    # Database (SQLite file by default)
    database_url: str = Field(default="sqlite:///database/users.db")

    # Development toggles
    use_in_memory_backends: bool = Field(default=False)

    # S3-compatible storage (DigitalOcean Spaces)
    use_spaces: bool = Field(default=False)
    spaces_endpoint: Optional[str] = Field(default=None)
    spaces_region: str = Field(default="nyc3")
    spaces_bucket: Optional[str] = Field(default=None)
    spaces_access_key: Optional[str] = Field(default=None)
    spaces_secret_key: Optional[str] = Field(default=None)

    # Local storage
    upload_dir: str = Field(default="uploads")
    public_base_url: Optional[str] = Field(default=None)

    # Frontend
    frontend_url: Optional[str] = Field(default=None)
    serve_frontend: bool = Field(default=False)
    static_dir: str = Field(default="build")

    # Upload limits
    max_upload_bytes: int = Field(default=10 * 1024 * 1024)
    max_image_width: int = Field(default=4000)
    max_image_height: int = Field(default=4000)
    crop_output_size: int = Field(default=1000)

    # Voting / SMS
    vote_letters: str = Field(default="ABCDEF")
    default_auto_reply: str = Field(default="Thank you for your pledge!")

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3001)
    log_level: str = Field(default="INFO")

    @property
    def storage_type(self) -> str:
        return "spaces" if self.use_spaces else "local"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
