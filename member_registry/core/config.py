"""Application settings and environment loading."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Centralized application settings."""

    app_name: str = "Member Registry"
    app_env: Literal["development", "test", "production"] = "development"
    app_debug: bool = False
    secret_key: str = "change-me"
    log_level: str = "INFO"

    database_url: str = "sqlite:///./member_registry.db"

    base_url: str = "http://localhost:3000"
    storage_root: Path = Path("./public")
    max_photo_bytes: int = 5 * 1024 * 1024

    default_page_size: int = 10
    max_page_size: int = 100

    admin_username: str = "admin"
    admin_password: str = "change-me-now"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"

    @property
    def upload_dir(self) -> Path:
        return self.storage_root / "uploads"

    @property
    def qrcode_dir(self) -> Path:
        return self.storage_root / "qrcodes"


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()
