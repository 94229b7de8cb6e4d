"""
Module: config.py
Description: Process-wide configuration for the Expense Tracker API.

Settings are read from environment variables (and an optional .env file)
exactly once, then shared read-only for the lifetime of the process.

Usage:
    from config import get_settings

    settings = get_settings()
    engine = build_engine(settings.database_url)

Author: Expense Tracker Team
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache

from dotenv import load_dotenv


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def _env_list(name: str, default: str) -> list[str]:
    raw = os.getenv(name, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    """Immutable application settings."""

    database_url: str = "sqlite:///./expense_tracker.db"

    # Text generation
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    currency_symbol: str = "₹"

    # Auth
    jwt_secret: str = "dev-only-secret-change-me-before-deploying"
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 168
    auth_bypass: bool = False
    auth_bypass_user_id: str = "demo_user_123"

    # Object storage
    cloudinary_cloud_name: str = ""
    cloudinary_api_key: str = ""
    cloudinary_api_secret: str = ""
    cloudinary_folder: str = "expense-tracker/uploads"

    cors_origins: list[str] = field(default_factory=list)
    log_level: str = "INFO"

    @property
    def storage_configured(self) -> bool:
        return bool(
            self.cloudinary_cloud_name
            and self.cloudinary_api_key
            and self.cloudinary_api_secret
        )


def load_settings() -> Settings:
    """Build a Settings instance from the current environment."""
    load_dotenv()

    return Settings(
        database_url=os.getenv("DATABASE_URL", Settings.database_url),
        openai_api_key=os.getenv("OPENAI_API_KEY", "").strip(),
        openai_model=os.getenv("OPENAI_MODEL", Settings.openai_model),
        currency_symbol=os.getenv("CURRENCY_SYMBOL", Settings.currency_symbol),
        jwt_secret=os.getenv("JWT_SECRET", Settings.jwt_secret),
        jwt_algorithm=os.getenv("JWT_ALGORITHM", Settings.jwt_algorithm),
        jwt_expire_hours=int(os.getenv("JWT_EXPIRE_HOURS", str(Settings.jwt_expire_hours))),
        auth_bypass=_env_bool("AUTH_BYPASS"),
        auth_bypass_user_id=os.getenv("AUTH_BYPASS_USER_ID", Settings.auth_bypass_user_id),
        cloudinary_cloud_name=os.getenv("CLOUDINARY_CLOUD_NAME", ""),
        cloudinary_api_key=os.getenv("CLOUDINARY_API_KEY", ""),
        cloudinary_api_secret=os.getenv("CLOUDINARY_API_SECRET", ""),
        cloudinary_folder=os.getenv("CLOUDINARY_FOLDER", Settings.cloudinary_folder),
        cors_origins=_env_list(
            "CORS_ORIGINS", "http://localhost:5173,http://localhost:3000"
        ),
        log_level=os.getenv("LOG_LEVEL", Settings.log_level).upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload after changing the environment.
    """
    return load_settings()
