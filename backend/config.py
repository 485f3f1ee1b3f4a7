from __future__ import annotations
import logging
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Spreadsheet used as the datastore; unset runs against in-memory demo rows
    SHEET_ID: Optional[str] = None
    GOOGLE_APPLICATION_CREDENTIALS: Optional[str] = None
    GOOGLE_APPLICATION_CREDENTIALS_JSON: Optional[str] = None

    SMTP_HOST: str = "smtp.gmail.com"
    SMTP_PORT: int = 587
    SMTP_SECURE: bool = False
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    SMTP_FROM: str = "\"SPLASH'N'GO!\" <noreply@splashngo.example.com>"

    ADMIN_EMAIL: str = "admin@admin.com"
    ADMIN_PASSWORD: str = "admin"

    LINE_CHANNEL_ACCESS_TOKEN: Optional[str] = None
    LINE_GROUP_ID: Optional[str] = None
    LINE_MESSAGE_API_KEY: Optional[str] = None

    CACHE_TTL_SECONDS: float = 300.0
    APPAREL_SHIPPING_FEE: float = 1000.0
    PARTNER_NOTIFY_ATTEMPTS: int = 3
    PARTNER_NOTIFY_BACKOFF_SECONDS: float = 1.0
    SURFACE_PARTNER_FAILURES: bool = True

    LOG_LEVEL: str = "INFO"
    PORT: int = 8000


settings = Settings()


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
