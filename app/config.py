# file: app/config.py

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _database_url() -> str:
    url = os.getenv("DATABASE_URL")
    if url:
        return url

    db_password = os.getenv("DB_PASSWORD")
    if db_password:
        return (
            f"postgresql+asyncpg://{os.getenv('DB_USER')}:{db_password}"
            f"@{os.getenv('DB_HOST')}:{os.getenv('DB_PORT')}/{os.getenv('DB_NAME')}"
        )

    return "sqlite+aiosqlite:///./notifications.db"


@dataclass(frozen=True)
class Settings:
    database_url: str
    firebase_credentials: Optional[str]
    firebase_project_id: Optional[str]
    firebase_private_key: Optional[str]
    firebase_private_key_id: Optional[str]
    firebase_client_email: Optional[str]
    firebase_client_id: Optional[str]
    firebase_cert_url: Optional[str]
    events_api_key: Optional[str]
    currency: str = "EGP"
    customer_topic: str = "customers"
    queue_retention_days: int = 7
    token_retention_days: int = 30
    sweep_timezone: str = "Africa/Cairo"
    sweep_hour: int = 0
    queue_poll_seconds: int = 30
    fcm_dry_run: bool = False
    log_level: str = "INFO"

    @property
    def has_service_account(self) -> bool:
        return bool(self.firebase_project_id and self.firebase_private_key and self.firebase_client_email)


@lru_cache
def get_settings() -> Settings:
    return Settings(
        database_url=_database_url(),
        firebase_credentials=os.getenv("FIREBASE_CREDENTIALS"),
        firebase_project_id=os.getenv("FIREBASE_PROJECT_ID"),
        firebase_private_key=os.getenv("FIREBASE_PRIVATE_KEY"),
        firebase_private_key_id=os.getenv("FIREBASE_PRIVATE_KEY_ID"),
        firebase_client_email=os.getenv("FIREBASE_CLIENT_EMAIL"),
        firebase_client_id=os.getenv("FIREBASE_CLIENT_ID"),
        firebase_cert_url=os.getenv("FIREBASE_CERT_URL"),
        events_api_key=os.getenv("EVENTS_API_KEY"),
        currency=os.getenv("NOTIFICATION_CURRENCY", "EGP"),
        customer_topic=os.getenv("CUSTOMER_TOPIC", "customers"),
        queue_retention_days=int(os.getenv("QUEUE_RETENTION_DAYS", "7")),
        token_retention_days=int(os.getenv("TOKEN_RETENTION_DAYS", "30")),
        sweep_timezone=os.getenv("SWEEP_TIMEZONE", "Africa/Cairo"),
        sweep_hour=int(os.getenv("SWEEP_HOUR", "0")),
        queue_poll_seconds=int(os.getenv("QUEUE_POLL_SECONDS", "30")),
        fcm_dry_run=os.getenv("FCM_DRY_RUN", "false").lower() in ("1", "true", "yes"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
