import os
from typing import List, Optional

from pydantic_settings import BaseSettings
from dotenv import load_dotenv

# Always load .env from root
BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(__file__)))
load_dotenv(os.path.join(BASE_DIR, ".env"))


class Settings(BaseSettings):
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"

    DATABASE_URL: Optional[str] = None
    DB_USER: Optional[str] = None
    DB_PASS: Optional[str] = None
    DB_HOST: Optional[str] = None
    DB_PORT: str = "5432"
    DB_NAME: str = "shelf_rentals"

    # Commission / tax (percent for commissions, fraction for tax)
    PLATFORM_COMMISSION_RATE: Optional[float] = 22.0
    TAX_RATE: float = 0.15

    # Lifecycle
    PENDING_REQUEST_TTL_HOURS: int = 48
    REMINDER_DAYS: List[int] = [7, 3, 1]
    CLEARANCE_STALL_DAYS: int = 7

    # Tap transfers
    TAP_API_URL: str = "https://api.tap.company/v2/transfers"
    TAP_SECRET_KEY: Optional[str] = None
    PAYOUT_CURRENCY: str = "SAR"

    # Chat service (conversation system messages)
    CHAT_SERVICE_URL: Optional[str] = None
    CHAT_SERVICE_TOKEN: Optional[str] = None
    NOTIFICATION_MAX_ATTEMPTS: int = 5

    DOCUMENT_DIR: str = os.path.join(BASE_DIR, "storage", "clearance_documents")
    HTTP_TIMEOUT_SECONDS: int = 15

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()


def build_database_url(config: Settings) -> str:
    if config.DATABASE_URL:
        return config.DATABASE_URL
    if config.DB_HOST:
        return (
            f"postgresql+psycopg2://{config.DB_USER}:{config.DB_PASS}@{config.DB_HOST}:{config.DB_PORT}/{config.DB_NAME}?sslmode=require"
        )
    return f"sqlite:///{os.path.join(BASE_DIR, 'shelf_rentals.db')}"


RENTAL_DATABASE_URL = build_database_url(settings)
