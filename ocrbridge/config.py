from __future__ import annotations

from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict


load_dotenv()


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    APP_NAME: str = "tesseract-api"
    API_KEY: Optional[str] = None

    # Engines
    TESSERACT_CMD: Optional[str] = None
    TESSERACT_LANG: str = "deu+eng"
    TESSERACT_CONFIG: str = ""

    # Admission
    TEMP_DIR: str = "/tmp/tesseract-api"
    MAX_IMAGE_BYTES: int = 10 * 1024 * 1024

    # Webhook delivery
    WEBHOOK_TIMEOUT_SECONDS: float = 3.0
    WEBHOOK_MAX_ATTEMPTS: int = 1
    WEBHOOK_BACKOFF_SECONDS: float = 0.5
    WEBHOOK_APPEND_JOB_ID: bool = False

    # Unset keeps terminal jobs forever
    JOB_RETENTION_SECONDS: Optional[float] = None

    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 8600


@lru_cache()
def get_settings() -> Settings:
    return Settings()
