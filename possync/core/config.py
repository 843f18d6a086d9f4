from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "POS Order Sync"
    APP_PORT: int = 9210
    DEBUG: bool = False

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "possync"
    POSTGRES_PORT: int = 5432
    SQLALCHEMY_DATABASE_URI: Optional[str] = None

    # Logging
    LOGS_PATH: str = "/tmp/possync_logs"
    LOG_LEVEL: str = "INFO"

    # Toast API
    TOAST_API_HOSTNAME: str = "https://ws-api.toasttab.com"
    TOAST_PAGE_SIZE: int = 100  # API maximum
    TOAST_HTTP_TIMEOUT: float = 30.0
    TOKEN_REFRESH_BUFFER_SECONDS: int = 300

    # Sync
    SYNC_DAYS_BACK: int = 30
    SYNC_POLL_INTERVAL_SECONDS: int = 60
    SYNC_BACKOFF_BASE_SECONDS: float = 1.0
    SYNC_BACKOFF_CAP_SECONDS: float = 32.0
    SYNC_BACKOFF_JITTER: float = 0.1
    SYNC_TENANT_ID: Optional[str] = None
    SYNC_API_URL: str = "http://localhost:9210"

    @property
    def DATABASE_URL(self) -> str:
        if self.SQLALCHEMY_DATABASE_URI:
            return self.SQLALCHEMY_DATABASE_URI
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    class Config:
        env_file = ".env"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
