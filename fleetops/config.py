# fleetops/config.py
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # MongoDB settings
    MONGODB_URI: str = "mongodb://localhost:27017"
    MONGODB_DB_NAME: str = "fleetops"

    # Server settings
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    RELOAD: bool = True

    # API settings
    API_PREFIX: str = "/api"
    DEFAULT_PAGE_SIZE: int = 100
    MAX_PAGE_SIZE: int = 1000

    # Logging
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Task-change notifications
    NOTIFICATION_URL: Optional[str] = None
    NOTIFICATION_TIMEOUT: float = 5.0
    NOTIFICATION_RECIPIENT: Optional[str] = None

    # Replay incomplete multi-step writes when the app starts
    RECOVERY_SWEEP_ON_STARTUP: bool = True
    # log entries younger than this may still belong to a live writer
    RECOVERY_GRACE_SECONDS: float = 300.0

@lru_cache()
def get_settings():
    return Settings()
