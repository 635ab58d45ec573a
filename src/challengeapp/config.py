import os
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import field_validator

class Settings(BaseSettings):
    # Database
    database_url: str = os.environ.get("DATABASE_URL", "sqlite:///challenges.db")
    sql_echo: bool = False

    # Logging
    log_level: str = os.environ.get("LOG_LEVEL", "INFO")
    log_file: Optional[str] = None

    # Metrics
    metrics_enabled: bool = False
    metrics_port: int = 8001

    # API
    api_host: str = "127.0.0.1"
    api_port: int = int(os.environ.get("PORT", 8000))

    @field_validator("log_file", mode="before")
    @classmethod
    def empty_log_file(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
