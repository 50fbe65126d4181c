from pydantic_settings import BaseSettings
from typing import List, Optional, Union
from pydantic import field_validator
import json


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # API Settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "Talent Pipeline API"

    # Database Settings
    POSTGRES_USER: str = "user"
    POSTGRES_PASSWORD: str = "password"
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_PORT: str = "5432"
    POSTGRES_DB: str = "talent_db"

    # Full URL override (e.g. sqlite:///./dev.db for local runs)
    SQLALCHEMY_DATABASE_URI: Optional[str] = None

    @property
    def DATABASE_URL(self) -> str:
        if self.SQLALCHEMY_DATABASE_URI:
            return self.SQLALCHEMY_DATABASE_URI
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

    # Redis Settings (Celery broker for the maintenance worker)
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0

    @property
    def REDIS_URL(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    # LLM Settings (any OpenAI-compatible endpoint)
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_MODEL: str = "gpt-4o-mini"
    LLM_TIMEOUT_SECONDS: float = 60.0
    RESUME_LLM_TIMEOUT_SECONDS: float = 120.0

    # Object storage (local disk in development, S3/MinIO in production)
    USE_S3: bool = False
    S3_BUCKET_NAME: str = ""
    S3_ENDPOINT_URL: Optional[str] = None
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION: str = "us-east-1"
    LOCAL_STORAGE_DIR: str = "uploads"

    # Task queues
    ENABLE_SCHEDULERS: bool = True
    POLL_INTERVAL_SECONDS: float = 60.0
    MATCH_CONCURRENCY: int = 3
    SCHEDULE_TIMEZONE: str = "Asia/Shanghai"
    PARSE_DAILY_HOUR: int = 3
    MATCH_DAILY_HOUR: int = 2
    PARSE_STALE_MINUTES: int = 30
    GENERATION_STALE_MINUTES: int = 10
    MATCH_STALE_MINUTES: int = 60
    CLEANUP_STALE_MINUTES: int = 5
    MATCH_PROGRESS_TTL_SECONDS: float = 30 * 60
    DB_UNAVAILABLE_LOG_COOLDOWN_SECONDS: float = 30.0

    # Logging
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = False

    # CORS Settings - can be set as JSON string in .env
    BACKEND_CORS_ORIGINS: Union[List[str], str] = ["http://localhost:3000", "http://localhost:8000"]

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Union[List[str], str]) -> List[str]:
        """Parse CORS origins from JSON string or list"""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                # If not valid JSON, split by comma
                return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("PARSE_DAILY_HOUR", "MATCH_DAILY_HOUR")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        if not 0 <= v <= 23:
            raise ValueError(f"hour out of range: {v}")
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
