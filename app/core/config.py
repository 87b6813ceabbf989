from functools import lru_cache
from typing import Optional, Any
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "Style Generation API"
    APP_ENV: str = "production"
    LOG_LEVEL: str = "INFO"

    BACKEND_CORS_ORIGINS: str = "*"  # comma-separated list

    DATABASE_URL: str

    JWT_SECRET_KEY: str
    JWT_REFRESH_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    JWT_REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    AUTH_COOKIE_NAME: str = "access_token"
    AUTH_COOKIE_SECURE: bool = True

    # S3 - accepts both the legacy and the canonical env names
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_S3_BUCKET_NAME: Optional[str] = None
    AWS_S3_REGION: str = "us-east-1"
    AWS_S3_ENDPOINT_URL: Optional[str] = None

    # Redis/Celery
    REDIS_URL: str = "redis://localhost:6379/0"
    CELERY_BROKER_URL: Optional[str] = None
    CELERY_RESULT_BACKEND: Optional[str] = None
    CELERY_WORKER_CONCURRENCY: int = 5

    # Google GenAI gateway
    AI_KEY: Optional[str] = None

    # Polar webhooks
    POLAR_WEBHOOK_SECRET: Optional[str] = None
    WEBHOOK_TOLERANCE_SECONDS: int = 300

    # Credits
    DEFAULT_USER_CREDITS: int = 4
    GENERATION_CREDIT_COST: int = 1

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="before")
    @classmethod
    def map_env_names(cls, data: Any) -> Any:
        """Map legacy variable names from .env onto the canonical names."""
        if isinstance(data, dict):
            result = dict(data)

            # env_name -> internal_name
            mappings = [
                ("AWS_ACCESS_KEY", "AWS_ACCESS_KEY_ID"),
                ("AWS_SECRET_KEY", "AWS_SECRET_ACCESS_KEY"),
                ("AWS_BUCKET_NAME", "AWS_S3_BUCKET_NAME"),
                ("REGION", "AWS_S3_REGION"),
            ]

            for env_name, internal_name in mappings:
                if internal_name in result or internal_name.lower() in result:
                    continue
                for key in [env_name, env_name.lower()]:
                    if key in data:
                        result[internal_name] = data[key]
                        break

            return result

        return data

    @model_validator(mode="after")
    def strip_credentials(self):
        """Strip surrounding whitespace and quotes from credentials, keep inner characters."""
        if self.AWS_ACCESS_KEY_ID:
            self.AWS_ACCESS_KEY_ID = self.AWS_ACCESS_KEY_ID.strip().strip('"').strip("'")
        if self.AWS_SECRET_ACCESS_KEY:
            secret = self.AWS_SECRET_ACCESS_KEY.strip()
            # secret keys may contain +, = and / so only outer quotes are removed
            if (secret.startswith('"') and secret.endswith('"')) or (secret.startswith("'") and secret.endswith("'")):
                secret = secret[1:-1]
            self.AWS_SECRET_ACCESS_KEY = secret
        if self.AWS_S3_BUCKET_NAME:
            self.AWS_S3_BUCKET_NAME = self.AWS_S3_BUCKET_NAME.strip().strip('"').strip("'")
        self.AWS_S3_REGION = self.AWS_S3_REGION.strip().strip('"').strip("'")

        if self.DEFAULT_USER_CREDITS < 0:
            raise ValueError("DEFAULT_USER_CREDITS must not be negative")
        if self.GENERATION_CREDIT_COST < 1:
            raise ValueError("GENERATION_CREDIT_COST must be at least 1")
        return self

    @property
    def s3_configured(self) -> bool:
        return bool(self.AWS_ACCESS_KEY_ID and self.AWS_SECRET_ACCESS_KEY and self.AWS_S3_BUCKET_NAME)


@lru_cache
def get_settings() -> Settings:
    return Settings()
