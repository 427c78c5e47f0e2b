# app/core/config.py
from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Основные
    APP_ENV: str = Field("production")
    DATABASE_URL: str = Field("sqlite+aiosqlite:///./funnel.db")
    DB_POOL_SIZE: int = Field(10)
    DB_MAX_OVERFLOW: int = Field(20)
    AUTO_CREATE_TABLES: bool = Field(False)
    ALLOWED_ORIGINS: str = Field("http://localhost:3000,http://127.0.0.1:3000")

    # Auth
    JWT_SECRET_KEY: str = Field("change-me")
    JWT_ALGORITHM: str = Field("HS256")
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(60 * 24 * 365)
    PASSWORD_MIN_LENGTH: int = Field(6)
    ADMIN_API_KEY: str = Field("")

    # Assistant (OpenAI Assistants API)
    OPENAI_API_KEY: str = Field("")
    OPENAI_ASSISTANT_ID: str = Field("")
    OPENAI_BASE_URL: str = Field("https://api.openai.com/v1")
    ASSISTANT_POLL_INTERVAL: float = Field(1.0)
    ASSISTANT_MAX_POLL_ATTEMPTS: int = Field(60)

    # Payments
    STRIPE_SECRET_KEY: str = Field("")
    PAYMENT_CURRENCY: str = Field("eur")

    # Email
    RESEND_API_KEY: str = Field("")
    RESEND_API_URL: str = Field("https://api.resend.com")
    RESEND_FROM_EMAIL: str = Field("onboarding@resend.dev")
    EMAIL_FROM_NAME: str = Field("SOS Divorce")
    OPS_EMAIL: str = Field("info.sosdivorce@gmail.com")

    # Rate limiting (empty = disabled, requests are allowed)
    REDIS_URL: str = Field("")

    # Funnel
    FREE_QUESTION_QUOTA: int = Field(2)
    CACHE_TTL_DAYS: int = Field(30)
    STORE_RETRY_ATTEMPTS: int = Field(2)

    # Системные параметры
    LOG_LEVEL: str = Field("INFO")
    LOG_FILE: str = Field("")

    @property
    def allowed_origins(self) -> List[str]:
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.APP_ENV.lower() == "production"


settings = Settings()
