from __future__ import annotations
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings, read from the environment (and `.env` when present)."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore", case_sensitive=True)

    # project
    PROJECT_NAME: str = "Partner Marketplace API"
    API_V1_PREFIX: str = "/api/v1"
    BACKEND_BASE_URL: str = "http://localhost:8000"
    LOG_LEVEL: str = "INFO"

    # mongo
    MONGO_URI: str = "mongodb://localhost:27017"
    MONGO_DB: str = "marketplace"
    GRIDFS_BUCKET: str = "uploads"

    # redis
    REDIS_HOST: str = "redis://localhost:6379/0"
    OTP_RESEND_COOLDOWN_SECONDS: int = 60

    # jwt
    JWT_ACCESS_TOKEN_SECRET: str = "change-me-access"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    FILE_URL_EXPIRE_MINUTES: int = 15

    # mail
    MAIL_USERNAME: str = ""
    MAIL_PASSWORD: str = ""
    MAIL_FROM: str = "no-reply@example.com"
    MAIL_FROM_NAME: str = "Partner Marketplace"
    MAIL_SERVER: str = "localhost"
    MAIL_PORT: int = 587
    MAIL_STARTTLS: bool = True
    MAIL_SSL_TLS: bool = False

    # twilio
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_PHONE_NUMBER: Optional[str] = None

    # notification side channel
    NOTIFY_TIMEOUT_SECONDS: float = 10.0

    # ocr
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-1.5-flash"
    GEMINI_BASE_URL: str = "https://generativelanguage.googleapis.com/v1beta"
    OCR_TIMEOUT_SECONDS: float = 30.0

    # encryption (Fernet key, urlsafe base64)
    AADHAAR_ENC_KEY: str = ""

    # uploads
    UPLOAD_ALLOWED_TYPES: str = "image/jpeg,image/png,image/webp"
    UPLOAD_MAX_BYTES: int = 5 * 1024 * 1024

    # otp
    OTP_MAX_ATTEMPTS: int = 3
    OTP_ORDER_TTL_MINUTES: int = 30
    OTP_VERIFICATION_TTL_MINUTES: int = 10
    OTP_RETENTION_DAYS: int = 7

    # pricing
    PRICING_BASE_FEE: float = 50.0
    PRICING_PER_KM: float = 10.0
    PRICING_PER_KG: float = 5.0
    PRICING_TAX_RATE: float = 0.18
    PRICING_SURCHARGE_STANDARD: float = 25.0
    PRICING_SURCHARGE_SCHEDULED: float = 50.0
    PRICING_SURCHARGE_EXPRESS: float = 100.0
    PRICING_SURCHARGE_SAME_DAY: float = 200.0

    # tracking
    LOCATION_MIN_INTERVAL_SECONDS: float = 5.0
    LOCATION_MAX_SPEED_KMH: float = 120.0
    LOCATION_ACTIVE_WINDOW_MINUTES: int = 15
    LOCATION_RETENTION_DAYS: int = 30


settings = Settings()
