"""
Application configuration management
"""

from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Venuely"
    APP_VERSION: str = "1.0.0"
    APP_ENV: str = "development"
    DEBUG: bool = False  # Default to production-safe
    SECRET_KEY: str  # Must be provided via environment
    API_PREFIX: str = "/api/v1"
    APP_URL: str = "http://localhost:8000"

    @field_validator('SECRET_KEY')
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        if not v or v == "your-secret-key-change-this-in-production":
            raise ValueError("SECRET_KEY must be set to a secure value in production")
        if len(v) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters long")
        return v

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str  # Must be provided via environment

    @field_validator('DATABASE_URL')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        if v.startswith('postgresql://'):
            v = v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 40
    DB_POOL_TIMEOUT: int = 30
    DB_POOL_RECYCLE: int = 3600
    DB_ECHO: bool = False

    # Redis
    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_MAX_CONNECTIONS: int = 50

    # JWT (tokens are issued by the auth service, we only verify them)
    JWT_SECRET_KEY: str  # Must be provided via environment
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    TOKEN_REVOCATION_ENABLED: bool = True

    # Email
    SENDGRID_API_KEY: str = ""
    SMTP_FROM_EMAIL: str = "noreply@venuely.com"
    SMTP_FROM_NAME: str = "Venuely"
    FRONTEND_URL: str = "http://localhost:3000"

    # eSewa (signature based form post)
    ESEWA_MERCHANT_CODE: str = "EPAYTEST"
    ESEWA_SECRET_KEY: str = ""
    ESEWA_PAYMENT_URL: Optional[str] = None
    ESEWA_STATUS_URL: Optional[str] = None

    # Khalti (token based, server to server)
    KHALTI_SECRET_KEY: str = ""
    KHALTI_INITIATE_URL: Optional[str] = None
    KHALTI_LOOKUP_URL: Optional[str] = None

    GATEWAY_TIMEOUT_SECONDS: float = 15.0

    # Payments
    ADVANCE_PAYMENT_MIN_RATIO: float = 0.20
    PLATFORM_FEE_PERCENTAGE: float = 10.0

    # Booking slot locking: "redis" for multi-instance deployments, "local" for a single process
    BOOKING_LOCK_BACKEND: str = "redis"
    BOOKING_LOCK_TTL_SECONDS: int = 30
    BOOKING_LOCK_WAIT_SECONDS: float = 10.0

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Monitoring
    PROMETHEUS_ENABLED: bool = True
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"

    @field_validator("CORS_ORIGINS", mode="before")
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @field_validator("BOOKING_LOCK_BACKEND")
    @classmethod
    def validate_lock_backend(cls, v: str) -> str:
        if v not in ("redis", "local"):
            raise ValueError("BOOKING_LOCK_BACKEND must be 'redis' or 'local'")
        return v

    @property
    def is_production(self) -> bool:
        return self.APP_ENV == "production"

    @property
    def is_development(self) -> bool:
        return self.APP_ENV == "development"

    @property
    def is_testing(self) -> bool:
        return self.APP_ENV == "testing"

    @property
    def esewa_payment_url(self) -> str:
        if self.ESEWA_PAYMENT_URL:
            return self.ESEWA_PAYMENT_URL
        if self.is_production:
            return "https://epay.esewa.com.np/api/epay/main/v2/form"
        return "https://rc-epay.esewa.com.np/api/epay/main/v2/form"

    @property
    def esewa_status_url(self) -> str:
        if self.ESEWA_STATUS_URL:
            return self.ESEWA_STATUS_URL
        if self.is_production:
            return "https://epay.esewa.com.np/api/epay/transaction/status/"
        return "https://rc.esewa.com.np/api/epay/transaction/status/"

    @property
    def khalti_initiate_url(self) -> str:
        if self.KHALTI_INITIATE_URL:
            return self.KHALTI_INITIATE_URL
        if self.is_production:
            return "https://khalti.com/api/v2/epayment/initiate/"
        return "https://a.khalti.com/api/v2/epayment/initiate/"

    @property
    def khalti_lookup_url(self) -> str:
        if self.KHALTI_LOOKUP_URL:
            return self.KHALTI_LOOKUP_URL
        if self.is_production:
            return "https://khalti.com/api/v2/epayment/lookup/"
        return "https://a.khalti.com/api/v2/epayment/lookup/"

    @property
    def payment_success_url(self) -> str:
        return f"{self.APP_URL}{self.API_PREFIX}/payments/success"

    @property
    def payment_failure_url(self) -> str:
        return f"{self.APP_URL}{self.API_PREFIX}/payments/failure"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Create global settings instance
settings = Settings()
