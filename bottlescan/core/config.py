from pathlib import Path

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parent.parent.parent  # project root
ENV_PATH = BASE_DIR / ".env"

# Load .env into the process environment before Settings reads it
load_dotenv(dotenv_path=ENV_PATH)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        extra="ignore",
        case_sensitive=False,
    )

    DATABASE_URL: str

    JWT_SECRET: str
    JWT_ALG: str = "HS256"
    JWT_ACCESS_MINUTES: int = 60

    LOG_LEVEL: str = "INFO"

    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Phone numbers without a leading "+" get this country code
    DEFAULT_COUNTRY_CODE: str = "91"

    COUPON_CODE_PREFIX: str = "AKUAFI"
    COUPON_CODE_LENGTH: int = 6
    COUPON_CODE_MAX_ATTEMPTS: int = 5

    OTP_LENGTH: int = 6
    OTP_TTL_SECONDS: int = 300
    OTP_RESEND_SECONDS: int = 60
    OTP_MAX_ATTEMPTS: int = 3

    TWO_FACTOR_API_KEY: str = ""
    TWO_FACTOR_BASE_URL: str = "https://2factor.in/API/V1"
    TWO_FACTOR_TEMPLATE: str = "AKUAFI COUPON OTP"
    SMS_TIMEOUT_SECONDS: int = 15
    SMS_MAX_RETRIES: int = 3

    PUBLIC_BASE_URL: str = "https://akuafi.com"
    QR_EXPORT_DIR: str = "./qr_exports"
    QR_MAX_PER_JOB: int = 2000
    QR_WORKER_BATCH_SIZE: int = 200
    QR_JOB_STALE_MINUTES: int = 10

    # Shared secret for the cron-driven QR worker; empty disables the endpoint
    CRON_SECRET: str = ""


settings = Settings()
