from typing import Optional
from pydantic_settings import BaseSettings

class Settings(BaseSettings):

    REDIS_URL: str = "redis://localhost:6379/0"
    REDIS_TIMEOUT_SECONDS: float = 2.0
    SITE_URL: Optional[str] = None
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_API_BASE: str = "https://api.stripe.com/v1"
    STRIPE_WEBHOOK_PATH: str = "/api/stripe/webhook"
    STRIPE_WEBHOOK_TOLERANCE_SECONDS: int = 300
    CHECKOUT_CURRENCY: str = "usd"
    RESEND_API_KEY: Optional[str] = None
    RESEND_API_BASE: str = "https://api.resend.com"
    EMAIL_FROM: Optional[str] = None
    INVENTORY_ALERT_EMAIL: Optional[str] = None
    LOW_STOCK_THRESHOLD: int = 2
    RATE_LIMIT_CHECKOUT_MAX: int = 20
    RATE_LIMIT_CHECKOUT_WINDOW_SECONDS: int = 60
    RATE_LIMIT_LOGIN_MAX: int = 10
    RATE_LIMIT_LOGIN_WINDOW_SECONDS: int = 300
    BLOB_READ_WRITE_TOKEN: Optional[str] = None
    BLOB_API_BASE: str = "https://blob.vercel-storage.com"

    class Config:
        env_file = ".env"
        extra="ignore"

config_settings = Settings()
