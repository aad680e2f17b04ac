from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    ENV: str = "dev"                # "dev" / "staging" / "prod"
    SERVICE_NAME: str = "laem-storefront"
    ENABLE_ADMIN: bool = True
    ENABLE_METRICS: bool = False
    ADMIN_TOKEN: Optional[str] = None          # shared admin password
    ADMIN_SESSION_SECRET: Optional[str] = None # falls back to ADMIN_TOKEN
    ADMIN_SESSION_ALGO: str = "HS256"
    ADMIN_SESSION_TTL_SECONDS: int = 60 * 60 * 12

    class Config:
        env_file = ".env"
        extra="ignore"

admin_config = Settings()
