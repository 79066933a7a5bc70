# backend/config.py
from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings
from typing import ClassVar
from pathlib import Path

# Resolve absolute path to the .env file for reliable loading
env_path = Path(__file__).parent.parent / ".env"

class Settings(BaseSettings):
    SECRET_KEY: str = "dev-secret-change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    DATABASE_URL: str = "sqlite:///./database_storefront.db"

    # Stripe credentials; the frontend build historically exposed the key as VITE_*
    STRIPE_SECRET_KEY: str = Field(
        default="",
        validation_alias=AliasChoices("STRIPE_SECRET_KEY", "VITE_STRIPE_SECRET_KEY"),
    )
    STRIPE_API_URL: str = "https://api.stripe.com"
    STRIPE_API_VERSION: str = "2022-11-15"
    DEFAULT_CURRENCY: str = "usd"

    FRONTEND_URL: str = "http://localhost:5173"
    UPLOAD_DIR: str = "static/uploads"

    # Standalone payment relay
    RELAY_PORT: int = 4242
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file: ClassVar[str] = str(env_path)
        extra: ClassVar[str] = "ignore"

settings = Settings()
