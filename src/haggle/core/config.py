# haggle/core/config.py
from dotenv import load_dotenv
load_dotenv(".env")
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, computed_field
from typing import List, Literal

class Settings(BaseSettings):
    # model_config loads .env automatically
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', extra='ignore')

    # Application
    APP_ENV: Literal["development", "test", "production"] = "development"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    APP_BASE_URL: str = Field("http://localhost:8000", description="Public URL the billing provider redirects back to.")
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    # --- Database ---
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = "haggle"
    DB_PASSWORD: str = "haggle"
    DB_NAME: str = "haggle"
    DB_POOL_SIZE: int = 5
    DB_POOL_RECYCLE_SECONDS: int = 3600

    @computed_field
    @property
    def DATABASE_URL(self) -> str:
        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # --- Test database ---
    # Left empty, the test suite runs against an in-process SQLite database.
    DB_TEST_URL: str = ""

    @computed_field
    @property
    def DATABASE_URL_TEST(self) -> str:
        return self.DB_TEST_URL or "sqlite+aiosqlite://"

    # JWT
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # --- Billing provider (Shopify recurring application charges) ---
    SHOPIFY_API_VERSION: str = "2024-04"
    SHOPIFY_API_SECRET: str = Field("", description="Shared secret used to verify billing webhooks.")
    SHOPIFY_HTTP_TIMEOUT: float = 30.0

    # --- Membership defaults ---
    FREE_PLAN_SLUG: str = "free"
    # Used only when the free plan row itself cannot be read.
    DEFAULT_FREE_PRODUCT_LIMIT: int = Field(10, gt=0)
    STALE_PENDING_HOURS: int = 24

    @computed_field
    @property
    def BILLING_TEST_MODE(self) -> bool:
        return self.APP_ENV != "production"

settings = Settings()
