"""
Configuration management for the application.
Loads settings from environment variables using Pydantic Settings.
"""

from typing import Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./retail_pos.sqlite"
    DATABASE_MODE: Literal["cloud", "local"] = "cloud"

    @property
    def database_url_async(self) -> str:
        """
        Transform DATABASE_URL to use the appropriate async driver.
        - PostgreSQL: postgresql+asyncpg://...
        - SQLite: sqlite+aiosqlite:///...
        """
        if self.DATABASE_URL.startswith("postgresql://"):
            return self.DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)
        elif self.DATABASE_URL.startswith("postgres://"):
            return self.DATABASE_URL.replace("postgres://", "postgresql+asyncpg://", 1)
        elif self.DATABASE_URL.startswith("sqlite://"):
            return self.DATABASE_URL.replace("sqlite://", "sqlite+aiosqlite://", 1)
        return self.DATABASE_URL

    # Security
    SECRET_KEY: str = "change-me-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480  # 8 hours

    # Application
    APP_NAME: str = "Retail POS API"
    DEBUG: bool = False
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"
    SEED_DEMO_DATA: bool = False
    DEFAULT_TIMEZONE: str = "Asia/Kolkata"

    # Billing
    # 'atomic' runs checkout/payment writes in one transaction with conditional
    # updates; 'sequential' replays the independent read-then-write steps.
    CONSISTENCY_MODE: Literal["atomic", "sequential"] = "atomic"
    BILL_NUMBER_MAX_ATTEMPTS: int = 5
    BILLS_PAGE_SIZE: int = 20

    class Config:
        env_file = ".env"
        case_sensitive = True


# Singleton instance - import this in other modules
settings = Settings()
