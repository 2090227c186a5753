"""
Configuration management for the application.
Loads settings from environment variables using Pydantic Settings.
"""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database Configuration
    DATABASE_URL: str = "sqlite:///./lucid_pos.sqlite"

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

    # Application
    APP_NAME: str = "Lucid Hub POS"
    DEBUG: bool = False
    CORS_ORIGINS: str = "http://localhost:5173,http://localhost:3000"
    SEED_DEMO_DATA: bool = False

    # Server-local calendar used for "today" (stats, notification de-duplication)
    TIMEZONE: str = "UTC"

    # Notification Scheduler
    SCHEDULER_ENABLED: bool = True
    NOTIFICATION_INTERVAL_MINUTES: int = 60
    DEFAULT_LOW_STOCK_THRESHOLD: int = 5

    # Checkout
    VERIFY_CLIENT_TOTAL: bool = False  # Reject carts whose total disagrees with the item sum

    # Offline client
    API_BASE_URL: str = "http://localhost:8000/api"
    OFFLINE_QUEUE_DIR: str = "./offline_queue"
    CLIENT_TIMEOUT_SECONDS: float = 10.0

    class Config:
        env_file = ".env"
        case_sensitive = True


# Singleton instance - import this in other modules
settings = Settings()
