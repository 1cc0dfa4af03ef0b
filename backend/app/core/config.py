from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    APP_NAME: str = "MedicX Clinic Management"
    VERSION: str = "1.0.0"
    SECRET_KEY: str = "change-me-in-production-use-strong-random-key"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7

    DATABASE_URL: str = "sqlite:///./medicx.db"

    # Credential verification: "hash" (local bcrypt users) or "external" (identity provider)
    AUTH_BACKEND: str = "hash"
    IDENTITY_PROVIDER_URL: Optional[str] = None
    IDENTITY_PROVIDER_API_KEY: Optional[str] = None
    IDENTITY_PROVIDER_TIMEOUT: int = 10
    IDENTITY_PROVIDER_MOCK_MODE: bool = False  # Development only: accepts any known user with a non-empty password

    # Inventory
    LOW_STOCK_THRESHOLD: int = 10
    STOCK_CACHE_WRITE_BACK: bool = True  # Persist recomputed quantity as a hint on medicines.total_quantity

    # Medicine usage reports
    USAGE_PAGE_SIZE: int = 10
    USAGE_ORPHAN_POLICY: str = "drop"  # "drop" silently, or "surface" as data-integrity issues

    # Reception reports are numbered from here on
    REPORT_NUMBER_START: int = 2001

    SEED_DEMO_DATA: bool = True

    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    class Config:
        env_file = ".env"


settings = Settings()
