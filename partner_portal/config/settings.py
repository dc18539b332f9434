import os
from typing import List
from pydantic_settings import BaseSettings
from datetime import timedelta
from pathlib import Path
PACKAGE_DIR = Path(__file__).parent.parent.absolute()


class Settings(BaseSettings):
    # Basic API settings
    PROJECT_NAME: str = "Partner Portal API"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api"
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")

    # Security
    SECRET_KEY: str = os.getenv("SECRET_KEY", "development-key-change-this-in-production")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    ALGORITHM: str = "HS256"

    # Rate limiting
    RATE_LIMIT_PER_MINUTE: int = 120
    DISABLE_RATE_LIMIT: bool = False

    # Database
    DATABASE_URL: str = os.getenv(
        "DATABASE_URL",
        f"sqlite:///{PACKAGE_DIR}/partner_portal.db"
    )
    POOL_SIZE: int = 5
    MAX_OVERFLOW: int = 10
    AUTO_CREATE_TABLES: bool = True

    # Public application URL used in activation and invitation links
    APP_URL: str = "https://business.moilapp.com"

    # Outbound email
    FROM_EMAIL: str = "Moil Partners <partners@moilapp.com>"
    RESEND_API_KEY: str = os.getenv("RESEND_API_KEY", "")
    RESEND_API_URL: str = "https://api.resend.com"
    EMAIL_BATCH_SIZE: int = 100  # provider limit per batch call
    EMAIL_REQUESTS_PER_SECOND: float = 2.0
    EMAIL_TIMEOUT_SECONDS: float = 15.0

    # External activation service (optional)
    ACTIVATION_SERVICE_URL: str = os.getenv("ACTIVATION_SERVICE_URL", "")
    ACTIVATION_API_KEY: str = os.getenv("ACTIVATION_API_KEY", "")
    ACTIVATION_TIMEOUT_SECONDS: float = 10.0

    # Branding defaults
    DEFAULT_PROGRAM_NAME: str = "Moil Partners"
    DEFAULT_LOGO_URL: str = (
        "https://res.cloudinary.com/drlcisipo/image/upload/v1705704261/"
        "Website%20images/logo_gox0fw.png"
    )
    DEFAULT_LOGO_INITIAL: str = "M"
    DEFAULT_PRIMARY_COLOR: str = "#5843BE"
    DEFAULT_SECONDARY_COLOR: str = "#FF6633"
    DEFAULT_SUPPORT_EMAIL: str = "support@moilapp.com"
    DEFAULT_LICENSE_DURATION: str = "12 months"
    DEFAULT_ORG_SLUG: str = "moil-partners"
    DUPLICATE_CONTACT_EMAIL: str = "cs@moilapp.com"
    # Receives self-service partner requests with their one-click approval link
    PARTNER_REQUESTS_EMAIL: str = "partners@moilapp.com"

    # Licenses
    LICENSE_PAGE_SIZE: int = 50
    LICENSE_PAGE_MAX: int = 100
    EMAIL_STATUS_SYNC_LIMIT: int = 50  # provider lookups per sync call

    # Teams
    INVITATION_EXPIRE_DAYS: int = 7
    ACTIVITY_PAGE_SIZE: int = 20

    # CORS settings
    ALLOWED_ORIGINS: List[str] = ["*"]  # Change in production
    ALLOWED_METHODS: List[str] = ["*"]
    ALLOWED_HEADERS: List[str] = ["*"]

    # Documentation
    ENABLE_DOCS: bool = True

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def ACCESS_TOKEN_EXPIRE_DELTA(self) -> timedelta:
        return timedelta(minutes=self.ACCESS_TOKEN_EXPIRE_MINUTES)

    @property
    def INVITATION_EXPIRE_DELTA(self) -> timedelta:
        return timedelta(days=self.INVITATION_EXPIRE_DAYS)

    @property
    def DATABASE_SETTINGS(self) -> dict:
        if self.DATABASE_URL.startswith("sqlite"):
            return {"connect_args": {"check_same_thread": False}}
        return {
            "pool_size": self.POOL_SIZE,
            "max_overflow": self.MAX_OVERFLOW,
            "pool_timeout": 30,
            "pool_recycle": 1800,
            "pool_pre_ping": True,
        }

# Create settings instance
settings = Settings()

# Validate critical settings
if settings.ENVIRONMENT == "production":
    assert not settings.SECRET_KEY.startswith("development-"), \
        "Production environment must use a secure SECRET_KEY"
    assert settings.ALLOWED_ORIGINS != ["*"], \
        "Production environment must specify explicit CORS origins"
