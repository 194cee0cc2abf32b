"""
Configuration settings for the newsletter popup service
"""

from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # App identification
    app_name: str = "Foxx Newsletter Popup Manager"
    app_version: str = "1.0.0"
    debug: bool = False

    # Database
    database_url: str

    # Redis (for rate limiting)
    redis_url: Optional[str] = None

    # Security
    encryption_key: str
    admin_api_key: str
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"

    # Public URL the storefront snippet loads the runtime from.
    # When empty it is derived from the incoming request.
    public_base_url: str = ""

    # Installation verification
    verification_timeout_seconds: float = 5.0
    verification_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
    )

    # Runtime script delivery
    runtime_script_max_age: int = 30

    # Shopify API
    shopify_api_version: str = "2023-10"

    # Outbound email
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    email_from_address: str = "newsletter@foxxbioprocess.com"
    email_from_name: str = "Foxx Bioprocess"
    admin_notification_email: str = "admin@foxxbioprocess.com"

    # Popup defaults
    default_discount_code: str = "WELCOME15"
    default_discount_percentage: int = 15

    # Rate limiting
    rate_limit_per_minute: int = 60

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.public_base_url = self.public_base_url.rstrip("/")


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
