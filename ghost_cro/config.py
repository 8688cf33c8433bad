"""
Configuration management for Ghost CRO
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Ghost CRO"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    app_url: str = "http://localhost:3000"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Database
    database_url: str = "sqlite:///./ghost_cro.db"

    # Shopify app (OAuth + webhooks)
    shopify_client_id: Optional[str] = None
    shopify_client_secret: Optional[str] = None
    shopify_webhook_secret: Optional[str] = None
    shopify_api_version: str = "2024-01"
    shopify_request_timeout: float = 30.0

    # Google Analytics 4 (OAuth web client)
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None

    # LLM Configuration
    anthropic_api_key: Optional[str] = None
    llm_model: str = "claude-sonnet-4-20250514"
    enable_llm_analysis: bool = True
    llm_max_tokens: int = 4096

    # Storefront scraping
    scrape_timeout: float = 20.0
    scrape_user_agent: str = (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )

    # Theme sandbox
    theme_ready_max_attempts: int = 30
    theme_ready_delay_seconds: float = 2.0

    # Weekly watchdog scan
    cron_secret: Optional[str] = None
    enable_scheduler: bool = True
    weekly_scan_schedule: str = "0 0 * * sun"  # APScheduler reads a numeric 0 as Monday
    stale_store_days: int = 30

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def is_production(self) -> bool:
        return self.environment == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
