"""
Configuration management for the month-by-month import service
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "Ad Data Month Import Service"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_to_file: bool = True

    # Database
    database_url: str = "sqlite:///./adimport.db"

    # Sync primitive (meta-ads-sync function)
    sync_function_url: Optional[str] = None
    sync_service_key: Optional[str] = None
    meta_access_token: Optional[str] = None
    sync_timeout_seconds: float = 300.0

    # Chain dispatch
    chain_trigger_url: Optional[str] = None  # e.g. https://host/imports/month
    chain_dispatch_mode: Optional[str] = None  # http | local; unset picks http when chain_trigger_url is set
    chain_trigger_timeout_seconds: float = 30.0

    # Pacing between chain links (seconds)
    chain_delay_seconds: float = 120.0
    safe_mode_delay_seconds: float = 180.0
    error_delay_seconds: float = 360.0

    # An importing row older than this is treated as abandoned (0 disables)
    stale_import_minutes: int = 30

    # First year seeded for a new project's import history
    default_start_year: int = 2025

    class Config:
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
