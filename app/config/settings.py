"""
ShipLedger - Configuration Settings

This module handles all application configuration using Pydantic Settings.
Environment variables are loaded from .env file.
"""

from decimal import Decimal
from functools import lru_cache
from typing import List
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""
    
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )
    
    # ===========================================
    # APPLICATION CONFIGURATION
    # ===========================================
    app_name: str = "ShipLedger"
    app_env: str = "development"
    debug: bool = False
    log_level: str = "INFO"
    api_version: str = "v1"
    
    # ===========================================
    # DATABASE CONFIGURATION
    # ===========================================
    database_url_async: str = "sqlite+aiosqlite:///./shipledger.db"
    db_pool_size: int = 5
    db_max_overflow: int = 10
    
    # ===========================================
    # LEDGER & RECONCILIATION
    # ===========================================
    business_timezone: str = "Africa/Cairo"  # Calendar day of a shipment's createdAt
    amount_tolerance: Decimal = Decimal("0.01")
    settlement_note: str = "Automatic settlement"
    
    # ===========================================
    # PUSH NOTIFICATIONS
    # ===========================================
    push_gateway_url: str = ""  # Empty disables delivery
    push_gateway_token: str = ""
    push_timeout_seconds: float = 10.0
    
    # ===========================================
    # CORS SETTINGS
    # ===========================================
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    
    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string into list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]
    
    @property
    def is_sqlite(self) -> bool:
        return self.database_url_async.startswith("sqlite")
    
    @property
    def tzinfo(self) -> ZoneInfo:
        return ZoneInfo(self.business_timezone)
    
    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env.lower() == "production"
    
    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env.lower() == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every call.
    """
    return Settings()


# Export settings instance
settings = get_settings()
