"""
UnitTrack - Configuration Settings

This module handles all application configuration using Pydantic Settings.
Environment variables are loaded from .env file.
"""

from functools import lru_cache
from typing import List, Optional
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
    app_name: str = "UnitTrack Inventory"
    app_env: str = "development"
    debug: bool = False
    api_version: str = "v1"
    
    # ===========================================
    # DATABASE CONFIGURATION
    # ===========================================
    database_url_async: str  # Required - must be set in .env
    database_pool_size: int = 5
    database_max_overflow: int = 10
    
    # ===========================================
    # JWT AUTHENTICATION
    # ===========================================
    jwt_secret_key: str  # Required - must be set in .env
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    
    # ===========================================
    # REDIS CONFIGURATION
    # ===========================================
    redis_url: str = "redis://localhost:6379/0"
    
    # ===========================================
    # REMOTE INVENTORY API (point-of-sale / ERP)
    # Documents: /api/v1/storage_operations/documents/{company_id}
    # Goods:     /api/v1/goods/{company_id}
    # ===========================================
    remote_api_base_url: str = "https://api.alteg.io"
    remote_auth_header: str = ""  # Full Authorization header value
    remote_accept_header: str = ""  # Vendor Accept header value
    remote_timeout_seconds: float = 30.0
    remote_default_master_id: Optional[int] = None
    enable_remote_replication: bool = True
    
    @property
    def has_remote_credentials(self) -> bool:
        """Both static headers are required for every remote call."""
        return bool(self.remote_auth_header and self.remote_accept_header)
    
    # ===========================================
    # CORS
    # ===========================================
    cors_origins: str = "http://localhost:3000,http://localhost:8000,http://127.0.0.1:8000"
    
    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins string into list."""
        return [origin.strip() for origin in self.cors_origins.split(",")]
    
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


settings = get_settings()
