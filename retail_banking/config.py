"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List, Optional


class BankConfig(BaseSettings):
    """Retail banking backend configuration"""
    
    # Database configuration
    database_path: str = "banking.db"  # ":memory:" selects in-memory storage
    transaction_timeout_seconds: float = 10.0  # Max wait for the storage lock
    
    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 5000
    cors_origins: List[str] = ["http://localhost:3000"]
    
    # Security configuration
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"
    access_token_expiry_seconds: int = 3600  # 1 hour
    refresh_token_expiry_seconds: int = 86400  # 24 hours
    password_min_length: int = 8
    allow_admin_signup: bool = True  # Public sign-up may request the admin role
    
    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout
    
    # Business rules configuration
    default_transfer_limit: str = "10000.00"
    account_number_max_attempts: int = 10
    
    # Fixture data
    seed_demo_data: bool = False
    fixture_file: Optional[str] = None
    
    model_config = SettingsConfigDict(
        env_prefix="BANK_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )


# Global configuration instance
config = BankConfig()


def get_config() -> BankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> BankConfig:
    """Reload configuration from environment"""
    global config
    config = BankConfig()
    return config
