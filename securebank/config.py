"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
Policy constants (deposit ceiling, session lifetime, expiry buffer) live here
so each deployment can tune them without code changes.
"""

from datetime import timedelta
from decimal import Decimal
from typing import Optional

from pydantic_settings import BaseSettings


class SecureBankConfig(BaseSettings):
    """SecureBank core configuration"""

    # Database configuration
    database_url: str = "sqlite:///securebank.db"  # or memory:// for tests

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090
    api_reload: bool = False

    # Session configuration
    session_lifetime_hours: int = 168  # 7 days
    session_expiry_buffer_minutes: int = 5
    session_cookie_name: str = "session"
    session_token_width: int = 48

    # Identifier configuration
    account_number_width: int = 10
    max_identifier_attempts: int = 25

    # Security configuration
    password_min_length: int = 8

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Business rules configuration
    max_deposit_amount: str = "10000.00"

    class Config:
        env_prefix = "SECUREBANK_"
        env_file = ".env"
        case_sensitive = False

    @property
    def deposit_ceiling(self) -> Decimal:
        """Maximum single deposit as a Decimal"""
        return Decimal(self.max_deposit_amount)

    @property
    def session_lifetime(self) -> timedelta:
        return timedelta(hours=self.session_lifetime_hours)

    @property
    def session_expiry_buffer(self) -> timedelta:
        return timedelta(minutes=self.session_expiry_buffer_minutes)


# Global configuration instance
config = SecureBankConfig()


def get_config() -> SecureBankConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> SecureBankConfig:
    """Reload configuration from environment"""
    global config
    config = SecureBankConfig()
    return config
