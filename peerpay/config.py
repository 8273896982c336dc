"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings
from typing import Optional


class PeerPayConfig(BaseSettings):
    """PeerPay service configuration"""

    # Database configuration
    database_url: str = "sqlite:///peerpay.db"  # memory:// for an in-process store

    # Ledger rules
    default_currency: str = "USD"
    enforce_sufficient_funds: bool = True  # False allows negative balances
    max_transaction_amount: str = "100000.00"
    history_default_limit: int = 50
    profile_search_limit: int = 10

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8090

    # Session tokens (issued by the external auth provider)
    auth_enabled: bool = True
    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stderr

    # Feature flags
    enable_audit_logging: bool = True

    class Config:
        env_prefix = "PEERPAY_"
        env_file = ".env"
        case_sensitive = False


# Global configuration instance
config = PeerPayConfig()


def get_config() -> PeerPayConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> PeerPayConfig:
    """Reload configuration from environment"""
    global config
    config = PeerPayConfig()
    return config
