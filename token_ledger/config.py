"""
Configuration Management Module

Provides centralized configuration using pydantic-settings for environment-based configuration.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class TokenLedgerConfig(BaseSettings):
    """Token ledger configuration"""

    model_config = SettingsConfigDict(
        env_prefix="TOKEN_LEDGER_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore"
    )

    # Token metadata
    token_name: str = "Achilles"
    token_symbol: str = "ACH"
    token_decimals: int = 18

    # Initial allocation, used when the API builds a fresh ledger
    initial_supply: int = 1_000_000
    owner_address: str = "0x" + "1" * 40

    # A MAX_UINT256 allowance is never decremented when enabled
    infinite_allowance: bool = False

    # Storage configuration
    storage_backend: str = "memory"  # memory or sqlite
    database_path: str = "token_ledger.db"

    # API configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8545

    # Logging configuration
    log_level: str = "INFO"
    log_format: str = "json"  # json or text
    log_file: Optional[str] = None  # If None, logs to stdout

    # Feature flags
    enable_event_log: bool = True


# Global configuration instance
config = TokenLedgerConfig()


def get_config() -> TokenLedgerConfig:
    """Get global configuration instance"""
    return config


def reload_config() -> TokenLedgerConfig:
    """Reload configuration from environment"""
    global config
    config = TokenLedgerConfig()
    return config
