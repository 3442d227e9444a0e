"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables or a local .env file.
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Art Prompt Ledger"
    APP_ENV: str = "development"
    DEBUG: bool = False

    # Namespace for every document key, so several contests can share one store
    APP_ID: str = "astro-arts-challenge"

    # Azure Cosmos DB
    AZURE_COSMOS_ENDPOINT: str | None = None
    AZURE_COSMOS_CONNECTION_STRING: str | None = None  # For local emulator only
    AZURE_COSMOS_DATABASE: str = "artprompt"
    AZURE_COSMOS_DISABLE_SSL: bool = False

    # Reserved administrative identity
    ADMIN_USERNAME: str = "Tourist"
    ADMIN_PASSPHRASE: str = ""  # Empty means the admin name can never be claimed fresh

    # Contest rules
    DEFAULT_MAX_VOTES: int = 2
    ANONYMOUS_NAME: str = "Anonymous"
    UNKNOWN_AUTHOR_NAME: str = "Unknown"
    DELETE_CONFIRMATION_PHRASE: str = "delete"

    # Sync / concurrency
    SYNC_POLL_INTERVAL_SECONDS: float = 2.0
    CAS_MAX_RETRIES: int = 5

    @field_validator("DEFAULT_MAX_VOTES", "CAS_MAX_RETRIES")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Caps and retry budgets must be at least one."""
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @property
    def admin_key(self) -> str:
        """Registry key reserved for the administrative identity."""
        return self.ADMIN_USERNAME.lower()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
