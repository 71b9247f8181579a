"""
Application configuration using pydantic-settings.

WHAT: Centralized config from environment variables
WHY: Type-safe, validated config with sensible defaults
HOW: Pydantic BaseSettings reads from .env and environment
"""

from pydantic_settings import BaseSettings
from pydantic import field_validator
from typing import Literal
from pathlib import Path


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # App metadata
    APP_NAME: str = "ReRide Chat"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "sqlite:///./data/reride_chat.db"

    # Negotiation policy
    # Roles allowed to counter a pending offer (comma-separated).
    # Buyers reply to a counter with a fresh offer instead.
    COUNTER_OFFER_ROLES: str = "seller"

    # LLM provider (OpenAI-compatible chat completions endpoint)
    LLM_PROVIDER: Literal["lm_studio", "openrouter"] = "lm_studio"
    LLM_BASE_URL: str = "http://localhost:1234/v1"
    LLM_API_KEY: str = ""
    LLM_DEFAULT_MODEL: str = "qwen/qwen3-1.7b"
    LLM_TIMEOUT: int = 30  # seconds
    LLM_MAX_RETRIES: int = 3
    LLM_RETRY_DELAY: int = 2  # seconds, base for exponential backoff
    LLM_DEFAULT_TEMPERATURE: float = 0.2
    LLM_DEFAULT_MAX_TOKENS: int = 1024

    # Seller suggestions
    MAX_SUGGESTIONS: int = 4

    # CORS - accepts comma-separated string or list
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    @field_validator("CORS_ORIGINS", "COUNTER_OFFER_ROLES", mode="before")
    @classmethod
    def join_list_values(cls, v):
        """Accept either a comma-separated string or a list."""
        if isinstance(v, list):
            return ",".join(v)
        return v

    def get_cors_origins_list(self) -> list[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    def get_counter_offer_roles(self) -> set[str]:
        """Get the roles allowed to counter an offer."""
        return {role.strip() for role in self.COUNTER_OFFER_ROLES.split(",") if role.strip()}

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "./data/logs/app.log"

    class Config:
        env_file = [
            str(Path(__file__).parent.parent.parent.parent / ".env"),  # repo root
            str(Path(__file__).parent.parent.parent / ".env"),  # backend/.env (fallback)
        ]
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"


# Singleton instance
settings = Settings()
