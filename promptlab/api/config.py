"""Configuration for the API layer and provider credentials."""
from __future__ import annotations

from typing import Dict, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class ApiSettings(BaseSettings):
    """Immutable settings loaded from environment / .env file."""

    host: str = "0.0.0.0"
    port: int = 8000
    cors_origins: str = "http://localhost:5173,http://localhost:8000"
    job_db_path: str = "promptlab_jobs.db"
    log_level: str = "INFO"
    log_format: str = "structured"

    max_prompt_chars: int = 50_000
    # Store is re-read every N streamed chunks to notice external cancels.
    cancel_poll_every: int = 10
    provider_connect_timeout: float = 10.0
    # None leaves a provider call without a read deadline.
    provider_read_timeout: Optional[float] = None
    shutdown_grace_seconds: float = 5.0

    model_config = {"env_prefix": "PROMPTLAB_"}


class ProviderSettings(BaseSettings):
    """Vendor credentials, read from the usual unprefixed variable names."""

    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None
    gemini_api_key: Optional[str] = None

    openai_base_url: Optional[str] = None
    anthropic_base_url: Optional[str] = None
    gemini_base_url: Optional[str] = None

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    def credentials(self) -> Dict[str, Optional[str]]:
        return {
            "openai": self.openai_api_key,
            "anthropic": self.anthropic_api_key,
            "gemini": self.gemini_api_key,
        }

    def base_urls(self) -> Dict[str, Optional[str]]:
        return {
            "openai": self.openai_base_url,
            "anthropic": self.anthropic_base_url,
            "gemini": self.gemini_base_url,
        }
