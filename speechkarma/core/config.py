"""
Statement Engine Configuration

All tunables for the engine are collected into one StatementConfig that
is built once and handed to StatementService. Nothing below the service
reads the environment.

CONFIGURATION:
- SPEECHKARMA_GRACE_PERIOD_MINUTES: Owner edit/delete window (default: 15)
- SPEECHKARMA_MIN_STATEMENT_LENGTH: Minimum body length (default: 10)
- SPEECHKARMA_MAX_STATEMENT_LENGTH: Maximum body length (default: 5000)
- SPEECHKARMA_DEFAULT_PAGE_SIZE: Listing page size (default: 50)
- SPEECHKARMA_MAX_PAGE_SIZE: Listing page size cap (default: 100)
- USE_AI_SUMMARY: Enable summary augmentation on create (default: false)
- OPENROUTER_API_KEY: API key for the summary model
- OPENROUTER_BASE_URL: API base (default: https://openrouter.ai/api/v1)
- OPENROUTER_MODEL: Model id (default: openai/gpt-4o-mini)
- OPENROUTER_TIMEOUT_SECONDS: Request timeout (default: 10)
- SITE_URL: Sent as HTTP-Referer (default: http://localhost:8000)

Explicit keyword arguments to from_env() win over the environment.
"""

import os
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any, Optional


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("1", "true", "yes")


@dataclass(frozen=True)
class AugmentationConfig:
    """Settings for the optional summary step during statement creation."""
    enabled: bool = False
    api_key: Optional[str] = None
    base_url: str = "https://openrouter.ai/api/v1"
    model: str = "openai/gpt-4o-mini"
    timeout_seconds: float = 10.0
    temperature: float = 0.3
    max_tokens: int = 150
    site_url: str = "http://localhost:8000"
    app_title: str = "SpeechKarma"

    @classmethod
    def from_env(cls, **overrides: Any) -> "AugmentationConfig":
        """Load configuration from environment variables."""
        config = cls(
            enabled=os.environ.get("USE_AI_SUMMARY", "").lower() == "true",
            api_key=os.environ.get("OPENROUTER_API_KEY") or None,
            base_url=os.environ.get("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1"),
            model=os.environ.get("OPENROUTER_MODEL", "openai/gpt-4o-mini"),
            timeout_seconds=float(os.environ.get("OPENROUTER_TIMEOUT_SECONDS", "10")),
            site_url=os.environ.get("SITE_URL", "http://localhost:8000"),
        )
        return replace(config, **overrides)


@dataclass(frozen=True)
class StatementConfig:
    """Configuration for the statement engine."""
    grace_period: timedelta = timedelta(minutes=15)
    min_text_length: int = 10
    max_text_length: int = 5000
    default_page_size: int = 50
    max_page_size: int = 100
    augmentation: AugmentationConfig = field(default_factory=AugmentationConfig)

    @classmethod
    def from_env(cls, **overrides: Any) -> "StatementConfig":
        """
        Load configuration from environment variables.

        Args:
            **overrides: Field values that take precedence over the environment.
        """
        config = cls(
            grace_period=timedelta(
                minutes=float(os.environ.get("SPEECHKARMA_GRACE_PERIOD_MINUTES", "15"))
            ),
            min_text_length=int(os.environ.get("SPEECHKARMA_MIN_STATEMENT_LENGTH", "10")),
            max_text_length=int(os.environ.get("SPEECHKARMA_MAX_STATEMENT_LENGTH", "5000")),
            default_page_size=int(os.environ.get("SPEECHKARMA_DEFAULT_PAGE_SIZE", "50")),
            max_page_size=int(os.environ.get("SPEECHKARMA_MAX_PAGE_SIZE", "100")),
            augmentation=AugmentationConfig.from_env(),
        )
        return replace(config, **overrides)


def is_production() -> bool:
    return _env_flag("SPEECHKARMA_PRODUCTION")
