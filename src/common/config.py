"""
Configuration loader for the sales tool detector.

Loads all settings from environment variables (.env file).
Validates required settings per component and provides type-safe access.
"""

import os
from typing import Iterable, Optional

from dotenv import load_dotenv

from src.common.error_handling import ConfigurationError

# Load environment variables from .env file
load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


class Config:
    """
    Centralized configuration for all pipeline components.

    All values loaded from environment variables - NO SECRETS IN CODE.
    """

    # ===== MongoDB =====
    MONGODB_URI: str = os.getenv("MONGODB_URI", "")
    MONGODB_DATABASE: str = os.getenv("MONGODB_DATABASE", "sales_tool_detector")

    # ===== LLM =====
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")
    ANALYZER_MODEL: str = os.getenv("ANALYZER_MODEL", "gpt-4o-mini")
    ANALYZER_TEMPERATURE: float = 0.0
    LLM_TIMEOUT_SECONDS: float = float(os.getenv("LLM_TIMEOUT_SECONDS", "30"))

    # ===== Scraping (Apify) =====
    APIFY_TOKEN: str = os.getenv("APIFY_TOKEN", "")
    APIFY_ACTOR_ID: str = os.getenv("APIFY_ACTOR_ID", "bebity~linkedin-jobs-scraper")
    APIFY_TIMEOUT_SECONDS: int = int(os.getenv("APIFY_TIMEOUT_SECONDS", "300"))
    SCRAPE_MAX_ITEMS: int = int(os.getenv("SCRAPE_MAX_ITEMS", "500"))

    # ===== Ingestion =====
    INGEST_BATCH_SIZE: int = int(os.getenv("INGEST_BATCH_SIZE", "50"))

    # ===== Analyzer =====
    ANALYZER_BATCH_SIZE: int = int(os.getenv("ANALYZER_BATCH_SIZE", "50"))
    ANALYZER_DELAY_SECONDS: float = float(os.getenv("ANALYZER_DELAY_SECONDS", "0.5"))
    DESCRIPTION_PREFIX_CHARS: int = int(os.getenv("DESCRIPTION_PREFIX_CHARS", "4000"))
    # Skip companies already in the registry (saves LLM spend)
    ANALYZER_SKIP_KNOWN: bool = _env_bool("ANALYZER_SKIP_KNOWN", "true")
    NEVER_ANALYZE_PATH: str = os.getenv("NEVER_ANALYZE_PATH", "")

    # ===== Scheduler =====
    SCRAPE_INTERVAL_DAYS: int = int(os.getenv("SCRAPE_INTERVAL_DAYS", "7"))
    TERM_DELAY_SECONDS: float = float(os.getenv("TERM_DELAY_SECONDS", "10"))
    SCHEDULER_CHECK_SECONDS: float = float(os.getenv("SCHEDULER_CHECK_SECONDS", "3600"))
    SCHEDULER_RETRY_SECONDS: float = float(os.getenv("SCHEDULER_RETRY_SECONDS", "600"))
    # A restarted cycle skips terms scraped this recently
    RESUME_WINDOW_HOURS: float = float(os.getenv("RESUME_WINDOW_HOURS", "24"))

    # ===== Logging =====
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT: str = os.getenv("LOG_FORMAT", "simple")
    DEBUG_MODE: bool = _env_bool("DEBUG_MODE", "false")

    @classmethod
    def validate(cls, required: Optional[Iterable[str]] = None) -> None:
        """
        Validate that the settings a component needs are present.

        Args:
            required: Setting names to check (default: MONGODB_URI only)

        Raises:
            ConfigurationError: If any required setting is empty
        """
        names = list(required) if required is not None else ["MONGODB_URI"]
        missing = [name for name in names if not getattr(cls, name, "")]

        if missing:
            raise ConfigurationError(
                f"Missing required configuration: {', '.join(missing)}. "
                f"Please check your .env file."
            )

    @classmethod
    def summary(cls) -> str:
        """Return a summary of the current configuration (safe for logging)."""
        return f"""
Configuration Summary:
  MongoDB: {'✓ Configured' if cls.MONGODB_URI else '✗ Missing'} (db: {cls.MONGODB_DATABASE})
  OpenAI: {'✓ Configured' if cls.OPENAI_API_KEY else '✗ Missing'} (model: {cls.ANALYZER_MODEL})
  Apify: {'✓ Configured' if cls.APIFY_TOKEN else '✗ Missing'} (actor: {cls.APIFY_ACTOR_ID})
  Skip known companies: {cls.ANALYZER_SKIP_KNOWN}
  Scrape interval: {cls.SCRAPE_INTERVAL_DAYS} days
        """.strip()
