"""
Repository Configuration and Factory

Provides factory functions that return singleton repository implementations
based on environment configuration.
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

from pymongo.errors import OperationFailure

from src.common.error_handling import ConfigurationError

from .base import (
    DetectionRepositoryInterface,
    PostingRepositoryInterface,
    SearchTermRepositoryInterface,
)

logger = logging.getLogger(__name__)

# MongoDB E11000, raised when a unique index build meets existing duplicates
DUPLICATE_KEY_CODE = 11000


@dataclass
class RepositoryConfig:
    """
    Configuration for repository initialization.

    Loaded from environment variables with sensible defaults.
    """
    mongodb_uri: str
    database: str = "sales_tool_detector"

    @classmethod
    def from_env(cls) -> "RepositoryConfig":
        """
        Load configuration from environment variables.

        Environment variables:
        - MONGODB_URI (required): MongoDB connection string
        - MONGODB_DATABASE: Database name (default: sales_tool_detector)

        Returns:
            RepositoryConfig instance

        Raises:
            ConfigurationError: If MONGODB_URI is not set
        """
        mongodb_uri = os.getenv("MONGODB_URI")
        if not mongodb_uri:
            raise ConfigurationError("MONGODB_URI environment variable is required")

        return cls(
            mongodb_uri=mongodb_uri,
            database=os.getenv("MONGODB_DATABASE", "sales_tool_detector"),
        )


# Singleton repository instances
_posting_repository: Optional[PostingRepositoryInterface] = None
_detection_repository: Optional[DetectionRepositoryInterface] = None
_search_term_repository: Optional[SearchTermRepositoryInterface] = None


def get_posting_repository() -> PostingRepositoryInterface:
    """
    Get the posting repository instance.

    Raises:
        ConfigurationError: If MongoDB URI is not configured
    """
    global _posting_repository

    if _posting_repository is None:
        config = RepositoryConfig.from_env()
        from .atlas_repository import AtlasPostingRepository
        _posting_repository = AtlasPostingRepository(
            mongodb_uri=config.mongodb_uri,
            database=config.database,
        )
        logger.info("Initialized posting repository")

    return _posting_repository


def get_detection_repository() -> DetectionRepositoryInterface:
    """
    Get the detection (identified companies) repository instance.

    Raises:
        ConfigurationError: If MongoDB URI is not configured
    """
    global _detection_repository

    if _detection_repository is None:
        config = RepositoryConfig.from_env()
        from .atlas_repository import AtlasDetectionRepository
        _detection_repository = AtlasDetectionRepository(
            mongodb_uri=config.mongodb_uri,
            database=config.database,
        )
        logger.info("Initialized detection repository")

    return _detection_repository


def get_search_term_repository() -> SearchTermRepositoryInterface:
    """
    Get the search term repository instance.

    Raises:
        ConfigurationError: If MongoDB URI is not configured
    """
    global _search_term_repository

    if _search_term_repository is None:
        config = RepositoryConfig.from_env()
        from .atlas_repository import AtlasSearchTermRepository
        _search_term_repository = AtlasSearchTermRepository(
            mongodb_uri=config.mongodb_uri,
            database=config.database,
        )
        logger.info("Initialized search term repository")

    return _search_term_repository


def ensure_indexes() -> None:
    """
    Create the indexes the pipeline relies on for consistency.

    - postings: (processed, scraped_at) queue index (_id is unique already)
    - identified_companies: unique (company_key, tool)

    Raises:
        ConfigurationError: If the registry already holds duplicate
            (company_key, tool) rows, so the unique index cannot be built
    """
    get_posting_repository().ensure_indexes()
    try:
        get_detection_repository().ensure_indexes()
    except OperationFailure as e:
        if e.code != DUPLICATE_KEY_CODE:
            raise
        raise ConfigurationError(
            "identified_companies has duplicate company rows, so the unique "
            "(company_key, tool) index cannot be built. Merge them with "
            "`python scripts/consolidate_companies.py --apply`, then retry. "
            f"({e})"
        ) from e
    logger.info("MongoDB indexes ensured")


def reset_repositories() -> None:
    """
    Reset all repository singletons and the shared connection.

    Used for testing or when configuration changes.
    """
    global _posting_repository, _detection_repository, _search_term_repository

    from .atlas_repository import AtlasCollection
    AtlasCollection.reset_connection()

    _posting_repository = None
    _detection_repository = None
    _search_term_repository = None
    logger.info("Repository singletons reset")
