"""
Repository Pattern for MongoDB Operations

Provides an abstraction layer over MongoDB so services never touch pymongo
directly and tests can substitute in-memory implementations.

Public API:
- get_posting_repository(): postings collection
- get_detection_repository(): identified_companies collection
- get_search_term_repository(): search_terms collection
- ensure_indexes(): create unique and queue indexes
- reset_repositories(): drop singletons and the shared client

Usage:
    from src.common.repositories import get_posting_repository

    repo = get_posting_repository()
    pending = repo.fetch_unprocessed(limit=50)
"""

from .base import (
    BatchInsertResult,
    DetectionRepositoryInterface,
    PostingRepositoryInterface,
    SearchTermRepositoryInterface,
    UpsertOutcome,
    WriteResult,
)
from .config import (
    RepositoryConfig,
    ensure_indexes,
    get_detection_repository,
    get_posting_repository,
    get_search_term_repository,
    reset_repositories,
)

__all__ = [
    # Interfaces
    "PostingRepositoryInterface",
    "DetectionRepositoryInterface",
    "SearchTermRepositoryInterface",
    # Factories
    "get_posting_repository",
    "get_detection_repository",
    "get_search_term_repository",
    "ensure_indexes",
    "reset_repositories",
    # Shared
    "WriteResult",
    "BatchInsertResult",
    "UpsertOutcome",
    "RepositoryConfig",
]
