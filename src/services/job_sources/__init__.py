"""
Job Sources Module

Provides a unified interface for fetching raw postings from scraping
providers. The pipeline currently scrapes LinkedIn through an Apify actor.

Each source implements the JobSource abstract base class for consistent handling.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional


@dataclass
class ScrapedJob:
    """Unified raw posting structure across all sources."""
    title: str
    company: str
    location: str
    description: str
    url: str
    source_id: Optional[str] = None  # Native ID from the source, if supplied


class JobSource(ABC):
    """Abstract base class for job data sources."""

    @abstractmethod
    def fetch_jobs(self, search_term: str, max_items: int) -> List[ScrapedJob]:
        """
        Fetch postings for a search term.

        Args:
            search_term: Job title query (e.g., "SDR")
            max_items: Maximum postings to request

        Returns:
            List of ScrapedJob objects

        Raises:
            CollaboratorError: If the provider fails or times out
        """
        pass

    @abstractmethod
    def get_platform_name(self) -> str:
        """
        Get the platform identifier used as posting id prefix.

        Returns:
            Platform name (e.g., "linkedin")
        """
        pass


# Import concrete implementations for convenience
from .apify_linkedin_source import ApifyLinkedInSource

__all__ = ["JobSource", "ScrapedJob", "ApifyLinkedInSource"]
