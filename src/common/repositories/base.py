"""
Repository Interface Definitions

Defines the abstract interfaces for the three collections the pipeline owns:
postings, identified companies (detections) and search terms. Services depend
on these interfaces only, so tests substitute in-memory fakes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional

from src.common.types import AnalysisOutcome, Detection, Posting, SearchTerm


@dataclass
class WriteResult:
    """
    Result of a single-document write.

    Attributes:
        matched_count: Number of documents that matched the filter
        modified_count: Number of documents actually modified
        upserted_id: ID of upserted document (if any)
    """
    matched_count: int
    modified_count: int
    upserted_id: Optional[str] = None


@dataclass
class BatchInsertResult:
    """
    Result of an insert-or-ignore batch.

    Attributes:
        inserted: Rows that did not exist before
        duplicates: Rows whose identifier already existed (left untouched)
        failed: Rows rejected by the server
        errors: Server error messages for failed rows
    """
    inserted: int = 0
    duplicates: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


class UpsertOutcome(str, Enum):
    """What a detection upsert did to the registry."""

    INSERTED = "inserted"  # new (company_key, tool) row
    UPGRADED = "upgraded"  # existing row, evidence replaced by higher confidence
    REINFORCED = "reinforced"  # existing row, only times_seen/last_seen_at bumped


class PostingRepositoryInterface(ABC):
    """
    Abstract interface for the postings collection.

    Written by the Ingestion Service, mutated only by the Analyzer Worker.
    """

    @abstractmethod
    def insert_if_absent(self, postings: List[Posting]) -> BatchInsertResult:
        """
        Insert postings whose identifier is not yet stored.

        Existing rows are never modified, so re-ingesting is a no-op.

        Args:
            postings: Batch of postings (new rows get processed=False)

        Returns:
            BatchInsertResult with inserted/duplicate/failed counts
        """
        pass

    @abstractmethod
    def fetch_unprocessed(self, limit: int) -> List[Posting]:
        """
        Fetch unprocessed postings, oldest scraped_at first.

        Args:
            limit: Maximum postings to return

        Returns:
            List of postings with processed=False
        """
        pass

    @abstractmethod
    def mark_processed(
        self,
        posting_id: str,
        outcome: AnalysisOutcome,
        analyzed_at: Optional[datetime] = None,
    ) -> bool:
        """
        Mark a posting processed with its analysis outcome.

        Only unprocessed postings are updated; processed is never reset.

        Args:
            posting_id: Posting identifier
            outcome: Terminal analysis outcome
            analyzed_at: Timestamp (defaults to now)

        Returns:
            True if the posting transitioned to processed
        """
        pass

    @abstractmethod
    def count_total(self) -> int:
        pass

    @abstractmethod
    def count_unprocessed(self) -> int:
        pass

    @abstractmethod
    def ensure_indexes(self) -> None:
        """Create the (processed, scraped_at) queue index."""
        pass


class DetectionRepositoryInterface(ABC):
    """
    Abstract interface for the identified_companies collection.

    At most one row per (company_key, tool), enforced by a unique index.
    company_key is normalize_company_name(company).
    """

    @abstractmethod
    def upsert_detection(self, detection: Detection) -> UpsertOutcome:
        """
        Insert or reinforce the (company_key, tool) row.

        Keeps the highest-confidence evidence seen so far; the earliest
        identified_at is never overwritten.

        Args:
            detection: Detection produced by the analyzer

        Returns:
            UpsertOutcome describing the change
        """
        pass

    @abstractmethod
    def list_all(self) -> List[Detection]:
        """All detections ordered by identified_at ascending."""
        pass

    @abstractmethod
    def delete_by_ids(self, ids: Iterable) -> int:
        """
        Delete detections by _id.

        Returns:
            Number of rows deleted
        """
        pass

    @abstractmethod
    def company_names(self) -> List[str]:
        """Distinct company names in the registry."""
        pass

    @abstractmethod
    def count_total(self) -> int:
        pass

    @abstractmethod
    def count_by_tool(self) -> Dict[str, int]:
        """Detection counts keyed by tool value."""
        pass

    @abstractmethod
    def ensure_indexes(self) -> None:
        """Create the unique (company_key, tool) index."""
        pass


class SearchTermRepositoryInterface(ABC):
    """Abstract interface for the search_terms collection."""

    @abstractmethod
    def list_terms(self, active_only: bool = True) -> List[SearchTerm]:
        """
        List search terms in alphabetical order.

        Args:
            active_only: Exclude inactive terms

        Returns:
            List of SearchTerm records
        """
        pass

    @abstractmethod
    def record_scrape(
        self,
        term: str,
        scraped_at: datetime,
        jobs_found: int,
        run_id: Optional[str] = None,
    ) -> WriteResult:
        """Persist a successful scrape for one term and clear last_error."""
        pass

    @abstractmethod
    def record_failure(
        self,
        term: str,
        message: str,
        run_id: Optional[str] = None,
    ) -> WriteResult:
        """Persist a failed scrape; last_scraped_at is left unchanged."""
        pass

    @abstractmethod
    def add_terms(self, terms: Iterable[str]) -> int:
        """
        Insert missing terms as active and never scraped.

        Returns:
            Number of terms created
        """
        pass
