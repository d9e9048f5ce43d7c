"""
Job Ingest Service

Pulls postings for one search term from the scraping collaborator, assigns
each a stable identifier and persists new ones in fixed-size batches.

Ingestion is lossless capture: it does not deduplicate companies and does
not analyze anything. Re-running a term is safe because identifiers are
derived from the posting itself and the store ignores rows it already has.

Used by both:
- Weekly scheduler (one call per active term)
- scripts/ingest_term.py (on-demand ingestion)

Usage:
    from src.services.job_ingest_service import IngestService

    service = IngestService()
    result = service.ingest("SDR", max_items=500)
    print(result.to_dict())
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from src.common.config import Config
from src.common.dedupe import generate_posting_id
from src.common.error_handling import CollaboratorError, ErrorCollector, RunError, summarize_errors
from src.common.logger import get_logger
from src.common.repositories import PostingRepositoryInterface, get_posting_repository
from src.common.types import Posting
from src.services.job_sources import JobSource, ScrapedJob

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    """Result of one scrape run for a single search term."""

    run_id: str
    search_term: str
    success: bool = True
    total_scraped: int = 0
    saved_count: int = 0
    duplicate_count: int = 0
    failed_count: int = 0
    duration_ms: int = 0
    errors: List[RunError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for CLI output."""
        return {
            "run_id": self.run_id,
            "search_term": self.search_term,
            "success": self.success,
            "stats": {
                "total_scraped": self.total_scraped,
                "saved": self.saved_count,
                "duplicates": self.duplicate_count,
                "failed": self.failed_count,
                "duration_ms": self.duration_ms,
            },
            "errors": [e.to_dict() for e in self.errors],
            "error_summary": summarize_errors(self.errors),
        }


def build_posting(
    job: ScrapedJob,
    platform: str,
    search_term: str,
    run_id: str,
    scraped_at: datetime,
) -> Posting:
    """Convert a scraped job into an unprocessed Posting with a stable id."""
    posting_id = generate_posting_id(
        platform,
        source_id=job.source_id,
        company=job.company,
        title=job.title,
        location=job.location,
        url=job.url,
    )
    return Posting(
        id=posting_id,
        platform=platform,
        company=job.company,
        title=job.title,
        location=job.location,
        description=job.description,
        url=job.url,
        search_term=search_term,
        scrape_run_id=run_id,
        scraped_at=scraped_at,
        processed=False,
    )


class IngestService:
    """
    Ingestion logic shared by the scheduler and the CLI.

    Features:
    - Stable posting identifiers (native id or content hash)
    - Insert-or-ignore batches (safe to retry or re-run)
    - Partial-failure tolerance: a failed batch is counted, the run continues
    """

    def __init__(
        self,
        source: Optional[JobSource] = None,
        repository: Optional[PostingRepositoryInterface] = None,
        batch_size: Optional[int] = None,
    ):
        """
        Initialize the ingest service.

        Args:
            source: Scraping collaborator (defaults to ApifyLinkedInSource)
            repository: Optional posting repository (defaults to singleton)
            batch_size: Rows per insert batch (defaults to Config.INGEST_BATCH_SIZE)
        """
        self._source = source
        self._repository = repository
        self.batch_size = batch_size or Config.INGEST_BATCH_SIZE

    def _get_source(self) -> JobSource:
        if self._source is None:
            from src.services.job_sources import ApifyLinkedInSource
            self._source = ApifyLinkedInSource()
        return self._source

    def _get_repository(self) -> PostingRepositoryInterface:
        """Get the posting repository instance."""
        if self._repository is not None:
            return self._repository
        return get_posting_repository()

    def ingest(self, search_term: str, max_items: Optional[int] = None) -> IngestResult:
        """
        Scrape and persist postings for one search term.

        Args:
            search_term: Job title query
            max_items: Maximum postings to request (defaults to Config.SCRAPE_MAX_ITEMS)

        Returns:
            IngestResult with counts; success=False if any batch failed

        Raises:
            CollaboratorError: If the scraping provider fails. Nothing is
                persisted in that case and the caller decides when to retry.
        """
        run_id = str(uuid.uuid4())
        run_log = get_logger(__name__, run_id=run_id, stage="ingest")
        max_items = max_items or Config.SCRAPE_MAX_ITEMS
        start_time = datetime.utcnow()
        errors = ErrorCollector("ingest", logger=logger)
        result = IngestResult(run_id=run_id, search_term=search_term)

        source = self._get_source()
        platform = source.get_platform_name()

        run_log.info(f"Starting ingest for '{search_term}' (max {max_items})")
        try:
            jobs = source.fetch_jobs(search_term, max_items)
        except CollaboratorError:
            run_log.error(f"Scrape failed for '{search_term}'")
            raise

        result.total_scraped = len(jobs)
        scraped_at = datetime.utcnow()
        postings = [
            build_posting(job, platform, search_term, run_id, scraped_at)
            for job in jobs
        ]

        repo = self._get_repository()
        for start in range(0, len(postings), self.batch_size):
            batch = postings[start:start + self.batch_size]
            batch_no = start // self.batch_size + 1
            try:
                batch_result = repo.insert_if_absent(batch)
            except Exception as e:
                result.failed_count += len(batch)
                errors.add_error(
                    "persist_batch",
                    f"Batch {batch_no} ({len(batch)} rows) failed: {e}",
                    exception=e,
                )
                continue

            result.saved_count += batch_result.inserted
            result.duplicate_count += batch_result.duplicates
            result.failed_count += batch_result.failed
            for message in batch_result.errors:
                errors.add_error("persist_row", f"Batch {batch_no}: {message}")
            run_log.debug(
                f"Batch {batch_no}: inserted={batch_result.inserted}, "
                f"duplicates={batch_result.duplicates}, failed={batch_result.failed}"
            )

        result.errors = errors.errors
        result.success = result.failed_count == 0
        result.duration_ms = int((datetime.utcnow() - start_time).total_seconds() * 1000)

        run_log.info(
            f"Ingest complete for '{search_term}': "
            f"scraped={result.total_scraped}, saved={result.saved_count}, "
            f"duplicates={result.duplicate_count}, failed={result.failed_count}, "
            f"duration={result.duration_ms}ms"
        )
        if errors:
            run_log.warning(f"Ingest errors: {errors.summary()}")
        return result
