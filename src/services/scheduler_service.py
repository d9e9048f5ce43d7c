"""
Weekly Scheduler Service

Decides from persisted last-scraped timestamps when search terms are due and
drives the ingest service across terms, one at a time.

Due-ness is gated on the OLDEST last-scraped timestamp, so every term is
refreshed at least once per cycle rather than only the most recently touched
one. Each term's timestamp is written right after its own scrape, so a crash
mid-cycle leaves finished terms marked and a restart resumes with the rest.

Usage:
    from src.common.cancellation import StopToken
    from src.services.scheduler_service import WeeklyScheduler

    scheduler = WeeklyScheduler()
    if scheduler.is_due():
        scheduler.run_weekly_scrape(StopToken())
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from src.common.cancellation import StopToken
from src.common.config import Config
from src.common.error_handling import CollaboratorError
from src.common.repositories import SearchTermRepositoryInterface, get_search_term_repository
from src.common.types import SearchTerm
from src.services.job_ingest_service import IngestService

logger = logging.getLogger(__name__)


@dataclass
class TermScrapeResult:
    """Outcome of scraping a single search term."""

    term: str
    success: bool
    run_id: Optional[str] = None
    jobs_found: int = 0
    saved: int = 0
    duplicates: int = 0
    failed: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "term": self.term,
            "success": self.success,
            "run_id": self.run_id,
            "jobs_found": self.jobs_found,
            "saved": self.saved,
            "duplicates": self.duplicates,
            "failed": self.failed,
            "error": self.error,
        }


@dataclass
class WeeklyScrapeResult:
    """Aggregate outcome of one weekly cycle."""

    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    terms: List[TermScrapeResult] = field(default_factory=list)
    skipped_fresh: int = 0
    stopped: bool = False

    @property
    def terms_succeeded(self) -> int:
        return sum(1 for t in self.terms if t.success)

    @property
    def terms_failed(self) -> int:
        return sum(1 for t in self.terms if not t.success)

    @property
    def total_found(self) -> int:
        return sum(t.jobs_found for t in self.terms)

    @property
    def total_saved(self) -> int:
        return sum(t.saved for t in self.terms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "terms_attempted": len(self.terms),
            "terms_succeeded": self.terms_succeeded,
            "terms_failed": self.terms_failed,
            "skipped_fresh": self.skipped_fresh,
            "total_found": self.total_found,
            "total_saved": self.total_saved,
            "stopped": self.stopped,
            "terms": [t.to_dict() for t in self.terms],
        }


class WeeklyScheduler:
    """
    Sequential weekly scrape driver.

    Terms are never scraped concurrently, to avoid overloading the scraping
    provider; a fixed delay separates consecutive terms.
    """

    def __init__(
        self,
        ingest_service: Optional[IngestService] = None,
        search_term_repository: Optional[SearchTermRepositoryInterface] = None,
        interval_days: Optional[int] = None,
        term_delay_seconds: Optional[float] = None,
        check_seconds: Optional[float] = None,
        retry_seconds: Optional[float] = None,
        max_items: Optional[int] = None,
        resume_window_hours: Optional[float] = None,
    ):
        """
        Args:
            ingest_service: Ingest service (defaults to IngestService())
            search_term_repository: Optional search term repository
            interval_days: Cycle length (Config.SCRAPE_INTERVAL_DAYS)
            term_delay_seconds: Delay between terms (Config.TERM_DELAY_SECONDS)
            check_seconds: Outer loop due-check interval (Config.SCHEDULER_CHECK_SECONDS)
            retry_seconds: Backoff after unexpected errors (Config.SCHEDULER_RETRY_SECONDS)
            max_items: Postings per term (Config.SCRAPE_MAX_ITEMS)
            resume_window_hours: Terms scraped this recently are skipped by a
                non-forced cycle (Config.RESUME_WINDOW_HOURS)
        """
        self._ingest_service = ingest_service
        self._search_term_repository = search_term_repository
        self.interval = timedelta(days=interval_days or Config.SCRAPE_INTERVAL_DAYS)
        self.term_delay_seconds = (
            Config.TERM_DELAY_SECONDS if term_delay_seconds is None else term_delay_seconds
        )
        self.check_seconds = check_seconds or Config.SCHEDULER_CHECK_SECONDS
        self.retry_seconds = retry_seconds or Config.SCHEDULER_RETRY_SECONDS
        self.max_items = max_items or Config.SCRAPE_MAX_ITEMS
        self.resume_window = timedelta(
            hours=Config.RESUME_WINDOW_HOURS if resume_window_hours is None else resume_window_hours
        )

    def _get_ingest_service(self) -> IngestService:
        if self._ingest_service is None:
            self._ingest_service = IngestService()
        return self._ingest_service

    def _get_repository(self) -> SearchTermRepositoryInterface:
        if self._search_term_repository is not None:
            return self._search_term_repository
        return get_search_term_repository()

    def _active_terms(self) -> List[SearchTerm]:
        terms = self._get_repository().list_terms(active_only=True)
        return sorted(terms, key=lambda t: t.term)

    def is_due(self, now: Optional[datetime] = None) -> bool:
        """
        Check whether a weekly cycle should run.

        Due when any active term has never been scraped, or the oldest
        last-scraped timestamp is more than the interval in the past.
        With no active terms there is nothing to run.

        Args:
            now: Reference time (defaults to utcnow)

        Returns:
            True if a cycle should start
        """
        now = now or datetime.utcnow()
        terms = self._active_terms()
        if not terms:
            logger.info("No active search terms configured")
            return False

        if any(t.last_scraped_at is None for t in terms):
            return True

        oldest = min(t.last_scraped_at for t in terms)
        due = now - oldest > self.interval
        logger.debug(f"Oldest scrape {oldest.isoformat()}, due={due}")
        return due

    def scrape_term(self, term: str, max_items: Optional[int] = None) -> TermScrapeResult:
        """
        Ingest one term and persist its scrape state immediately.

        A collaborator failure records last_error and leaves last_scraped_at
        untouched, so the term stays due.

        Args:
            term: Search term
            max_items: Postings to request (defaults to self.max_items)

        Returns:
            TermScrapeResult
        """
        repo = self._get_repository()
        try:
            ingest = self._get_ingest_service().ingest(term, max_items or self.max_items)
        except CollaboratorError as e:
            logger.error(f"Scrape failed for '{term}': {e}")
            repo.record_failure(term, str(e))
            return TermScrapeResult(term=term, success=False, error=str(e))

        repo.record_scrape(term, datetime.utcnow(), ingest.total_scraped, ingest.run_id)

        error = None
        if not ingest.success:
            error = f"{ingest.failed_count} rows failed to persist"
            repo.record_failure(term, error, ingest.run_id)

        return TermScrapeResult(
            term=term,
            success=ingest.success,
            run_id=ingest.run_id,
            jobs_found=ingest.total_scraped,
            saved=ingest.saved_count,
            duplicates=ingest.duplicate_count,
            failed=ingest.failed_count,
            error=error,
        )

    def run_weekly_scrape(
        self,
        stop: Optional[StopToken] = None,
        force: bool = False,
    ) -> WeeklyScrapeResult:
        """
        Scrape every active term alphabetically, one at a time.

        Args:
            stop: Cancellation token, checked before each term and during delays
            force: Also re-scrape terms inside the resume window

        Returns:
            WeeklyScrapeResult
        """
        stop = stop or StopToken()
        result = WeeklyScrapeResult()
        now = datetime.utcnow()

        terms = self._active_terms()
        if not force:
            pending = [
                t for t in terms
                if t.last_scraped_at is None or now - t.last_scraped_at > self.resume_window
            ]
            result.skipped_fresh = len(terms) - len(pending)
            terms = pending

        logger.info(
            f"Weekly scrape starting: {len(terms)} terms "
            f"({result.skipped_fresh} already scraped this cycle)"
        )

        for index, term in enumerate(terms):
            if stop.stopped:
                result.stopped = True
                break

            logger.info(f"[{index + 1}/{len(terms)}] Scraping '{term.term}'")
            result.terms.append(self.scrape_term(term.term))

            if index < len(terms) - 1 and stop.wait(self.term_delay_seconds):
                result.stopped = True
                break

        result.finished_at = datetime.utcnow()
        logger.info(
            f"Weekly scrape finished: succeeded={result.terms_succeeded}, "
            f"failed={result.terms_failed}, found={result.total_found}, "
            f"saved={result.total_saved}, stopped={result.stopped}"
        )
        return result

    def run_forever(
        self,
        stop: StopToken,
        once: bool = False,
        force: bool = False,
    ) -> Optional[WeeklyScrapeResult]:
        """
        Check due-ness on a coarse interval until stopped.

        Unexpected errors are logged and retried after the retry backoff;
        the loop never exits on its own except in once mode.

        Args:
            stop: Cancellation token
            once: Run a single check (and cycle if due), then return
            force: Run the first cycle regardless of due-ness

        Returns:
            The last WeeklyScrapeResult, or None if no cycle ran
        """
        last_result: Optional[WeeklyScrapeResult] = None

        while not stop.stopped:
            try:
                if force or self.is_due():
                    last_result = self.run_weekly_scrape(stop, force=force)
                    force = False
                else:
                    logger.info("Weekly scrape not due")

                if once:
                    break
                stop.wait(self.check_seconds)
            except Exception as e:
                if once:
                    raise
                logger.exception(
                    f"Scheduler error, retrying in {self.retry_seconds:.0f}s: {e}"
                )
                stop.wait(self.retry_seconds)

        return last_result
