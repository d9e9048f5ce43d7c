"""
Continuous Analyzer Service

Polls for unprocessed postings, asks the tool detector about each one,
merges detections into the company registry and marks postings processed.

Per-posting state machine:

    unprocessed --(never-analyze match)--> skipped_known  --> processed
    unprocessed --(submitted to LLM)-----> tool_detected  --> processed
                                       +-> no_tool        --> processed
                                       +-> parse_error    --> processed
                                       +-> rejected       --> processed
    unprocessed --(LLM unavailable)------> unprocessed (retried next poll)

A posting's processed flag is written only after its detection upsert (if
any) completes, so a crash mid-batch leaves the rest of the batch
unprocessed and safe to reprocess. Duplicate detections are prevented by the
registry's (company_key, tool) uniqueness, not by idempotent LLM calls.

Usage:
    from src.common.cancellation import StopToken
    from src.services.analyzer_service import ContinuousAnalyzer

    analyzer = ContinuousAnalyzer()
    result = analyzer.run_once(batch_size=50)
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Container, Dict, List, Optional

from src.common.cancellation import StopToken
from src.common.config import Config
from src.common.dedupe import normalize_company_name
from src.common.error_handling import (
    CollaboratorError,
    ErrorCollector,
    MalformedResponseError,
    RejectedInputError,
    RunError,
    summarize_errors,
)
from src.common.repositories import (
    DetectionRepositoryInterface,
    PostingRepositoryInterface,
    get_detection_repository,
    get_posting_repository,
)
from src.common.types import AnalysisOutcome, Detection, Posting
from src.services.never_analyze import NeverAnalyzeList, build_never_analyze_list
from src.services.tool_detector import ToolDetector, ToolJudgment

logger = logging.getLogger(__name__)

# Idle backoff when the queue is empty: 5s per consecutive empty poll, max 30s
EMPTY_BACKOFF_STEP_SECONDS = 5
EMPTY_BACKOFF_MAX_SECONDS = 30
# Wait after an unexpected error or an unavailable LLM
ERROR_BACKOFF_SECONDS = 5


class NextAction(str, Enum):
    """What the analyzer should do with a posting."""

    ANALYZE = "analyze"
    SKIP_KNOWN = "skip_known"
    ALREADY_PROCESSED = "already_processed"


def decide_next_action(
    posting: Posting,
    never_analyze: Optional[Container[str]] = None,
) -> NextAction:
    """
    Decide the next transition for a posting.

    Pure function: no I/O, no clock.

    Args:
        posting: Posting fetched from the queue
        never_analyze: Companies to skip (None disables skipping)

    Returns:
        NextAction
    """
    if posting.processed:
        return NextAction.ALREADY_PROCESSED
    if never_analyze is not None and posting.company in never_analyze:
        return NextAction.SKIP_KNOWN
    return NextAction.ANALYZE


def empty_backoff_seconds(consecutive_empty: int) -> int:
    """Linear idle backoff: 5s, 10s, ... capped at 30s."""
    return min(consecutive_empty * EMPTY_BACKOFF_STEP_SECONDS, EMPTY_BACKOFF_MAX_SECONDS)


@dataclass
class AnalyzerRunResult:
    """Counts for one analyzer batch (or an aggregate of batches)."""

    batches: int = 0
    fetched: int = 0
    analyzed: int = 0
    detected: int = 0
    no_tool: int = 0
    skipped: int = 0
    errors: int = 0
    collaborator_failures: int = 0
    stopped: bool = False
    error_details: List[RunError] = field(default_factory=list)

    def merge(self, other: "AnalyzerRunResult") -> None:
        """Fold another run's counts into this one."""
        self.batches += other.batches
        self.fetched += other.fetched
        self.analyzed += other.analyzed
        self.detected += other.detected
        self.no_tool += other.no_tool
        self.skipped += other.skipped
        self.errors += other.errors
        self.collaborator_failures += other.collaborator_failures
        self.stopped = self.stopped or other.stopped
        self.error_details.extend(other.error_details)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batches": self.batches,
            "fetched": self.fetched,
            "analyzed": self.analyzed,
            "detected": self.detected,
            "no_tool": self.no_tool,
            "skipped": self.skipped,
            "errors": self.errors,
            "collaborator_failures": self.collaborator_failures,
            "stopped": self.stopped,
            "error_summary": summarize_errors(self.error_details),
        }


def build_detection(posting: Posting, judgment: ToolJudgment, now: datetime) -> Detection:
    """Registry row for a positive judgment on a posting."""
    return Detection(
        company=posting.company.strip(),
        tool=judgment.tool_detected,
        signal_type=judgment.signal_type,
        context=judgment.context,
        confidence=judgment.confidence,
        job_title=posting.title,
        job_url=posting.url,
        posting_id=posting.id,
        platform=posting.platform,
        identified_at=now,
        last_seen_at=now,
    )


class ContinuousAnalyzer:
    """
    Sequential analyzer worker.

    One posting at a time with a fixed delay between LLM calls, so the
    collaborator's rate limits are respected without any fan-out.
    """

    def __init__(
        self,
        detector: Optional[ToolDetector] = None,
        posting_repository: Optional[PostingRepositoryInterface] = None,
        detection_repository: Optional[DetectionRepositoryInterface] = None,
        skip_known: Optional[bool] = None,
        never_analyze_path: Optional[str] = None,
        delay_seconds: Optional[float] = None,
        batch_size: Optional[int] = None,
    ):
        """
        Args:
            detector: Tool detector (defaults to ToolDetector())
            posting_repository: Optional posting repository
            detection_repository: Optional detection repository
            skip_known: Enable the never-analyze list (Config.ANALYZER_SKIP_KNOWN)
            never_analyze_path: Optional JSON file (Config.NEVER_ANALYZE_PATH)
            delay_seconds: Delay between LLM calls (Config.ANALYZER_DELAY_SECONDS)
            batch_size: Postings per poll (Config.ANALYZER_BATCH_SIZE)
        """
        self._detector = detector
        self._posting_repository = posting_repository
        self._detection_repository = detection_repository
        self.skip_known = Config.ANALYZER_SKIP_KNOWN if skip_known is None else skip_known
        self.never_analyze_path = (
            never_analyze_path if never_analyze_path is not None else Config.NEVER_ANALYZE_PATH
        )
        self.delay_seconds = (
            Config.ANALYZER_DELAY_SECONDS if delay_seconds is None else delay_seconds
        )
        self.batch_size = batch_size or Config.ANALYZER_BATCH_SIZE

    def _get_detector(self) -> ToolDetector:
        if self._detector is None:
            self._detector = ToolDetector()
        return self._detector

    def _get_posting_repository(self) -> PostingRepositoryInterface:
        if self._posting_repository is not None:
            return self._posting_repository
        return get_posting_repository()

    def _get_detection_repository(self) -> DetectionRepositoryInterface:
        if self._detection_repository is not None:
            return self._detection_repository
        return get_detection_repository()

    def refresh_never_analyze(self) -> Optional[NeverAnalyzeList]:
        """Rebuild the never-analyze list (None when skipping is disabled)."""
        if not self.skip_known:
            return None
        return build_never_analyze_list(
            self._get_detection_repository(), self.never_analyze_path
        )

    def run_once(
        self,
        batch_size: Optional[int] = None,
        stop: Optional[StopToken] = None,
    ) -> AnalyzerRunResult:
        """
        Process one batch of unprocessed postings, oldest first.

        Args:
            batch_size: Postings to fetch (defaults to self.batch_size)
            stop: Cancellation token, checked before each posting

        Returns:
            AnalyzerRunResult for this batch

        Raises:
            Exception: Persistence errors propagate; the posting being
                handled stays unprocessed.
        """
        stop = stop or StopToken()
        limit = batch_size or self.batch_size
        result = AnalyzerRunResult(batches=1)
        errors = ErrorCollector("analyzer", logger=logger)

        if stop.stopped:
            result.stopped = True
            return result

        never_analyze = self.refresh_never_analyze()
        posting_repo = self._get_posting_repository()
        postings = posting_repo.fetch_unprocessed(limit)
        result.fetched = len(postings)

        if postings:
            logger.info(f"Analyzing batch of {len(postings)} postings")

        for index, posting in enumerate(postings):
            if stop.stopped:
                result.stopped = True
                break

            action = decide_next_action(posting, never_analyze)

            if action == NextAction.ALREADY_PROCESSED:
                continue

            if action == NextAction.SKIP_KNOWN:
                posting_repo.mark_processed(posting.id, AnalysisOutcome.SKIPPED_KNOWN)
                result.skipped += 1
                logger.debug(f"Skipped known company: {posting.company}")
                continue

            try:
                outcome = self._analyze(posting, never_analyze, result)
            except CollaboratorError as e:
                # Leave the posting unprocessed; the next poll retries it
                result.collaborator_failures += 1
                errors.add_error("detect_tool", f"{posting.id}: {e}", exception=e)
                break

            posting_repo.mark_processed(posting.id, outcome)
            result.analyzed += 1
            if outcome == AnalysisOutcome.PARSE_ERROR:
                result.errors += 1
                errors.add_error("parse_response", f"{posting.id}: malformed LLM response")
            elif outcome == AnalysisOutcome.REJECTED:
                result.errors += 1
                errors.add_error("llm_rejected", f"{posting.id}: LLM refused the posting")

            if index < len(postings) - 1 and stop.wait(self.delay_seconds):
                result.stopped = True
                break

        result.error_details = errors.errors
        if result.fetched:
            logger.info(
                f"Batch complete: analyzed={result.analyzed}, detected={result.detected}, "
                f"no_tool={result.no_tool}, skipped={result.skipped}, "
                f"errors={result.errors}, collaborator_failures={result.collaborator_failures}"
            )
        if errors:
            logger.warning(f"Batch errors: {errors.summary()}")
        return result

    def _analyze(
        self,
        posting: Posting,
        never_analyze: Optional[NeverAnalyzeList],
        result: AnalyzerRunResult,
    ) -> AnalysisOutcome:
        """Submit one posting to the detector and upsert any detection."""
        try:
            judgment = self._get_detector().detect(
                posting.company, posting.title, posting.description
            )
        except MalformedResponseError as e:
            logger.warning(f"Malformed response for {posting.company} ({posting.id}): {e}")
            return AnalysisOutcome.PARSE_ERROR
        except RejectedInputError as e:
            logger.warning(f"LLM rejected {posting.company} ({posting.id}): {e}")
            return AnalysisOutcome.REJECTED

        if not judgment.is_detection:
            result.no_tool += 1
            return AnalysisOutcome.NO_TOOL

        if not normalize_company_name(posting.company):
            # No registry row without a company key
            logger.warning(
                f"Dropping {judgment.tool_detected.value} detection for posting "
                f"{posting.id}: blank company name {posting.company!r}"
            )
            result.no_tool += 1
            return AnalysisOutcome.NO_TOOL

        detection = build_detection(posting, judgment, datetime.utcnow())
        upsert = self._get_detection_repository().upsert_detection(detection)
        result.detected += 1
        if never_analyze is not None:
            never_analyze.add(posting.company)

        logger.info(
            f"Detected {judgment.tool_detected.value} at {posting.company} "
            f"({judgment.confidence.value}, {upsert.value})"
        )
        return AnalysisOutcome.TOOL_DETECTED

    def run_forever(
        self,
        stop: StopToken,
        once: bool = False,
    ) -> AnalyzerRunResult:
        """
        Poll until stopped.

        Args:
            stop: Cancellation token
            once: Exit when the queue is empty (or the LLM is unavailable)
                instead of idling

        Returns:
            Aggregate AnalyzerRunResult over all batches
        """
        total = AnalyzerRunResult()
        consecutive_empty = 0

        logger.info(f"Analyzer started (batch_size={self.batch_size}, once={once})")

        while not stop.stopped:
            try:
                batch = self.run_once(stop=stop)
            except Exception as e:
                if once:
                    raise
                logger.exception(f"Analyzer batch failed, retrying in {ERROR_BACKOFF_SECONDS}s: {e}")
                stop.wait(ERROR_BACKOFF_SECONDS)
                continue

            total.merge(batch)

            if batch.collaborator_failures:
                if once:
                    break
                logger.warning(f"LLM unavailable, retrying in {ERROR_BACKOFF_SECONDS}s")
                stop.wait(ERROR_BACKOFF_SECONDS)
                continue

            if batch.fetched == 0:
                if once:
                    logger.info("Queue empty, exiting")
                    break
                consecutive_empty += 1
                wait_seconds = empty_backoff_seconds(consecutive_empty)
                logger.debug(f"Queue empty, sleeping {wait_seconds}s")
                stop.wait(wait_seconds)
            else:
                consecutive_empty = 0

        total.stopped = stop.stopped
        logger.info(f"Analyzer finished: {total.to_dict()}")
        return total
