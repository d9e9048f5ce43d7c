"""
Global fixtures for all unit tests.

This conftest provides autouse fixtures that prevent real external service calls:
- MongoDB connection attempts (would cause 5-30s timeout per test)
- Environment variable isolation (prevents credential leakage)

It also provides in-memory repositories and collaborators so services can be
exercised end to end without MongoDB, Apify or OpenAI.
"""

from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional
from unittest.mock import MagicMock, patch

import pytest

from src.common.error_handling import CollaboratorError, MalformedResponseError, RejectedInputError
from src.common.repositories import (
    BatchInsertResult,
    DetectionRepositoryInterface,
    PostingRepositoryInterface,
    SearchTermRepositoryInterface,
    UpsertOutcome,
    WriteResult,
    reset_repositories,
)
from src.common.types import (
    Confidence,
    Detection,
    Posting,
    SearchTerm,
    SignalType,
    Tool,
)
from src.services.job_sources import JobSource, ScrapedJob
from src.services.tool_detector import ToolJudgment


@pytest.fixture(autouse=True)
def mock_mongodb():
    """
    Prevent MongoDB connection attempts in all unit tests.

    MongoClient("") defaults to localhost:27017, causing 5-30s timeout per test.
    """
    with patch("src.common.repositories.atlas_repository.MongoClient") as mock_client:
        mock_instance = MagicMock()
        mock_db = MagicMock()
        mock_collection = MagicMock()

        # Setup chain: client["db"]["collection"]
        mock_instance.__getitem__ = MagicMock(return_value=mock_db)
        mock_db.__getitem__ = MagicMock(return_value=mock_collection)
        mock_collection.find_one = MagicMock(return_value=None)

        mock_client.return_value = mock_instance
        yield mock_client

    reset_repositories()


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """
    Isolate test environment from real credentials and configurations.

    Mock keys prevent real API calls if a test accidentally reaches a client.
    """
    monkeypatch.setenv("MONGODB_URI", "mongodb://test-host:27017")
    monkeypatch.setenv("MONGODB_DATABASE", "sales_tool_detector_test")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-mock-key")
    monkeypatch.setenv("APIFY_TOKEN", "apify-test-mock-token")
    monkeypatch.delenv("SEED_SEARCH_TERMS", raising=False)


# =============================================================================
# IN-MEMORY REPOSITORIES
# =============================================================================


class InMemoryPostingRepository(PostingRepositoryInterface):
    """Postings keyed by id with the same insert-or-ignore semantics as Atlas."""

    def __init__(self, postings: Iterable[Posting] = ()):
        self.rows: Dict[str, Posting] = {}
        self.fail_next_inserts = 0
        self.insert_calls = 0
        for posting in postings:
            self.rows[posting.id] = posting

    def insert_if_absent(self, postings: List[Posting]) -> BatchInsertResult:
        self.insert_calls += 1
        if self.fail_next_inserts:
            self.fail_next_inserts -= 1
            raise ConnectionError("simulated write failure")

        result = BatchInsertResult()
        for posting in postings:
            if posting.id in self.rows:
                result.duplicates += 1
            else:
                self.rows[posting.id] = posting
                result.inserted += 1
        return result

    def fetch_unprocessed(self, limit: int) -> List[Posting]:
        pending = [p for p in self.rows.values() if not p.processed]
        pending.sort(key=lambda p: (p.scraped_at, p.id))
        return pending[:limit]

    def mark_processed(self, posting_id, outcome, analyzed_at=None) -> bool:
        posting = self.rows.get(posting_id)
        if posting is None or posting.processed:
            return False
        posting.processed = True
        posting.analysis_outcome = outcome
        posting.analyzed_at = analyzed_at or datetime.utcnow()
        return True

    def count_total(self) -> int:
        return len(self.rows)

    def count_unprocessed(self) -> int:
        return sum(1 for p in self.rows.values() if not p.processed)

    def ensure_indexes(self) -> None:
        pass


class InMemoryDetectionRepository(DetectionRepositoryInterface):
    """Registry with (company_key, tool) uniqueness and keep-highest-confidence merge."""

    def __init__(self, detections: Iterable[Detection] = ()):
        self.rows: List[Detection] = []
        self._next_id = 1
        for detection in detections:
            self.seed(detection)

    def seed(self, detection: Detection) -> None:
        """Store a row as-is, like a row written before company_key existed."""
        if detection.id is None:
            detection.id = self._next_id
        self._next_id += 1
        self.rows.append(detection)

    def _find(self, company_key: str, tool: Tool) -> Optional[Detection]:
        for row in self.rows:
            if row.company_key == company_key and row.tool == tool:
                return row
        return None

    def upsert_detection(self, detection: Detection) -> UpsertOutcome:
        existing = self._find(detection.company_key, detection.tool)
        if existing is None:
            self.seed(detection)
            return UpsertOutcome.INSERTED

        outcome = UpsertOutcome.REINFORCED
        if detection.confidence_rank > existing.confidence_rank:
            existing.signal_type = detection.signal_type
            existing.context = detection.context
            existing.confidence = detection.confidence
            existing.job_title = detection.job_title
            existing.job_url = detection.job_url
            existing.posting_id = detection.posting_id
            outcome = UpsertOutcome.UPGRADED
        existing.times_seen += 1
        existing.last_seen_at = detection.last_seen_at or datetime.utcnow()
        return outcome

    def list_all(self) -> List[Detection]:
        return sorted(self.rows, key=lambda d: d.identified_at)

    def delete_by_ids(self, ids) -> int:
        targets = set(ids)
        before = len(self.rows)
        self.rows = [d for d in self.rows if d.id not in targets]
        return before - len(self.rows)

    def company_names(self) -> List[str]:
        return sorted({d.company for d in self.rows if d.company})

    def count_total(self) -> int:
        return len(self.rows)

    def count_by_tool(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for row in self.rows:
            counts[row.tool.value] = counts.get(row.tool.value, 0) + 1
        return counts

    def ensure_indexes(self) -> None:
        pass


class InMemorySearchTermRepository(SearchTermRepositoryInterface):
    """Search terms keyed by term text."""

    def __init__(self, terms: Iterable[SearchTerm] = ()):
        self.rows: Dict[str, SearchTerm] = {t.term: t for t in terms}

    def list_terms(self, active_only: bool = True) -> List[SearchTerm]:
        terms = [t for t in self.rows.values() if t.active or not active_only]
        return sorted(terms, key=lambda t: t.term)

    def record_scrape(self, term, scraped_at, jobs_found, run_id=None) -> WriteResult:
        row = self.rows.get(term)
        if row is None:
            return WriteResult(matched_count=0, modified_count=0)
        row.last_scraped_at = scraped_at
        row.jobs_found_count = jobs_found
        row.last_run_id = run_id
        row.last_error = None
        return WriteResult(matched_count=1, modified_count=1)

    def record_failure(self, term, message, run_id=None) -> WriteResult:
        row = self.rows.get(term)
        if row is None:
            return WriteResult(matched_count=0, modified_count=0)
        row.last_error = message
        row.last_run_id = run_id
        return WriteResult(matched_count=1, modified_count=1)

    def add_terms(self, terms) -> int:
        created = 0
        for term in terms:
            term = term.strip()
            if term and term not in self.rows:
                self.rows[term] = SearchTerm(term=term)
                created += 1
        return created


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================


class FakeJobSource(JobSource):
    """Returns canned jobs per term, or raises for terms listed in `failing`."""

    def __init__(self, jobs_by_term: Optional[Dict[str, List[ScrapedJob]]] = None, failing=()):
        self.jobs_by_term = jobs_by_term or {}
        self.failing = set(failing)
        self.calls: List[str] = []

    def fetch_jobs(self, search_term: str, max_items: int) -> List[ScrapedJob]:
        self.calls.append(search_term)
        if search_term in self.failing:
            raise CollaboratorError("apify", f"actor run failed for {search_term}")
        return list(self.jobs_by_term.get(search_term, []))[:max_items]

    def get_platform_name(self) -> str:
        return "linkedin"


class FakeToolDetector:
    """
    Scripted detector keyed by company name.

    Values are a ToolJudgment, or an exception instance to raise.
    Unscripted companies get a no-tool judgment.
    """

    def __init__(self, script: Optional[Dict[str, object]] = None):
        self.script = script or {}
        self.calls: List[str] = []

    def detect(self, company: str, title: str, description: str) -> ToolJudgment:
        self.calls.append(company)
        outcome = self.script.get(company)
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            return ToolJudgment(uses_tool=False, tool_detected=Tool.NONE)
        return outcome


# =============================================================================
# BUILDERS
# =============================================================================


BASE_TIME = datetime(2024, 3, 4, 9, 0, 0)


def make_posting(
    posting_id: str,
    company: str,
    title: str = "Sales Development Representative",
    description: str = "Join our SDR team.",
    minutes: int = 0,
    processed: bool = False,
) -> Posting:
    return Posting(
        id=posting_id,
        platform="linkedin",
        company=company,
        title=title,
        location="Remote",
        description=description,
        url=f"https://www.linkedin.com/jobs/view/{posting_id}",
        search_term="SDR",
        scraped_at=BASE_TIME + timedelta(minutes=minutes),
        processed=processed,
    )


def make_detection(
    company: str,
    tool: Tool = Tool.OUTREACH,
    confidence: Confidence = Confidence.HIGH,
    days: int = 0,
) -> Detection:
    identified_at = BASE_TIME + timedelta(days=days)
    return Detection(
        company=company,
        tool=tool,
        signal_type=SignalType.EXPLICIT_MENTION,
        context=f"Experience with {tool.value}",
        confidence=confidence,
        identified_at=identified_at,
        last_seen_at=identified_at,
    )


def judgment(
    tool: Tool = Tool.OUTREACH,
    confidence: Confidence = Confidence.HIGH,
    context: str = "Hands-on experience with Outreach.io sequences",
) -> ToolJudgment:
    return ToolJudgment(
        uses_tool=tool != Tool.NONE,
        tool_detected=tool,
        signal_type=SignalType.EXPLICIT_MENTION if tool != Tool.NONE else SignalType.NONE,
        context=context,
        confidence=confidence,
    )


@pytest.fixture
def builders():
    """Record builders shared by the service tests."""
    return {
        "posting": make_posting,
        "detection": make_detection,
        "judgment": judgment,
        "base_time": BASE_TIME,
    }


@pytest.fixture
def posting_repo():
    return InMemoryPostingRepository()


@pytest.fixture
def detection_repo():
    return InMemoryDetectionRepository()


@pytest.fixture
def search_term_repo():
    return InMemorySearchTermRepository()


@pytest.fixture
def fake_source_factory():
    return FakeJobSource


@pytest.fixture
def fake_detector_factory():
    return FakeToolDetector


@pytest.fixture
def malformed_error():
    return MalformedResponseError("Response is not a bare JSON object: Sure! Here it is", "Sure!")


@pytest.fixture
def llm_down_error():
    return CollaboratorError("openai", "APIConnectionError: Connection error.")


@pytest.fixture
def rejected_error():
    return RejectedInputError(
        "openai", "BadRequestError: Error code: 400 - This model's maximum context length is exceeded"
    )
