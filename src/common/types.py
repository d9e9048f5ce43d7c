"""
Canonical Types for the Sales Tool Detector

Typed records for everything that crosses the persistence boundary:
postings, detections and search terms. Each record converts to and from its
MongoDB document so no component reads raw documents ad hoc.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from src.common.dedupe import normalize_company_name
from src.common.schema import DetectionFields, PostingFields, SearchTermFields


class Tool(str, Enum):
    """Closed enumeration of detectable sales tools."""

    NONE = "None"
    OUTREACH = "Outreach.io"
    SALESLOFT = "SalesLoft"
    BOTH = "Both"


class SignalType(str, Enum):
    """How the tool shows up in the posting."""

    EXPLICIT_MENTION = "explicit_mention"
    INTEGRATION_REQUIREMENT = "integration_requirement"
    PROCESS_INDICATOR = "process_indicator"
    NONE = "none"


class Confidence(str, Enum):
    """Confidence of a detection, ordered by rank."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 3, "medium": 2, "low": 1}[self.value]


class AnalysisOutcome(str, Enum):
    """Terminal outcome recorded on a processed posting."""

    TOOL_DETECTED = "tool_detected"
    NO_TOOL = "no_tool"
    PARSE_ERROR = "parse_error"
    REJECTED = "rejected"
    SKIPPED_KNOWN = "skipped_known"


@dataclass
class Posting:
    """One scraped job listing."""

    id: str
    platform: str
    company: str
    title: str
    location: str = ""
    description: str = ""
    url: str = ""
    search_term: str = ""
    scrape_run_id: Optional[str] = None
    scraped_at: datetime = field(default_factory=datetime.utcnow)
    processed: bool = False
    analyzed_at: Optional[datetime] = None
    analysis_outcome: Optional[AnalysisOutcome] = None

    def to_document(self) -> Dict[str, Any]:
        """Convert to MongoDB document."""
        return {
            PostingFields.ID: self.id,
            PostingFields.PLATFORM: self.platform,
            PostingFields.COMPANY: self.company,
            PostingFields.TITLE: self.title,
            PostingFields.LOCATION: self.location,
            PostingFields.DESCRIPTION: self.description,
            PostingFields.URL: self.url,
            PostingFields.SEARCH_TERM: self.search_term,
            PostingFields.SCRAPE_RUN_ID: self.scrape_run_id,
            PostingFields.SCRAPED_AT: self.scraped_at,
            PostingFields.PROCESSED: self.processed,
            PostingFields.ANALYZED_AT: self.analyzed_at,
            PostingFields.ANALYSIS_OUTCOME: (
                self.analysis_outcome.value if self.analysis_outcome else None
            ),
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Posting":
        """Build from a MongoDB document, tolerating missing optional fields."""
        outcome = doc.get(PostingFields.ANALYSIS_OUTCOME)
        return cls(
            id=doc[PostingFields.ID],
            platform=doc.get(PostingFields.PLATFORM, ""),
            company=doc.get(PostingFields.COMPANY) or "",
            title=doc.get(PostingFields.TITLE) or "",
            location=doc.get(PostingFields.LOCATION) or "",
            description=doc.get(PostingFields.DESCRIPTION) or "",
            url=doc.get(PostingFields.URL) or "",
            search_term=doc.get(PostingFields.SEARCH_TERM) or "",
            scrape_run_id=doc.get(PostingFields.SCRAPE_RUN_ID),
            scraped_at=doc.get(PostingFields.SCRAPED_AT) or datetime.utcnow(),
            processed=bool(doc.get(PostingFields.PROCESSED, False)),
            analyzed_at=doc.get(PostingFields.ANALYZED_AT),
            analysis_outcome=AnalysisOutcome(outcome) if outcome else None,
        )


@dataclass
class Detection:
    """
    A company registry row asserting that a company uses a sales tool.

    At most one row exists per (normalized company name, tool); the first
    spelling seen is kept as the display name.
    """

    company: str
    tool: Tool
    signal_type: SignalType
    context: str
    confidence: Confidence
    job_title: str = ""
    job_url: str = ""
    posting_id: Optional[str] = None
    platform: str = ""
    identified_at: datetime = field(default_factory=datetime.utcnow)
    times_seen: int = 1
    last_seen_at: Optional[datetime] = None
    id: Optional[Any] = None

    @property
    def confidence_rank(self) -> int:
        return self.confidence.rank

    @property
    def company_key(self) -> str:
        return normalize_company_name(self.company)

    def to_document(self) -> Dict[str, Any]:
        """Convert to MongoDB document (without _id)."""
        return {
            DetectionFields.COMPANY: self.company,
            DetectionFields.COMPANY_KEY: self.company_key,
            DetectionFields.TOOL: self.tool.value,
            DetectionFields.SIGNAL_TYPE: self.signal_type.value,
            DetectionFields.CONTEXT: self.context,
            DetectionFields.CONFIDENCE: self.confidence.value,
            DetectionFields.CONFIDENCE_RANK: self.confidence_rank,
            DetectionFields.JOB_TITLE: self.job_title,
            DetectionFields.JOB_URL: self.job_url,
            DetectionFields.POSTING_ID: self.posting_id,
            DetectionFields.PLATFORM: self.platform,
            DetectionFields.IDENTIFIED_AT: self.identified_at,
            DetectionFields.TIMES_SEEN: self.times_seen,
            DetectionFields.LAST_SEEN_AT: self.last_seen_at or self.identified_at,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Detection":
        """Build from a MongoDB document."""
        return cls(
            id=doc.get(DetectionFields.ID),
            company=doc.get(DetectionFields.COMPANY) or "",
            tool=Tool(doc[DetectionFields.TOOL]),
            signal_type=SignalType(doc.get(DetectionFields.SIGNAL_TYPE) or "none"),
            context=doc.get(DetectionFields.CONTEXT) or "",
            confidence=Confidence(doc.get(DetectionFields.CONFIDENCE) or "low"),
            job_title=doc.get(DetectionFields.JOB_TITLE) or "",
            job_url=doc.get(DetectionFields.JOB_URL) or "",
            posting_id=doc.get(DetectionFields.POSTING_ID),
            platform=doc.get(DetectionFields.PLATFORM) or "",
            identified_at=doc.get(DetectionFields.IDENTIFIED_AT) or datetime.utcnow(),
            times_seen=int(doc.get(DetectionFields.TIMES_SEEN, 1)),
            last_seen_at=doc.get(DetectionFields.LAST_SEEN_AT),
        )


@dataclass
class SearchTerm:
    """A search term driven by the weekly scheduler."""

    term: str
    last_scraped_at: Optional[datetime] = None
    jobs_found_count: int = 0
    active: bool = True
    last_error: Optional[str] = None
    last_run_id: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        """Convert to MongoDB document."""
        return {
            SearchTermFields.TERM: self.term,
            SearchTermFields.LAST_SCRAPED_AT: self.last_scraped_at,
            SearchTermFields.JOBS_FOUND_COUNT: self.jobs_found_count,
            SearchTermFields.ACTIVE: self.active,
            SearchTermFields.LAST_ERROR: self.last_error,
            SearchTermFields.LAST_RUN_ID: self.last_run_id,
        }

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "SearchTerm":
        """Build from a MongoDB document."""
        return cls(
            term=doc[SearchTermFields.TERM],
            last_scraped_at=doc.get(SearchTermFields.LAST_SCRAPED_AT),
            jobs_found_count=int(doc.get(SearchTermFields.JOBS_FOUND_COUNT) or 0),
            active=bool(doc.get(SearchTermFields.ACTIVE, True)),
            last_error=doc.get(SearchTermFields.LAST_ERROR),
            last_run_id=doc.get(SearchTermFields.LAST_RUN_ID),
        )
