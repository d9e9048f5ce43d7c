"""
Pipeline Status Service

Read-only aggregate counts across the three collections, for the
pipeline_status CLI.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from src.common.repositories import (
    DetectionRepositoryInterface,
    PostingRepositoryInterface,
    SearchTermRepositoryInterface,
    get_detection_repository,
    get_posting_repository,
    get_search_term_repository,
)


@dataclass
class TermStatus:
    term: str
    active: bool
    last_scraped_at: Optional[datetime]
    jobs_found_count: int
    last_error: Optional[str] = None


@dataclass
class PipelineStatus:
    """Snapshot of pipeline progress."""

    total_postings: int = 0
    unprocessed_postings: int = 0
    total_detections: int = 0
    detections_by_tool: Dict[str, int] = field(default_factory=dict)
    terms: List[TermStatus] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "postings": {
                "total": self.total_postings,
                "unprocessed": self.unprocessed_postings,
                "processed": self.total_postings - self.unprocessed_postings,
            },
            "detections": {
                "total": self.total_detections,
                "by_tool": self.detections_by_tool,
            },
            "search_terms": [
                {
                    "term": t.term,
                    "active": t.active,
                    "last_scraped_at": t.last_scraped_at.isoformat() if t.last_scraped_at else None,
                    "jobs_found_count": t.jobs_found_count,
                    "last_error": t.last_error,
                }
                for t in self.terms
            ],
        }


def get_pipeline_status(
    posting_repository: Optional[PostingRepositoryInterface] = None,
    detection_repository: Optional[DetectionRepositoryInterface] = None,
    search_term_repository: Optional[SearchTermRepositoryInterface] = None,
) -> PipelineStatus:
    """
    Collect aggregate counts.

    Args:
        posting_repository: Optional override (defaults to singleton)
        detection_repository: Optional override
        search_term_repository: Optional override

    Returns:
        PipelineStatus
    """
    postings = posting_repository or get_posting_repository()
    detections = detection_repository or get_detection_repository()
    search_terms = search_term_repository or get_search_term_repository()

    return PipelineStatus(
        total_postings=postings.count_total(),
        unprocessed_postings=postings.count_unprocessed(),
        total_detections=detections.count_total(),
        detections_by_tool=detections.count_by_tool(),
        terms=[
            TermStatus(
                term=t.term,
                active=t.active,
                last_scraped_at=t.last_scraped_at,
                jobs_found_count=t.jobs_found_count,
                last_error=t.last_error,
            )
            for t in search_terms.list_terms(active_only=False)
        ],
    )
