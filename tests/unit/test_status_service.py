"""
Unit tests for src/services/status_service.py
"""

from src.common.types import AnalysisOutcome, SearchTerm, Tool
from src.services.status_service import get_pipeline_status


class TestGetPipelineStatus:
    """Tests for get_pipeline_status()."""

    def test_aggregates_counts(self, posting_repo, detection_repo, search_term_repo, builders):
        # Arrange
        for i in range(3):
            posting_repo.rows[f"p{i}"] = builders["posting"](f"p{i}", f"Company {i}")
        posting_repo.mark_processed("p0", AnalysisOutcome.NO_TOOL)
        detection_repo.upsert_detection(builders["detection"]("Acme", Tool.OUTREACH))
        detection_repo.upsert_detection(builders["detection"]("Globex", Tool.OUTREACH))
        detection_repo.upsert_detection(builders["detection"]("Initech", Tool.SALESLOFT))
        search_term_repo.rows["SDR"] = SearchTerm(
            term="SDR", last_scraped_at=builders["base_time"], jobs_found_count=12
        )
        search_term_repo.rows["CRO"] = SearchTerm(term="CRO", active=False)

        # Act
        status = get_pipeline_status(posting_repo, detection_repo, search_term_repo)

        # Assert
        assert status.total_postings == 3
        assert status.unprocessed_postings == 2
        assert status.total_detections == 3
        assert status.detections_by_tool == {"Outreach.io": 2, "SalesLoft": 1}
        assert [t.term for t in status.terms] == ["CRO", "SDR"]

    def test_to_dict(self, posting_repo, detection_repo, search_term_repo, builders):
        search_term_repo.rows["SDR"] = SearchTerm(
            term="SDR", last_scraped_at=builders["base_time"], jobs_found_count=12
        )

        data = get_pipeline_status(posting_repo, detection_repo, search_term_repo).to_dict()

        assert data["postings"] == {"total": 0, "unprocessed": 0, "processed": 0}
        assert data["search_terms"][0]["last_scraped_at"] == "2024-03-04T09:00:00"
        assert data["search_terms"][0]["jobs_found_count"] == 12
