"""
Unit tests for src/services/analyzer_service.py

Tests the ContinuousAnalyzer worker:
- Per-posting state machine (decide_next_action)
- Detection upsert + processed marking
- Never-analyze skipping
- Parse errors vs unavailable LLM
- Cooperative cancellation and idle backoff
"""

import json

import pytest

from src.common.cancellation import StopToken
from src.common.types import AnalysisOutcome, Confidence, Tool
from src.services.analyzer_service import (
    AnalyzerRunResult,
    ContinuousAnalyzer,
    NextAction,
    build_detection,
    decide_next_action,
    empty_backoff_seconds,
)
from src.services.never_analyze import NeverAnalyzeList


# =============================================================================
# FIXTURES
# =============================================================================


class RecordingStopToken(StopToken):
    """StopToken that never sleeps and stops itself after `max_waits` waits."""

    def __init__(self, max_waits: int = 1):
        super().__init__()
        self.max_waits = max_waits
        self.waits = []

    def wait(self, seconds: float) -> bool:
        self.waits.append(seconds)
        if len(self.waits) >= self.max_waits:
            self.stop("test limit reached")
        return self.stopped


@pytest.fixture
def make_analyzer(posting_repo, detection_repo):
    def _make(detector, skip_known=False, never_analyze_path=""):
        return ContinuousAnalyzer(
            detector=detector,
            posting_repository=posting_repo,
            detection_repository=detection_repo,
            skip_known=skip_known,
            never_analyze_path=never_analyze_path,
            delay_seconds=0,
            batch_size=10,
        )
    return _make


# =============================================================================
# Pure helpers
# =============================================================================


class TestDecideNextAction:
    """Tests for decide_next_action()."""

    def test_unprocessed_posting_is_analyzed(self, builders):
        posting = builders["posting"]("p1", "Acme")
        assert decide_next_action(posting) == NextAction.ANALYZE

    def test_processed_posting_is_left_alone(self, builders):
        posting = builders["posting"]("p1", "Acme", processed=True)
        assert decide_next_action(posting, NeverAnalyzeList(["Acme"])) == NextAction.ALREADY_PROCESSED

    def test_known_company_is_skipped(self, builders):
        posting = builders["posting"]("p1", "Acme, Inc.")
        assert decide_next_action(posting, NeverAnalyzeList(["acme"])) == NextAction.SKIP_KNOWN

    def test_skipping_disabled(self, builders):
        posting = builders["posting"]("p1", "Acme")
        assert decide_next_action(posting, None) == NextAction.ANALYZE


class TestEmptyBackoff:
    """Tests for empty_backoff_seconds()."""

    @pytest.mark.parametrize("polls, expected", [(1, 5), (2, 10), (5, 25), (6, 30), (20, 30)])
    def test_linear_then_capped(self, polls, expected):
        assert empty_backoff_seconds(polls) == expected


class TestBuildDetection:
    """Tests for build_detection()."""

    def test_copies_posting_evidence(self, builders):
        posting = builders["posting"]("p1", "  Acme Inc ", title="SDR")
        judgment = builders["judgment"](Tool.SALESLOFT, Confidence.MEDIUM, "SalesLoft cadences")
        now = builders["base_time"]

        detection = build_detection(posting, judgment, now)

        assert detection.company == "Acme Inc"
        assert detection.tool == Tool.SALESLOFT
        assert detection.confidence == Confidence.MEDIUM
        assert detection.context == "SalesLoft cadences"
        assert detection.posting_id == "p1"
        assert detection.job_title == "SDR"
        assert detection.identified_at == now


# =============================================================================
# ContinuousAnalyzer.run_once
# =============================================================================


class TestRunOnce:
    """Tests for ContinuousAnalyzer.run_once()."""

    def test_product_mention_creates_detection(
        self, make_analyzer, posting_repo, detection_repo, fake_detector_factory, builders
    ):
        # Arrange
        posting = builders["posting"]("p1", "Acme", description="we use Outreach.io daily")
        posting_repo.rows[posting.id] = posting
        detector = fake_detector_factory({"Acme": builders["judgment"](Tool.OUTREACH)})

        # Act
        result = make_analyzer(detector).run_once()

        # Assert
        assert result.analyzed == 1
        assert result.detected == 1
        assert detection_repo.count_total() == 1
        assert detection_repo.rows[0].tool == Tool.OUTREACH
        assert detection_repo.rows[0].posting_id == "p1"
        assert posting.processed is True
        assert posting.analysis_outcome == AnalysisOutcome.TOOL_DETECTED

    def test_generic_outreach_creates_no_detection(
        self, make_analyzer, posting_repo, detection_repo, fake_detector_factory, builders
    ):
        posting = builders["posting"]("p1", "Acme", description="Own cold outreach efforts")
        posting_repo.rows[posting.id] = posting

        result = make_analyzer(fake_detector_factory()).run_once()

        assert result.no_tool == 1
        assert detection_repo.count_total() == 0
        assert posting.processed is True
        assert posting.analysis_outcome == AnalysisOutcome.NO_TOOL

    def test_oldest_postings_first(
        self, make_analyzer, posting_repo, fake_detector_factory, builders
    ):
        for pid, company, minutes in [("p3", "Initech", 30), ("p1", "Acme", 0), ("p2", "Globex", 10)]:
            posting_repo.rows[pid] = builders["posting"](pid, company, minutes=minutes)
        detector = fake_detector_factory()

        make_analyzer(detector).run_once()

        assert detector.calls == ["Acme", "Globex", "Initech"]

    def test_batch_size_limits_fetch(
        self, make_analyzer, posting_repo, fake_detector_factory, builders
    ):
        for i in range(5):
            posting_repo.rows[f"p{i}"] = builders["posting"](f"p{i}", f"Company {i}", minutes=i)

        result = make_analyzer(fake_detector_factory()).run_once(batch_size=2)

        assert result.fetched == 2
        assert posting_repo.count_unprocessed() == 3

    def test_repeat_detections_keep_one_row(
        self, make_analyzer, posting_repo, detection_repo, fake_detector_factory, builders
    ):
        posting_repo.rows["p1"] = builders["posting"]("p1", "Acme", minutes=0)
        posting_repo.rows["p2"] = builders["posting"]("p2", "Acme", minutes=1)
        detector = fake_detector_factory({"Acme": builders["judgment"](Tool.OUTREACH)})

        result = make_analyzer(detector, skip_known=False).run_once()

        assert result.detected == 2
        assert detection_repo.count_total() == 1
        assert detection_repo.rows[0].times_seen == 2

    def test_parse_error_marks_processed_and_counts(
        self,
        make_analyzer,
        posting_repo,
        detection_repo,
        fake_detector_factory,
        builders,
        malformed_error,
    ):
        posting = builders["posting"]("p1", "Acme")
        posting_repo.rows["p1"] = posting

        result = make_analyzer(fake_detector_factory({"Acme": malformed_error})).run_once()

        assert result.errors == 1
        assert result.analyzed == 1
        assert posting.processed is True
        assert posting.analysis_outcome == AnalysisOutcome.PARSE_ERROR
        assert detection_repo.count_total() == 0
        assert result.error_details[0].operation == "parse_response"

    def test_unavailable_llm_leaves_posting_unprocessed_and_ends_batch(
        self, make_analyzer, posting_repo, fake_detector_factory, builders, llm_down_error
    ):
        posting_repo.rows["p1"] = builders["posting"]("p1", "Acme", minutes=0)
        posting_repo.rows["p2"] = builders["posting"]("p2", "Globex", minutes=1)
        detector = fake_detector_factory({"Acme": llm_down_error})

        result = make_analyzer(detector).run_once()

        assert result.collaborator_failures == 1
        assert result.analyzed == 0
        assert detector.calls == ["Acme"]
        assert posting_repo.count_unprocessed() == 2

    def test_refused_posting_settled_so_queue_keeps_moving(
        self, make_analyzer, posting_repo, detection_repo, fake_detector_factory, builders, rejected_error
    ):
        # Arrange: the oldest posting is one the LLM will never accept
        posting_repo.rows["p1"] = builders["posting"]("p1", "Bad Input Co", minutes=0)
        posting_repo.rows["p2"] = builders["posting"]("p2", "Next Co", minutes=1)
        detector = fake_detector_factory({
            "Bad Input Co": rejected_error,
            "Next Co": builders["judgment"](Tool.SALESLOFT),
        })
        analyzer = make_analyzer(detector)

        # Act
        result = analyzer.run_once()
        follow_up = analyzer.run_once()

        # Assert
        assert detector.calls == ["Bad Input Co", "Next Co"]
        assert posting_repo.rows["p1"].processed is True
        assert posting_repo.rows["p1"].analysis_outcome == AnalysisOutcome.REJECTED
        assert posting_repo.rows["p2"].analysis_outcome == AnalysisOutcome.TOOL_DETECTED
        assert result.errors == 1
        assert result.collaborator_failures == 0
        assert result.detected == 1
        assert result.to_dict()["error_summary"] == {"total": 1, "by_operation": {"llm_rejected": 1}}
        assert follow_up.fetched == 0
        assert [d.company for d in detection_repo.rows] == ["Next Co"]

    def test_spelling_variants_share_one_registry_row(
        self, make_analyzer, posting_repo, detection_repo, fake_detector_factory, builders
    ):
        posting_repo.rows["p1"] = builders["posting"]("p1", "Acme Inc", minutes=0)
        posting_repo.rows["p2"] = builders["posting"]("p2", "ACME, Inc.", minutes=1)
        positive = builders["judgment"](Tool.OUTREACH)
        detector = fake_detector_factory({"Acme Inc": positive, "ACME, Inc.": positive})

        result = make_analyzer(detector, skip_known=False).run_once()

        assert result.detected == 2
        assert detection_repo.count_total() == 1
        assert detection_repo.rows[0].company == "Acme Inc"
        assert detection_repo.rows[0].times_seen == 2

    @pytest.mark.parametrize("company", ["", "   ", "--"])
    def test_blank_company_never_reaches_registry(
        self, make_analyzer, posting_repo, detection_repo, fake_detector_factory, builders, company
    ):
        posting = builders["posting"]("p1", company)
        posting_repo.rows["p1"] = posting
        detector = fake_detector_factory({company: builders["judgment"](Tool.OUTREACH)})

        result = make_analyzer(detector).run_once()

        assert posting.processed is True
        assert posting.analysis_outcome == AnalysisOutcome.NO_TOOL
        assert result.no_tool == 1
        assert result.detected == 0
        assert detection_repo.count_total() == 0

    def test_known_company_skipped_without_llm_call(
        self, make_analyzer, posting_repo, detection_repo, fake_detector_factory, builders
    ):
        detection_repo.upsert_detection(builders["detection"]("Acme Inc"))
        posting = builders["posting"]("p1", "ACME")
        posting_repo.rows["p1"] = posting
        detector = fake_detector_factory()

        result = make_analyzer(detector, skip_known=True).run_once()

        assert result.skipped == 1
        assert detector.calls == []
        assert posting.processed is True
        assert posting.analysis_outcome == AnalysisOutcome.SKIPPED_KNOWN

    def test_company_detected_in_batch_skipped_later_in_same_batch(
        self, make_analyzer, posting_repo, fake_detector_factory, builders
    ):
        posting_repo.rows["p1"] = builders["posting"]("p1", "Acme", minutes=0)
        posting_repo.rows["p2"] = builders["posting"]("p2", "Acme Inc", minutes=1)
        detector = fake_detector_factory({"Acme": builders["judgment"]()})

        result = make_analyzer(detector, skip_known=True).run_once()

        assert detector.calls == ["Acme"]
        assert result.detected == 1
        assert result.skipped == 1

    def test_never_analyze_file(
        self, make_analyzer, posting_repo, fake_detector_factory, builders, tmp_path
    ):
        path = tmp_path / "never_analyze.json"
        path.write_text(json.dumps({"companies": ["Globex Corporation"]}))
        posting_repo.rows["p1"] = builders["posting"]("p1", "Globex")
        detector = fake_detector_factory()

        result = make_analyzer(detector, skip_known=True, never_analyze_path=str(path)).run_once()

        assert result.skipped == 1
        assert detector.calls == []

    def test_processed_flag_never_reset(
        self, make_analyzer, posting_repo, fake_detector_factory, builders
    ):
        posting = builders["posting"]("p1", "Acme")
        posting_repo.rows["p1"] = posting
        analyzer = make_analyzer(fake_detector_factory())

        analyzer.run_once()
        second = analyzer.run_once()

        assert second.fetched == 0
        assert posting.processed is True

    def test_stop_checked_before_each_posting(
        self, make_analyzer, posting_repo, fake_detector_factory, builders
    ):
        for i in range(3):
            posting_repo.rows[f"p{i}"] = builders["posting"](f"p{i}", f"Company {i}", minutes=i)
        stop = StopToken()

        class StoppingDetector(fake_detector_factory):
            def detect(self, company, title, description):
                stop.stop("shutdown")
                return super().detect(company, title, description)

        detector = StoppingDetector()
        result = make_analyzer(detector).run_once(stop=stop)

        assert result.stopped is True
        assert detector.calls == ["Company 0"]
        # The in-flight posting is finished before stopping
        assert posting_repo.count_unprocessed() == 2

    def test_already_stopped_does_nothing(
        self, make_analyzer, posting_repo, fake_detector_factory, builders
    ):
        posting_repo.rows["p1"] = builders["posting"]("p1", "Acme")
        stop = StopToken()
        stop.stop()

        result = make_analyzer(fake_detector_factory()).run_once(stop=stop)

        assert result.stopped is True
        assert result.fetched == 0


# =============================================================================
# ContinuousAnalyzer.run_forever
# =============================================================================


class TestRunForever:
    """Tests for ContinuousAnalyzer.run_forever()."""

    def test_once_drains_queue_then_exits(
        self, make_analyzer, posting_repo, fake_detector_factory, builders
    ):
        for i in range(25):
            posting_repo.rows[f"p{i}"] = builders["posting"](f"p{i}", f"Company {i}", minutes=i)

        total = make_analyzer(fake_detector_factory()).run_forever(StopToken(), once=True)

        assert isinstance(total, AnalyzerRunResult)
        assert total.analyzed == 25
        # 10 + 10 + 5 + final empty poll
        assert total.batches == 4
        assert posting_repo.count_unprocessed() == 0

    def test_once_exits_when_llm_unavailable(
        self, make_analyzer, posting_repo, fake_detector_factory, builders, llm_down_error
    ):
        posting_repo.rows["p1"] = builders["posting"]("p1", "Acme")

        total = make_analyzer(
            fake_detector_factory({"Acme": llm_down_error})
        ).run_forever(StopToken(), once=True)

        assert total.collaborator_failures == 1
        assert posting_repo.count_unprocessed() == 1

    def test_once_drains_past_refused_postings(
        self, make_analyzer, posting_repo, fake_detector_factory, builders, rejected_error
    ):
        posting_repo.rows["p1"] = builders["posting"]("p1", "Bad Input Co", minutes=0)
        posting_repo.rows["p2"] = builders["posting"]("p2", "Globex", minutes=1)

        total = make_analyzer(
            fake_detector_factory({"Bad Input Co": rejected_error})
        ).run_forever(StopToken(), once=True)

        assert total.errors == 1
        assert total.no_tool == 1
        assert posting_repo.count_unprocessed() == 0

    def test_idle_backoff_grows_linearly(self, make_analyzer, fake_detector_factory):
        stop = RecordingStopToken(max_waits=3)

        total = make_analyzer(fake_detector_factory()).run_forever(stop)

        assert stop.waits == [5, 10, 15]
        assert total.stopped is True

    def test_llm_unavailable_backs_off_and_retries(
        self, make_analyzer, posting_repo, fake_detector_factory, builders, llm_down_error
    ):
        posting_repo.rows["p1"] = builders["posting"]("p1", "Acme")
        detector = fake_detector_factory({"Acme": llm_down_error})
        stop = RecordingStopToken(max_waits=2)

        total = make_analyzer(detector).run_forever(stop)

        assert stop.waits == [5, 5]
        assert detector.calls == ["Acme", "Acme"]
        assert total.collaborator_failures == 2

    def test_persistence_error_reraised_in_once_mode(
        self, make_analyzer, posting_repo, fake_detector_factory, builders, monkeypatch
    ):
        posting_repo.rows["p1"] = builders["posting"]("p1", "Acme")

        def broken_fetch(limit):
            raise ConnectionError("mongo down")

        monkeypatch.setattr(posting_repo, "fetch_unprocessed", broken_fetch)

        with pytest.raises(ConnectionError):
            make_analyzer(fake_detector_factory()).run_forever(StopToken(), once=True)

    def test_persistence_error_retried_in_loop_mode(
        self, make_analyzer, posting_repo, fake_detector_factory, monkeypatch
    ):
        calls = []

        def broken_fetch(limit):
            calls.append(limit)
            raise ConnectionError("mongo down")

        monkeypatch.setattr(posting_repo, "fetch_unprocessed", broken_fetch)
        stop = RecordingStopToken(max_waits=2)

        make_analyzer(fake_detector_factory()).run_forever(stop)

        assert len(calls) == 2
        assert stop.waits == [5, 5]
