"""
Services for the sales tool detector pipeline.

Scheduler -> IngestService -> postings -> ContinuousAnalyzer -> ToolDetector
-> identified_companies -> CompanyConsolidator (maintenance).
"""

from src.services.analyzer_service import (
    AnalyzerRunResult,
    ContinuousAnalyzer,
    NextAction,
    decide_next_action,
)
from src.services.company_consolidator import (
    CompanyConsolidator,
    ConsolidationPlan,
    ConsolidationResult,
)
from src.services.job_ingest_service import IngestResult, IngestService
from src.services.scheduler_service import (
    TermScrapeResult,
    WeeklyScheduler,
    WeeklyScrapeResult,
)
from src.services.status_service import PipelineStatus, get_pipeline_status
from src.services.tool_detector import ToolDetector, ToolJudgment

__all__ = [
    # Ingestion
    "IngestService",
    "IngestResult",
    # Analysis
    "ContinuousAnalyzer",
    "AnalyzerRunResult",
    "NextAction",
    "decide_next_action",
    "ToolDetector",
    "ToolJudgment",
    # Scheduling
    "WeeklyScheduler",
    "WeeklyScrapeResult",
    "TermScrapeResult",
    # Maintenance and status
    "CompanyConsolidator",
    "ConsolidationPlan",
    "ConsolidationResult",
    "PipelineStatus",
    "get_pipeline_status",
]
