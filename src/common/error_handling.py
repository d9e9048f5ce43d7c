"""
Centralized error handling for the sales tool detector.

Defines the exception taxonomy shared by all components and an error
collector that accumulates per-run failures into result values.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


class DetectorError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(DetectorError, ValueError):
    """Required configuration (credentials, connection strings) is missing."""


class CollaboratorError(DetectorError):
    """
    An external collaborator (scraping provider, language model) failed.

    Never retried immediately; the caller's next scheduled pass retries.
    """

    def __init__(self, collaborator: str, message: str):
        self.collaborator = collaborator
        super().__init__(f"{collaborator}: {message}")


class MalformedResponseError(DetectorError):
    """The language model returned something that is not the agreed JSON."""

    def __init__(self, message: str, raw_response: Optional[str] = None):
        self.raw_response = raw_response
        super().__init__(message)


class RejectedInputError(DetectorError):
    """
    A collaborator refused one specific input (e.g. a 400 for an oversized
    or policy-flagged posting).

    Retrying the same input cannot succeed, so the item is settled instead.
    """

    def __init__(self, collaborator: str, message: str):
        self.collaborator = collaborator
        super().__init__(f"{collaborator}: {message}")


@dataclass
class RunError:
    """
    Structured error information for one failure inside a run.
    """

    stage: str  # e.g., "ingest", "analyzer", "scheduler"
    operation: str  # e.g., "persist_batch", "detect_tool"
    message: str
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat())
    exception_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "stage": self.stage,
            "operation": self.operation,
            "message": self.message,
            "timestamp": self.timestamp,
            "exception_type": self.exception_type,
        }


def summarize_errors(errors: List[RunError]) -> Dict[str, Any]:
    """Count errors per operation, e.g. for a run result's CLI output."""
    by_operation: Dict[str, int] = {}
    for error in errors:
        by_operation[error.operation] = by_operation.get(error.operation, 0) + 1
    return {"total": len(errors), "by_operation": by_operation}


class ErrorCollector:
    """
    Collects errors during a run.

    Owned by a single run; results expose the collected list.
    """

    def __init__(self, stage: str, logger: Optional[logging.Logger] = None):
        self.stage = stage
        self.errors: List[RunError] = []
        self._logger = logger

    def add_error(
        self,
        operation: str,
        message: str,
        exception: Optional[BaseException] = None,
    ) -> RunError:
        """Record an error and log it at WARNING."""
        error = RunError(
            stage=self.stage,
            operation=operation,
            message=message,
            exception_type=type(exception).__name__ if exception else None,
        )
        self.errors.append(error)
        if self._logger is not None:
            self._logger.warning(f"[{self.stage}] [{operation}] {message}")
        return error

    def __len__(self) -> int:
        return len(self.errors)

    def summary(self) -> Dict[str, Any]:
        """Get error summary statistics grouped by operation."""
        return summarize_errors(self.errors)
