"""
Centralized logging configuration for the sales tool detector.

Entry points call setup_cli_logging() once; everything else logs through
logging.getLogger(__name__) or, for ingest runs, get_logger() which tags each
message with the run id and stage.

Debug mode (DEBUG_MODE=true or a script's -v/--verbose) forces DEBUG on the
root logger and on every PipelineLogger created afterwards.
"""

import logging
import sys
from typing import Any, MutableMapping, Optional, Tuple

from src.common.config import Config

# Third-party loggers that drown out the pipeline at DEBUG
NOISY_LOGGERS = ("pymongo", "httpx", "urllib3", "openai")

_debug_mode = False


def set_global_debug_mode(enabled: bool) -> None:
    """Turn process-wide debug logging on or off."""
    global _debug_mode
    _debug_mode = enabled


def is_debug_mode() -> bool:
    return _debug_mode


class PipelineLogger(logging.LoggerAdapter):
    """
    Logger adapter that prefixes messages with run context.

    "[run:1a2b3c4d] [ingest] Starting ingest for 'SDR'"
    """

    def __init__(
        self,
        name: str,
        run_id: Optional[str] = None,
        stage: Optional[str] = None,
        debug_mode: Optional[bool] = None
    ):
        """
        Args:
            name: Logger name (usually __name__)
            run_id: Optional run identifier; the first 8 characters are shown
            stage: Optional stage name (e.g., "ingest", "analyzer")
            debug_mode: Force DEBUG on this logger. None follows is_debug_mode().
        """
        super().__init__(logging.getLogger(name), {})
        self.run_id = run_id
        self.stage = stage

        if debug_mode is None:
            debug_mode = is_debug_mode()
        if debug_mode:
            self.logger.setLevel(logging.DEBUG)

    def prefix(self) -> str:
        parts = []
        if self.run_id:
            parts.append(f"[run:{self.run_id[:8]}]")
        if self.stage:
            parts.append(f"[{self.stage}]")
        return " ".join(parts)

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        prefix = self.prefix()
        return (f"{prefix} {msg}" if prefix else msg), kwargs


def setup_logging(level: str = "INFO", format: str = "simple") -> None:
    """
    Configure the root logger with a single stdout handler.

    Args:
        level: Log level name; overridden to DEBUG in debug mode
        format: "simple" for humans, "json" for one object per line
    """
    log_level = logging.DEBUG if is_debug_mode() else getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    if format == "json":
        handler.setFormatter(logging.Formatter(
            '{"time": "%(asctime)s", "level": "%(levelname)s", "name": "%(name)s", "message": "%(message)s"}'
        ))
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))

    root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(max(log_level, logging.WARNING))


def setup_cli_logging(verbose: bool = False, level: Optional[str] = None) -> None:
    """
    Logging setup shared by the scripts/ entry points.

    Args:
        verbose: The script's -v/--verbose flag; combined with Config.DEBUG_MODE
        level: Base level when not in debug mode (defaults to Config.LOG_LEVEL)
    """
    set_global_debug_mode(verbose or Config.DEBUG_MODE)
    setup_logging(level or Config.LOG_LEVEL, Config.LOG_FORMAT)


def get_logger(
    name: str,
    run_id: Optional[str] = None,
    stage: Optional[str] = None,
    debug_mode: Optional[bool] = None
) -> PipelineLogger:
    """Get a run-tagged logger (see PipelineLogger)."""
    return PipelineLogger(name, run_id, stage, debug_mode)
