#!/usr/bin/env python3
"""
Continuous Analyzer

Polls for unprocessed postings and runs tool detection on each one.
Runs until SIGINT/SIGTERM; in-flight postings finish before exit.

Usage:
    python scripts/run_analyzer.py                 # run forever
    python scripts/run_analyzer.py --once          # drain the queue, then exit
    python scripts/run_analyzer.py --batch-size 20 --no-skip-known
"""

import argparse
import json
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment before other imports
load_dotenv()

from src.common.cancellation import StopToken, install_signal_handlers
from src.common.config import Config
from src.common.error_handling import ConfigurationError
from src.common.logger import setup_cli_logging
from src.common.repositories import ensure_indexes
from src.services.analyzer_service import ContinuousAnalyzer

logger = logging.getLogger("run_analyzer")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Continuous sales-tool analyzer")
    parser.add_argument("--once", action="store_true", help="Exit when the queue is empty")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=Config.ANALYZER_BATCH_SIZE,
        help=f"Postings per poll (default: {Config.ANALYZER_BATCH_SIZE})",
    )
    parser.add_argument(
        "--no-skip-known",
        action="store_true",
        help="Analyze companies already in the registry",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    setup_cli_logging(args.verbose)

    try:
        Config.validate(["MONGODB_URI", "OPENAI_API_KEY"])
        ensure_indexes()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    logger.info(Config.summary())

    stop = StopToken()
    install_signal_handlers(stop)

    analyzer = ContinuousAnalyzer(
        batch_size=args.batch_size,
        skip_known=False if args.no_skip_known else None,
    )
    result = analyzer.run_forever(stop, once=args.once)

    print(json.dumps(result.to_dict(), indent=2))
    if args.once and result.collaborator_failures:
        sys.exit(1)


if __name__ == "__main__":
    main()
