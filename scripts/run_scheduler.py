#!/usr/bin/env python3
"""
Weekly Scrape Scheduler

Checks hourly whether the weekly scrape is due and, when it is, scrapes every
active search term one at a time. Runs until SIGINT/SIGTERM.

Usage:
    python scripts/run_scheduler.py                # run forever
    python scripts/run_scheduler.py --once         # one due-check (and cycle if due)
    python scripts/run_scheduler.py --once --force # scrape all terms now
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
from src.services.scheduler_service import WeeklyScheduler

logger = logging.getLogger("run_scheduler")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Weekly LinkedIn scrape scheduler")
    parser.add_argument("--once", action="store_true", help="Single check, then exit")
    parser.add_argument(
        "--force",
        action="store_true",
        help="Scrape every active term now, even if not due",
    )
    parser.add_argument(
        "--max-items",
        type=int,
        default=Config.SCRAPE_MAX_ITEMS,
        help=f"Postings per term (default: {Config.SCRAPE_MAX_ITEMS})",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    setup_cli_logging(args.verbose)

    try:
        Config.validate(["MONGODB_URI", "APIFY_TOKEN"])
        ensure_indexes()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    stop = StopToken()
    install_signal_handlers(stop)

    scheduler = WeeklyScheduler(max_items=args.max_items)
    result = scheduler.run_forever(stop, once=args.once, force=args.force)

    if result is not None:
        print(json.dumps(result.to_dict(), indent=2))
        if result.terms_failed:
            sys.exit(1)


if __name__ == "__main__":
    main()
