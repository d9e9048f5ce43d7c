#!/usr/bin/env python3
"""
Ingest One Search Term

Scrapes LinkedIn (via Apify) for a single search term and stores new postings.
Does not touch the term's scheduler state; use run_scheduler.py for that.

Usage:
    python scripts/ingest_term.py --term "SDR"
    python scripts/ingest_term.py --term "Revenue Operations" --max-items 100 --json
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

from src.common.config import Config
from src.common.error_handling import CollaboratorError, ConfigurationError
from src.common.logger import setup_cli_logging
from src.common.repositories import ensure_indexes
from src.services.job_ingest_service import IngestService

logger = logging.getLogger("ingest_term")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Ingest job postings for one search term")
    parser.add_argument("--term", required=True, help="Search term (job title query)")
    parser.add_argument(
        "--max-items",
        type=int,
        default=Config.SCRAPE_MAX_ITEMS,
        help=f"Maximum postings to request (default: {Config.SCRAPE_MAX_ITEMS})",
    )
    parser.add_argument("--json", action="store_true", help="Print the result as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    setup_cli_logging(args.verbose)

    try:
        Config.validate(["MONGODB_URI", "APIFY_TOKEN"])
        ensure_indexes()
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    try:
        result = IngestService().ingest(args.term, args.max_items)
    except CollaboratorError as e:
        logger.error(f"Scrape failed: {e}")
        sys.exit(1)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        print(
            f"Run {result.run_id}: scraped={result.total_scraped} saved={result.saved_count} "
            f"duplicates={result.duplicate_count} failed={result.failed_count}"
        )

    # Exit with error code if any batch failed
    if not result.success:
        sys.exit(1)


if __name__ == "__main__":
    main()
