#!/usr/bin/env python3
"""
Pipeline Status

Prints aggregate counts: postings (total / unprocessed), detections per tool,
and each search term's last scrape.

Usage:
    python scripts/pipeline_status.py
    python scripts/pipeline_status.py --json
"""

import argparse
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment before other imports
load_dotenv()

from src.common.config import Config
from src.common.error_handling import ConfigurationError
from src.common.logger import setup_cli_logging
from src.services.status_service import get_pipeline_status


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Show pipeline status")
    parser.add_argument("--json", action="store_true", help="Print as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    setup_cli_logging(args.verbose, level="WARNING")

    try:
        Config.validate(["MONGODB_URI"])
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    status = get_pipeline_status()

    if args.json:
        print(json.dumps(status.to_dict(), indent=2))
        return

    print("=" * 60)
    print("PIPELINE STATUS")
    print("=" * 60)
    print(f"Postings:     {status.total_postings} total, {status.unprocessed_postings} unprocessed")
    print(f"Detections:   {status.total_detections} total")
    for tool, count in sorted(status.detections_by_tool.items()):
        print(f"  {tool:<12} {count}")

    print("\nSearch terms:")
    for term in status.terms:
        last = term.last_scraped_at.strftime("%Y-%m-%d %H:%M") if term.last_scraped_at else "never"
        flag = "" if term.active else " (inactive)"
        error = f"  ! {term.last_error}" if term.last_error else ""
        print(f"  {term.term:<40} {last:<17} {term.jobs_found_count:>5} jobs{flag}{error}")


if __name__ == "__main__":
    main()
