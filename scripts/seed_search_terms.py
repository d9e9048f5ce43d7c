#!/usr/bin/env python3
"""
Seed Search Terms

Adds search terms to the search_terms collection as active and never
scraped. Existing terms are left untouched.

Usage:
    python scripts/seed_search_terms.py                  # default term list
    python scripts/seed_search_terms.py --file terms.txt # one term per line
"""

import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment before other imports
load_dotenv()

from src.common.config import Config
from src.common.error_handling import ConfigurationError
from src.common.ingest_config import load_search_terms
from src.common.logger import setup_cli_logging
from src.common.repositories import get_search_term_repository


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Seed the search_terms collection")
    parser.add_argument("--file", help="Terms file (one per line, '#' comments)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    setup_cli_logging(args.verbose)

    try:
        Config.validate(["MONGODB_URI"])
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    terms = load_search_terms(args.file)
    created = get_search_term_repository().add_terms(terms)
    print(f"Seeded {created} new terms ({len(terms) - created} already present).")


if __name__ == "__main__":
    main()
