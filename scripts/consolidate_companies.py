#!/usr/bin/env python3
"""
Consolidate Company Registry

Finds identified_companies rows that refer to the same company and tool
(e.g. "Acme Inc" and "acme") and keeps only the earliest-identified row.

Dry run by default: prints candidate merges and changes nothing.

Usage:
    python scripts/consolidate_companies.py            # list candidate merges
    python scripts/consolidate_companies.py --apply    # delete after confirmation
    python scripts/consolidate_companies.py --apply --yes
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
from src.common.error_handling import ConfigurationError
from src.common.logger import setup_cli_logging
from src.services.company_consolidator import CompanyConsolidator, ConsolidationPlan

logger = logging.getLogger("consolidate_companies")


def print_plan(plan: ConsolidationPlan) -> None:
    """Print candidate merges in a readable form."""
    print(f"Total records: {plan.total_records}")
    if plan.is_empty:
        print("No duplicates found.")
        return

    print(f"Duplicate groups: {len(plan.groups)}")
    for group in plan.groups:
        keeper = group.keeper
        print(f"\n  {keeper.company} [{keeper.tool.value}]")
        print(f"    keep:   {keeper.identified_at.isoformat()}  (id {keeper.id})")
        for dup in group.duplicates:
            print(f"    delete: {dup.identified_at.isoformat()}  {dup.company!r} (id {dup.id})")

    print(f"\nRows to delete: {plan.rows_to_delete}")
    print(f"Records after cleanup: {plan.total_records - plan.rows_to_delete}")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Merge duplicate company registry rows")
    parser.add_argument("--apply", action="store_true", help="Delete duplicates (default: dry run)")
    parser.add_argument("--yes", action="store_true", help="Skip the interactive confirmation")
    parser.add_argument("--json", action="store_true", help="Print the plan as JSON")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    setup_cli_logging(args.verbose)

    try:
        Config.validate(["MONGODB_URI"])
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)

    consolidator = CompanyConsolidator()
    plan = consolidator.plan()

    if args.json:
        print(json.dumps([g.to_dict() for g in plan.groups], indent=2))
    else:
        print_plan(plan)

    if plan.is_empty:
        return

    if not args.apply:
        print("\nDry run. Re-run with --apply to delete duplicates.")
        return

    if not args.yes:
        answer = input(f"\nDelete {plan.rows_to_delete} rows? Type 'yes' to continue: ")
        if answer.strip().lower() != "yes":
            print("Aborted.")
            return

    result = consolidator.apply(plan)
    print(f"Merged {result.groups_merged} groups, deleted {result.rows_deleted} rows.")


if __name__ == "__main__":
    main()
