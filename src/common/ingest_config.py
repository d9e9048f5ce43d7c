"""
Search Term Seeding Configuration

Default sales-development search terms plus helpers to load a custom list
from a file or the SEED_SEARCH_TERMS environment variable.
"""

import os
from pathlib import Path
from typing import List, Optional


DEFAULT_SEARCH_TERMS: List[str] = [
    "inside sales",
    "SDR",
    "BDR",
    "Revops",
    "Revenue Operations",
    "Sales Development Representative",
    "Business Development Representative",
    "Enterprise SDR",
    "Enterprise BDR",
    "Director of Sales Development",
    "Senior Director of Sales Development",
    "Head of Sales Development",
    "Head of Business Development",
    "VP Sales Development",
    "VP Business Development",
    "RevOps Manager",
    "Head of RevOps",
    "Sales Operations Manager",
    "Head of Sales Ops",
    "Head of SDR",
    "Head of BDR",
    "SDR Director",
    "BDR Director",
    "SDR Manager",
    "BDR Manager",
    "VP Sales",
    "VP Revenue Operations",
    "Marketing Operations Manager",
    "Account Executive",
    "Head of Sales",
    "Chief Revenue Officer",
    "CRO",
    "Sales Enablement",
    "Sales Engineer",
]


def parse_list(val: Optional[str]) -> List[str]:
    """Split a comma-separated value into trimmed, non-empty items."""
    if not val:
        return []
    return [item.strip() for item in val.split(",") if item.strip()]


def load_search_terms(path: Optional[str] = None) -> List[str]:
    """
    Resolve the list of terms to seed.

    Priority:
    1. File at `path` (one term per line, '#' starts a comment)
    2. SEED_SEARCH_TERMS environment variable (comma-separated)
    3. DEFAULT_SEARCH_TERMS

    Args:
        path: Optional path to a terms file

    Returns:
        Terms in their original order, duplicates removed

    Raises:
        FileNotFoundError: If `path` is given but does not exist
    """
    if path:
        lines = Path(path).read_text(encoding="utf-8").splitlines()
        terms = [line.split("#", 1)[0].strip() for line in lines]
        terms = [t for t in terms if t]
    else:
        terms = parse_list(os.getenv("SEED_SEARCH_TERMS")) or list(DEFAULT_SEARCH_TERMS)

    seen = set()
    unique = []
    for term in terms:
        if term not in seen:
            seen.add(term)
            unique.append(term)
    return unique
