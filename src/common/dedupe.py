"""
Company Deduplication Module

Single source of truth for deciding whether two company names denote the same
company, and for deriving stable posting identifiers at ingest time.

Matching is deliberately conservative: exact normalized match, a curated alias
table, or a trailing-whitespace-only difference. There is no fuzzy distance,
so two distinct companies that share a common word are never merged.

Usage:
    from src.common.dedupe import normalize_company_name, same_company

    normalize_company_name("The Acme Group, Inc.")
    # Result: "acme"

    same_company("Acme Inc", "acme")
    # Result: True

    generate_posting_id("linkedin", source_id="3847291058")
    # Result: "linkedin_3847291058"
"""

import hashlib
import re
from operator import attrgetter
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple, TypeVar

T = TypeVar("T")

# Trademark and copyright glyphs dropped before any other processing
_TRADEMARK_GLYPHS = re.compile(r"[™®©]")

# Legal-entity and business-descriptor suffixes, anchored at the end
COMPANY_SUFFIXES: Tuple[str, ...] = (
    "inc",
    "incorporated",
    "llc",
    "llp",
    "lp",
    "corp",
    "corporation",
    "ltd",
    "limited",
    "co",
    "company",
    "group",
    "holdings",
    "holding",
    "solutions",
    "services",
    "technologies",
    "technology",
    "software",
    "consulting",
    "partners",
    "plc",
    "gmbh",
    "ag",
    "sa",
    "bv",
    "pty",
)

_SUFFIX_PATTERN = re.compile(r"\s+(?:" + "|".join(COMPANY_SUFFIXES) + r")$")
_ARTICLE_PATTERN = re.compile(r"^(?:the|a|an)\s+")
_PUNCTUATION = re.compile(r"[^a-z0-9\s]")
_WHITESPACE = re.compile(r"\s+")
_NON_ALNUM = re.compile(r"[^a-z0-9]")

# Known aliases, stored in normalized form. A pair matches when one side's
# normalized name contains the first alias and the other side's contains the
# second (in either order).
COMPANY_ALIASES: Tuple[Tuple[str, str], ...] = (
    ("facebook", "metaplatforms"),
    ("google", "alphabet"),
    ("amazonwebservices", "amazon"),
    ("zoominfo", "discoverorg"),
    ("hewlettpackardenterprise", "hewlettpackard"),
    ("salesforce", "salesforcecom"),
)


def normalize_company_name(name: Optional[str]) -> str:
    """
    Normalize a company name into its dedup key.

    Steps, in order:
    - drop trademark glyphs, lower-case, turn punctuation into spaces
    - collapse whitespace
    - strip legal-entity suffixes from the end (repeatedly)
    - strip a leading article (the/a/an)
    - remove everything that is not a-z or 0-9

    The result contains no whitespace, so applying the function twice
    gives the same value as applying it once.

    Args:
        name: Raw company name (may be None)

    Returns:
        Lowercase alphanumeric-only key, "" for empty input

    Examples:
        >>> normalize_company_name("Acme Inc.")
        'acme'
        >>> normalize_company_name("The Widget Company Holdings, LLC")
        'widget'
        >>> normalize_company_name(None)
        ''
    """
    if not name:
        return ""

    text = _TRADEMARK_GLYPHS.sub("", name).lower()
    text = text.replace("'", "").replace("’", "")
    text = _PUNCTUATION.sub(" ", text)
    text = _WHITESPACE.sub(" ", text).strip()

    while True:
        stripped = _SUFFIX_PATTERN.sub("", text)
        if stripped == text:
            break
        text = stripped

    text = _ARTICLE_PATTERN.sub("", text)
    return _NON_ALNUM.sub("", text)


def _matches_alias(norm_a: str, norm_b: str) -> bool:
    """Check the curated alias table in both directions."""
    for first, second in COMPANY_ALIASES:
        if first in norm_a and second in norm_b:
            return True
        if second in norm_a and first in norm_b:
            return True
    return False


def same_company(name_a: Optional[str], name_b: Optional[str]) -> bool:
    """
    Decide whether two company names denote the same company.

    True when any of:
    (a) normalized forms are identical and non-empty
    (b) the pair matches the alias table
    (c) raw strings differ only by trailing whitespace

    Symmetric for all inputs.

    Args:
        name_a: First company name
        name_b: Second company name

    Returns:
        True if the names are treated as the same company
    """
    if name_a is None or name_b is None:
        return False

    if name_a.rstrip() == name_b.rstrip() and name_a.strip():
        return True

    norm_a = normalize_company_name(name_a)
    norm_b = normalize_company_name(name_b)
    if not norm_a or not norm_b:
        return False

    if norm_a == norm_b:
        return True

    return _matches_alias(norm_a, norm_b)


def group_duplicates(
    records: Iterable[T],
    name_key: Callable[[T], str] = attrgetter("company"),
    tool_key: Callable[[T], Any] = attrgetter("tool"),
    order_key: Callable[[T], Any] = attrgetter("identified_at"),
) -> List[List[T]]:
    """
    Group records that refer to the same company and the same tool.

    Pairwise scan: each record is compared with the first member of every
    existing group. O(n^2), fine for a registry of a few thousand rows.

    Args:
        records: Records to group (any order)
        name_key: Returns the company name of a record
        tool_key: Returns the detected tool of a record
        order_key: Returns the creation timestamp of a record

    Returns:
        List of groups (singletons included), each ordered earliest-first
    """
    ordered: Sequence[T] = sorted(records, key=order_key)
    groups: List[List[T]] = []

    for record in ordered:
        for group in groups:
            anchor = group[0]
            if tool_key(anchor) == tool_key(record) and same_company(
                name_key(anchor), name_key(record)
            ):
                group.append(record)
                break
        else:
            groups.append([record])

    return groups


def _clean(value: Optional[str], default: str = "") -> str:
    value = (value or "").strip()
    return value or default


def generate_posting_id(
    platform: str,
    source_id: Optional[str] = None,
    company: Optional[str] = None,
    title: Optional[str] = None,
    location: Optional[str] = None,
    url: Optional[str] = None,
) -> str:
    """
    Generate a stable posting identifier.

    Priority:
    1. If source_id exists: "{platform}_{source_id}"
    2. Fallback: "{platform}_gen_{md5(company|title|location|url)[:12]}"

    Re-scraping the same posting always yields the same identifier, which is
    what makes ingestion idempotent.

    Args:
        platform: Platform identifier (e.g., "linkedin")
        source_id: Native ID from the platform, if any
        company: Company name (fallback hash input)
        title: Job title (fallback hash input)
        location: Job location (fallback hash input)
        url: Job URL (fallback hash input)

    Returns:
        Posting identifier string

    Examples:
        >>> generate_posting_id("linkedin", source_id="3847291058")
        'linkedin_3847291058'
    """
    native = _clean(str(source_id) if source_id is not None else None)
    if native:
        return f"{platform}_{native}"

    content = "|".join([
        _clean(company, "unknown"),
        _clean(title, "unknown"),
        _clean(location, "unknown"),
        _clean(url),
    ])
    digest = hashlib.md5(content.encode("utf-8")).hexdigest()[:12]
    return f"{platform}_gen_{digest}"
