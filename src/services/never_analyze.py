"""
Never-Analyze List

Companies that already have a detection in the registry (plus any listed in
an operator-maintained JSON file) are skipped by the analyzer to save LLM
spend. This is an optimization only; correctness never depends on it.

File format (NEVER_ANALYZE_PATH), either form:
    ["Acme Inc", "Globex"]
    {"companies": ["Acme Inc", "Globex"]}
"""

import json
import logging
from pathlib import Path
from typing import Iterable, List, Optional, Set

from src.common.dedupe import normalize_company_name
from src.common.error_handling import ConfigurationError
from src.common.repositories import DetectionRepositoryInterface

logger = logging.getLogger(__name__)


class NeverAnalyzeList:
    """Set of normalized company keys, queried with raw company names."""

    def __init__(self, names: Iterable[str] = ()):
        self._keys: Set[str] = set()
        for name in names:
            self.add(name)

    def add(self, name: Optional[str]) -> None:
        key = normalize_company_name(name)
        if key:
            self._keys.add(key)

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, str):
            return False
        key = normalize_company_name(name)
        return bool(key) and key in self._keys

    def __len__(self) -> int:
        return len(self._keys)


def load_never_analyze_file(path: Optional[str]) -> List[str]:
    """
    Read company names from the never-analyze JSON file.

    Args:
        path: File path; empty or None means no file

    Returns:
        List of company names ([] when no file is configured or it is missing)

    Raises:
        ConfigurationError: If the file exists but is not valid JSON of the
            expected shape
    """
    if not path:
        return []

    file_path = Path(path)
    if not file_path.exists():
        logger.warning(f"Never-analyze file not found at {file_path}, ignoring")
        return []

    try:
        data = json.loads(file_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Never-analyze file {file_path} is not valid JSON: {e}") from e

    if isinstance(data, dict):
        data = data.get("companies", [])
    if not isinstance(data, list) or not all(isinstance(n, str) for n in data):
        raise ConfigurationError(
            f"Never-analyze file {file_path} must contain a list of company names"
        )
    return data


def build_never_analyze_list(
    detection_repository: DetectionRepositoryInterface,
    path: Optional[str] = None,
) -> NeverAnalyzeList:
    """
    Build the list from registry company names plus the optional file.

    Args:
        detection_repository: Source of already-identified companies
        path: Optional JSON file with extra company names

    Returns:
        NeverAnalyzeList
    """
    registry_names = detection_repository.company_names()
    file_names = load_never_analyze_file(path)
    never_analyze = NeverAnalyzeList(registry_names)
    for name in file_names:
        never_analyze.add(name)

    logger.debug(
        f"Never-analyze list: {len(never_analyze)} companies "
        f"({len(registry_names)} from registry, {len(file_names)} from file)"
    )
    return never_analyze
