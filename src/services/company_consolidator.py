"""
Company Registry Consolidator

Maintenance pass over the identified_companies registry: rows whose company
names denote the same company (per the dedupe module) and share a tool are
merged by keeping the earliest-identified row and deleting the rest.

Two steps so callers can review before mutating:

    consolidator = CompanyConsolidator()
    plan = consolidator.plan()       # read-only
    result = consolidator.apply(plan)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from src.common.dedupe import group_duplicates
from src.common.repositories import DetectionRepositoryInterface, get_detection_repository
from src.common.types import Detection

logger = logging.getLogger(__name__)


@dataclass
class MergeGroup:
    """One set of duplicate rows: the keeper plus rows to delete."""

    keeper: Detection
    duplicates: List[Detection]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "company": self.keeper.company,
            "tool": self.keeper.tool.value,
            "keep": {
                "id": str(self.keeper.id),
                "identified_at": self.keeper.identified_at.isoformat(),
            },
            "delete": [
                {
                    "id": str(d.id),
                    "company": d.company,
                    "identified_at": d.identified_at.isoformat(),
                }
                for d in self.duplicates
            ],
        }


@dataclass
class ConsolidationPlan:
    """Candidate merges computed from the current registry."""

    total_records: int = 0
    groups: List[MergeGroup] = field(default_factory=list)

    @property
    def rows_to_delete(self) -> int:
        return sum(len(g.duplicates) for g in self.groups)

    @property
    def is_empty(self) -> bool:
        return not self.groups


@dataclass
class ConsolidationResult:
    """Counts reported after applying a plan."""

    groups_merged: int = 0
    rows_deleted: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"groups_merged": self.groups_merged, "rows_deleted": self.rows_deleted}


class CompanyConsolidator:
    """Plans and applies registry merges."""

    def __init__(self, repository: Optional[DetectionRepositoryInterface] = None):
        self._repository = repository

    def _get_repository(self) -> DetectionRepositoryInterface:
        if self._repository is not None:
            return self._repository
        return get_detection_repository()

    def plan(self) -> ConsolidationPlan:
        """
        Group the registry by (same company, same tool).

        Returns:
            ConsolidationPlan listing only groups with more than one row
        """
        records = self._get_repository().list_all()
        groups = group_duplicates(records)

        plan = ConsolidationPlan(total_records=len(records))
        for group in groups:
            if len(group) > 1:
                plan.groups.append(MergeGroup(keeper=group[0], duplicates=group[1:]))

        logger.info(
            f"Consolidation plan: {len(records)} records, "
            f"{len(plan.groups)} duplicate groups, {plan.rows_to_delete} rows to delete"
        )
        return plan

    def apply(self, plan: ConsolidationPlan) -> ConsolidationResult:
        """
        Delete every non-keeper row in the plan.

        Args:
            plan: Plan from plan()

        Returns:
            ConsolidationResult with groups merged and rows deleted
        """
        repo = self._get_repository()
        result = ConsolidationResult()

        for group in plan.groups:
            deleted = repo.delete_by_ids(d.id for d in group.duplicates)
            if deleted:
                result.groups_merged += 1
                result.rows_deleted += deleted
            logger.info(
                f"Merged {group.keeper.company} ({group.keeper.tool.value}): "
                f"deleted {deleted} duplicate(s)"
            )

        logger.info(
            f"Consolidation applied: groups={result.groups_merged}, rows={result.rows_deleted}"
        )
        return result
