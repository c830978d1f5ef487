"""
Eligibility Aggregator

Reduces a student's requirement checks to one EligibilityVerdict:
1. Group checks by check type
2. Keep the latest check per type (equal dates: the later arrival wins)
3. Eligible only if at least one type was checked and every kept check is met

Checks with an unrecognised type are kept in the verdict for display but
never form a group, so they cannot make a student eligible or ineligible.
"""

import logging
from datetime import datetime
from typing import Iterable

from src.schemas.base import CheckType
from src.schemas.eligibility import EligibilityVerdict, RequirementCheck

logger = logging.getLogger(__name__)


class EligibilityAggregator:
    """Derives eligibility verdicts from raw requirement checks."""

    def aggregate(
        self,
        checks: Iterable[RequirementCheck],
        student_id: str | None = None,
    ) -> EligibilityVerdict:
        """
        Aggregate checks into a verdict.

        Args:
            checks: Raw checks for one student, in arrival order
            student_id: Owner of the checks (inferred from the checks if omitted)

        Returns:
            Verdict whose `checks` hold the authoritative check per type,
            followed by any unrecognised checks
        """
        latest: dict[CheckType, RequirementCheck] = {}
        unrecognised: list[RequirementCheck] = []

        for check in checks:
            if student_id is None:
                student_id = check.student_id

            check_type = check.known_type
            if check_type is None:
                logger.warning(
                    "Check %s for student %s has unknown type %r; kept for display only",
                    check.id, check.student_id or student_id, check.check_type,
                )
                unrecognised.append(check)
                continue

            current = latest.get(check_type)
            if current is None or check.check_date >= current.check_date:
                latest[check_type] = check

        kept = list(latest.values())
        has_results = len(kept) > 0
        last_check_date: datetime | None = max((check.check_date for check in kept), default=None)

        return EligibilityVerdict(
            student_id=student_id,
            has_results=has_results,
            is_eligible=has_results and all(check.is_met for check in kept),
            checks=kept + unrecognised,
            last_check_date=last_check_date,
        )


_default_aggregator = EligibilityAggregator()


def aggregate_eligibility(
    checks: Iterable[RequirementCheck],
    student_id: str | None = None,
) -> EligibilityVerdict:
    """Aggregate with the shared default aggregator."""
    return _default_aggregator.aggregate(checks, student_id=student_id)
