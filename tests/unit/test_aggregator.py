"""
Unit tests for the eligibility aggregator.

Tests verify:
1. The latest check per type is authoritative, regardless of input order
2. Absence of data is never eligibility
3. A single unmet requirement makes the student ineligible
4. Unknown check types are kept for display but never decide eligibility
"""

import pytest

from src.eligibility.aggregator import EligibilityAggregator, aggregate_eligibility
from src.schemas.base import CheckType
from tests.fakes import NOW, make_check, passing_checks


@pytest.fixture
def aggregator() -> EligibilityAggregator:
    return EligibilityAggregator()


# =============================================================================
# EMPTY AND BASIC INPUT
# =============================================================================

class TestEmptyInput:
    """Tests for students without checks."""

    def test_empty_input_is_unknown(self, aggregator) -> None:
        """No checks → no results, not eligible, no date."""
        verdict = aggregator.aggregate([], student_id="s1")

        assert verdict.student_id == "s1"
        assert verdict.has_results is False
        assert verdict.is_eligible is False
        assert verdict.checks == []
        assert verdict.last_check_date is None

    def test_student_id_inferred_from_checks(self, aggregator) -> None:
        """Student id comes from the checks when not given."""
        verdict = aggregator.aggregate([make_check("s9")])
        assert verdict.student_id == "s9"


class TestEligibility:
    """Tests for the all-met rule."""

    def test_all_met_is_eligible(self, aggregator) -> None:
        """Every requirement met → eligible."""
        verdict = aggregator.aggregate(passing_checks("s1"))

        assert verdict.has_results is True
        assert verdict.is_eligible is True
        assert len(verdict.checks) == len(CheckType)

    @pytest.mark.parametrize("check_type", list(CheckType))
    def test_any_single_unmet_check_flips_eligibility(self, aggregator, check_type) -> None:
        """Flipping one check to unmet makes the student ineligible."""
        checks = [
            make_check("s1", ct, is_met=(ct != check_type))
            for ct in CheckType
        ]
        verdict = aggregator.aggregate(checks)

        assert verdict.has_results is True
        assert verdict.is_eligible is False
        assert [c.known_type for c in verdict.failed_checks] == [check_type]

    def test_mixed_checks(self, aggregator) -> None:
        """GPA met, credits not met → results but ineligible."""
        verdict = aggregator.aggregate([
            make_check("a", CheckType.GPA, is_met=True),
            make_check("a", CheckType.TOTAL_CREDITS, is_met=False),
        ])
        assert verdict.has_results is True
        assert verdict.is_eligible is False


# =============================================================================
# DE-DUPLICATION
# =============================================================================

class TestLatestCheckWins:
    """Tests for per-type de-duplication."""

    @pytest.mark.parametrize("reverse", [False, True])
    def test_later_date_wins_regardless_of_order(self, aggregator, reverse) -> None:
        """An older failing GPA check is superseded by a newer passing one."""
        checks = [
            make_check("s1", CheckType.GPA, is_met=False, days_ago=10, check_id="old"),
            make_check("s1", CheckType.GPA, is_met=True, days_ago=1, check_id="new"),
        ]
        if reverse:
            checks.reverse()

        verdict = aggregator.aggregate(checks)

        assert [check.id for check in verdict.checks] == ["new"]
        assert verdict.is_eligible is True
        assert verdict.last_check_date == make_check("s1", days_ago=1).check_date

    def test_equal_dates_later_arrival_wins(self, aggregator) -> None:
        """Same type and same date: the later arrival is authoritative."""
        verdict = aggregator.aggregate([
            make_check("s1", CheckType.GPA, is_met=True, check_id="first"),
            make_check("s1", CheckType.GPA, is_met=False, check_id="second"),
        ])
        assert [check.id for check in verdict.checks] == ["second"]
        assert verdict.is_eligible is False

    def test_last_check_date_is_newest_kept(self, aggregator) -> None:
        """last_check_date is the max over the kept checks."""
        verdict = aggregator.aggregate([
            make_check("s1", CheckType.GPA, days_ago=5),
            make_check("s1", CheckType.TOTAL_CREDITS, days_ago=2),
        ])
        assert verdict.last_check_date == make_check("s1", days_ago=2).check_date


class TestIdempotence:
    """Tests for aggregation being a fixed point."""

    def test_aggregate_twice_is_identical(self, aggregator) -> None:
        """Same input → same output."""
        checks = [
            make_check("s1", CheckType.GPA, is_met=False, days_ago=3),
            make_check("s1", CheckType.GPA, is_met=True, days_ago=1),
            make_check("s1", CheckType.MANDATORY_COURSES, is_met=True),
        ]
        assert aggregator.aggregate(checks) == aggregator.aggregate(checks)

    def test_reaggregating_kept_checks_is_fixed_point(self, aggregator) -> None:
        """aggregate(aggregate(x).checks) == aggregate(x)."""
        checks = [
            make_check("s1", CheckType.GPA, is_met=False, days_ago=3),
            make_check("s1", CheckType.GPA, is_met=True, days_ago=1),
            make_check("s1", 99, is_met=False),
        ]
        first = aggregator.aggregate(checks)
        assert aggregator.aggregate(first.checks) == first


# =============================================================================
# UNKNOWN CHECK TYPES
# =============================================================================

class TestUnknownCheckTypes:
    """Tests for codes outside the CheckType enumeration."""

    def test_unknown_type_kept_but_ignored(self, aggregator) -> None:
        """An unmet unknown check neither shows results nor blocks eligibility."""
        verdict = aggregator.aggregate([
            make_check("s1", CheckType.GPA, is_met=True),
            make_check("s1", 42, is_met=False, check_id="mystery"),
        ])

        assert verdict.is_eligible is True
        assert verdict.checks[-1].id == "mystery"
        assert verdict.checks[-1].known_type is None

    def test_only_unknown_types_means_no_results(self, aggregator) -> None:
        """Unknown checks alone never create results."""
        verdict = aggregator.aggregate([make_check("s1", 42, is_met=True)])

        assert verdict.has_results is False
        assert verdict.is_eligible is False
        assert len(verdict.checks) == 1
        assert verdict.last_check_date is None


def test_module_level_helper_matches_class() -> None:
    """aggregate_eligibility uses the default aggregator."""
    checks = passing_checks("s1")
    assert aggregate_eligibility(checks) == EligibilityAggregator().aggregate(checks)


def test_check_dates_are_utc() -> None:
    """Naive backend timestamps are treated as UTC."""
    check = make_check("s1")
    naive = check.model_validate({**check.model_dump(), "check_date": NOW.replace(tzinfo=None)})
    assert naive.check_date == NOW
