"""
Unit tests for portal schemas.

Tests verify:
1. Backend camelCase payloads validate
2. Cached (field-name) dumps validate back to equal models
3. Domain rules are enforced (no eligible verdict without results,
   unknown statuses mean "no process")
"""

from datetime import timedelta

import pytest
from pydantic import ValidationError

from src.schemas.base import (
    ActorRole,
    CheckType,
    GraduationProcessStatus,
    GuardViolationCode,
    RosterScope,
    ScopeType,
)
from src.schemas.eligibility import EligibilityVerdict, RequirementCheck
from src.schemas.process import (
    GraduationProcess,
    GuardViolation,
    TransitionResponse,
    TransitionResult,
    parse_status,
    select_active_processes,
)
from src.schemas.student import Student, StudentRecord
from tests.fakes import NOW, make_check, make_process


# =============================================================================
# REQUIREMENT CHECKS
# =============================================================================

class TestRequirementCheck:
    """Tests for RequirementCheck."""

    def test_backend_payload(self) -> None:
        """camelCase backend fields and integer ids are accepted."""
        check = RequirementCheck.model_validate({
            "id": 17,
            "studentUserId": 42,
            "checkType": 2,
            "isMet": False,
            "actualValue": 212,
            "requiredValue": "240",
            "notesOrMissingItems": "missing 28 ECTS",
            "checkDate": "2025-05-30T10:00:00",
        })

        assert check.id == "17"
        assert check.student_id == "42"
        assert check.known_type == CheckType.TOTAL_CREDITS
        assert check.notes == "missing 28 ECTS"
        assert check.check_date.tzinfo is not None

    def test_unknown_type_is_kept_raw(self) -> None:
        """Unrecognised type codes validate; known_type is None."""
        check = make_check("s1", 99)
        assert check.check_type == 99
        assert check.known_type is None

    def test_missing_required_field(self) -> None:
        """isMet is mandatory."""
        with pytest.raises(ValidationError):
            RequirementCheck.model_validate({"id": "1", "checkType": 1, "checkDate": NOW.isoformat()})


class TestEligibilityVerdict:
    """Tests for EligibilityVerdict."""

    def test_eligible_without_results_rejected(self) -> None:
        """An eligible verdict must have results."""
        with pytest.raises(ValidationError):
            EligibilityVerdict(has_results=False, is_eligible=True)

    def test_unknown_verdict(self) -> None:
        """unknown() is the empty, not-eligible verdict."""
        verdict = EligibilityVerdict.unknown("s1")
        assert verdict.student_id == "s1"
        assert verdict.has_results is False
        assert verdict.is_eligible is False
        assert verdict.checks == []

    def test_cache_round_trip(self) -> None:
        """A JSON dump validates back to an equal verdict."""
        verdict = EligibilityVerdict(
            student_id="s1",
            has_results=True,
            is_eligible=False,
            checks=[make_check("s1", CheckType.GPA, is_met=False)],
            last_check_date=NOW,
        )
        restored = EligibilityVerdict.model_validate(verdict.model_dump(mode="json"))

        assert restored == verdict
        assert restored.failed_checks[0].known_type == CheckType.GPA


# =============================================================================
# PROCESSES
# =============================================================================

class TestParseStatus:
    """Tests for status code parsing."""

    @pytest.mark.parametrize("raw, expected", [
        (3, GraduationProcessStatus.PENDING_ADVISOR_CHECK),
        ("5", GraduationProcessStatus.ADVISOR_ELIGIBLE),
        ("DEAN_APPROVED", GraduationProcessStatus.DEAN_APPROVED),
        (GraduationProcessStatus.COMPLETED_GRADUATED, GraduationProcessStatus.COMPLETED_GRADUATED),
        (None, None),
        (2, None),
        (77, None),
        ("garbage", None),
    ])
    def test_parse(self, raw, expected) -> None:
        """Known codes parse; null and unknown codes mean no process."""
        assert parse_status(raw) == expected

    def test_process_with_unknown_status(self) -> None:
        """A process carrying an unknown code has status None."""
        process = GraduationProcess.model_validate({"id": 1, "studentUserId": 9, "status": 77})
        assert process.status is None
        assert process.student_id == "9"


class TestSelectActiveProcesses:
    """Tests for picking one process per student."""

    def test_latest_update_wins(self) -> None:
        """The most recently updated process is active."""
        old = make_process("s1", GraduationProcessStatus.ADVISOR_NOT_ELIGIBLE, days_ago=200)
        new = make_process("s1", GraduationProcessStatus.PENDING_ADVISOR_CHECK, days_ago=1)

        assert select_active_processes([new, old])["s1"] is new
        assert select_active_processes([old, new])["s1"] is new

    def test_falls_back_to_initiation_date(self) -> None:
        """Without an update date, initiation date orders processes."""
        first = GraduationProcess(id="a", student_id="s1", status=3, initiation_date=NOW - timedelta(days=3))
        second = GraduationProcess(id="b", student_id="s1", status=5, initiation_date=NOW)

        assert select_active_processes([second, first])["s1"].id == "b"


class TestTransitionModels:
    """Tests for transition responses and results."""

    def test_backend_response(self) -> None:
        """processSummaries payload validates and reports per-student outcome."""
        response = TransitionResponse.model_validate({
            "totalStudentsInRequest": 2,
            "successfullyProcessedCount": 1,
            "failedToProcessCount": 1,
            "processSummaries": [
                {"studentUserId": 1, "success": True, "graduationProcessId": 10,
                 "newGraduationProcessStatus": 8},
                {"studentUserId": 2, "success": False, "message": "Process not found"},
            ],
        })

        assert response.success is False
        assert response.summary_for("1").new_graduation_process_status == (
            GraduationProcessStatus.SECRETARY_APPROVED_PENDING_DEAN
        )
        assert response.summary_for("2").message == "Process not found"
        assert response.summary_for("3") is None

    def test_accepted_response(self) -> None:
        """An empty success body counts every student as processed."""
        response = TransitionResponse.accepted(["a", "b"])
        assert response.success is True
        assert response.successfully_processed_count == 2

    def test_refused_result(self) -> None:
        """A refused result carries the violation and its reason."""
        violation = GuardViolation(
            code=GuardViolationCode.NOT_ACTORS_TURN,
            reason="Student must be approved by advisor first",
            status=GraduationProcessStatus.PENDING_ADVISOR_CHECK,
            role=ActorRole.SECRETARY,
        )
        result = TransitionResult.refused("s1", violation)

        assert result.success is False
        assert result.reason == violation.reason
        assert result.previous_status == GraduationProcessStatus.PENDING_ADVISOR_CHECK

    def test_violation_requires_reason(self) -> None:
        """A violation without an explanation is invalid."""
        with pytest.raises(ValidationError):
            GuardViolation(code=GuardViolationCode.PROCESS_CLOSED, reason="")


# =============================================================================
# STUDENTS AND SCOPES
# =============================================================================

class TestStudent:
    """Tests for StudentRecord and Student."""

    def test_registry_payload(self) -> None:
        """Backend aliases for GPA and ECTS are accepted."""
        record = StudentRecord.model_validate({
            "id": 5,
            "studentNumber": 2020123,
            "firstName": "Ada",
            "lastName": "Lovelace",
            "departmentId": 3,
            "currentGpa": 3.61,
            "currentEctsCompleted": 240,
        })

        assert record.id == "5"
        assert record.student_number == "2020123"
        assert record.department_id == "3"
        assert record.gpa == 3.61
        assert record.full_name == "Ada Lovelace"

    def test_student_round_trip(self) -> None:
        """A cached roster entry validates back to an equal Student."""
        student = Student(
            id="s1",
            gpa=3.2,
            eligibility_status=EligibilityVerdict.unknown("s1"),
            active_graduation_process_status=GraduationProcessStatus.PENDING_ADVISOR_CHECK,
            eligibility_error=True,
        )
        restored = Student.model_validate(student.model_dump(mode="json"))

        assert restored == student
        assert restored.has_results is False
        assert restored.is_eligible is False

    def test_student_is_frozen(self) -> None:
        """Roster entries are never edited in place."""
        student = Student(id="s1")
        with pytest.raises(ValidationError):
            student.gpa = 4.0


class TestRosterScope:
    """Tests for RosterScope."""

    def test_namespaces(self) -> None:
        """Namespace is type:id."""
        assert RosterScope.department("cs").namespace == "department:cs"
        assert RosterScope.faculty(7).namespace == "faculty:7"
        assert RosterScope.university().namespace == "university:all"
        assert str(RosterScope.university()) == "university:all"

    def test_scope_is_hashable(self) -> None:
        """Equal scopes hash equal."""
        assert {RosterScope.department("cs"), RosterScope.department("cs")} == {
            RosterScope(scope_type=ScopeType.DEPARTMENT, scope_id="cs")
        }

    def test_empty_scope_id_rejected(self) -> None:
        """A scope needs an id."""
        with pytest.raises(ValidationError):
            RosterScope(scope_type=ScopeType.FACULTY, scope_id="")
