"""
Eligibility Schemas

RequirementCheck is one evaluation of one graduation requirement, as
computed by the external grading service. EligibilityVerdict is the
per-student summary derived from the authoritative checks.

Rules:
- Later checks of the same type supersede earlier ones
- Absence of data is never a pass
"""

from datetime import datetime

from pydantic import AliasChoices, Field, field_validator, model_validator

from src.schemas.base import CheckType, PortalModel, ensure_utc


class RequirementCheck(PortalModel):
    """One requirement check result for one student."""
    id: str
    student_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("student_id", "studentId", "studentUserId"),
    )
    process_id: str | None = None
    check_type: int = Field(description="Raw backend code, see CheckType")
    is_met: bool
    actual_value: float | str | None = None
    required_value: float | str | None = None
    notes: str | None = Field(
        default=None,
        validation_alias=AliasChoices("notes", "notesOrMissingItems"),
    )
    check_date: datetime

    @field_validator("id", "student_id", "process_id", mode="before")
    @classmethod
    def _coerce_identifier(cls, value):
        # Backend ids arrive as GUID strings or integers
        return None if value is None else str(value)

    @field_validator("check_date")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def known_type(self) -> CheckType | None:
        """The CheckType for this check, or None if the code is not recognised."""
        try:
            return CheckType(self.check_type)
        except ValueError:
            return None


class EligibilityVerdict(PortalModel):
    """
    Aggregated pass/fail/unknown summary for one student.

    is_eligible is only ever true when has_results is true.
    """
    student_id: str | None = None
    has_results: bool = False
    is_eligible: bool = False
    checks: list[RequirementCheck] = Field(default_factory=list)
    last_check_date: datetime | None = None

    @field_validator("last_check_date")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _eligible_requires_results(self) -> "EligibilityVerdict":
        if self.is_eligible and not self.has_results:
            raise ValueError("a verdict without results cannot be eligible")
        return self

    @classmethod
    def unknown(cls, student_id: str | None = None) -> "EligibilityVerdict":
        """Verdict for a student with no usable checks."""
        return cls(student_id=student_id)

    @property
    def failed_checks(self) -> list[RequirementCheck]:
        return [check for check in self.checks if not check.is_met]


class EligibilityTriggerResult(PortalModel):
    """Outcome of asking the backend to recompute eligibility checks."""
    success: bool
    processed_students: list[str] = Field(default_factory=list)
    students_without_results: list[str] = Field(default_factory=list)
