"""
Student Schemas

StudentRecord is the identity/academic record owned by the student
registry. Student is the read-side roster entry the UI consumes: the
record plus the derived eligibility verdict and process status
projection. Students are rebuilt on every refresh and never edited.
"""

from pydantic import AliasChoices, ConfigDict, Field, field_validator

from src.schemas.base import GraduationProcessStatus, PortalModel
from src.schemas.eligibility import EligibilityVerdict
from src.schemas.process import parse_status


class StudentRecord(PortalModel):
    """Registry record for one student."""
    id: str
    student_number: str | None = None
    first_name: str = ""
    last_name: str = ""
    email: str | None = None
    department_id: str | None = None
    department_name: str | None = None
    faculty_id: str | None = None
    faculty_name: str | None = None
    gpa: float | None = Field(
        default=None,
        validation_alias=AliasChoices("gpa", "currentGpa"),
    )
    ects_completed: float | None = Field(
        default=None,
        validation_alias=AliasChoices("ects_completed", "currentEctsCompleted"),
    )

    @field_validator("id", "student_number", "department_id", "faculty_id", mode="before")
    @classmethod
    def _coerce_identifier(cls, value):
        return None if value is None else str(value)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Student(StudentRecord):
    """Roster entry: registry record + derived eligibility and status."""
    model_config = ConfigDict(frozen=True)

    eligibility_status: EligibilityVerdict | None = None
    active_graduation_process_status: GraduationProcessStatus | None = None
    eligibility_error: bool = Field(
        default=False,
        description="Eligibility could not be fetched on the last refresh",
    )

    @field_validator("active_graduation_process_status", mode="before")
    @classmethod
    def _parse_status(cls, value):
        return parse_status(value)

    @property
    def has_results(self) -> bool:
        return bool(self.eligibility_status and self.eligibility_status.has_results)

    @property
    def is_eligible(self) -> bool:
        return bool(self.eligibility_status and self.eligibility_status.is_eligible)
