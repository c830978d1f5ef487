"""
Graduation Process Schemas

A GraduationProcess tracks one student's progress through the
advisor → secretary → dean → student affairs pipeline. The authoritative
copy lives in the backend; this layer only reads it and proposes
transitions.
"""

import logging
from datetime import datetime, timezone
from typing import Iterable

from pydantic import AliasChoices, ConfigDict, Field, field_validator

from src.schemas.base import (
    ActorRole,
    GraduationProcessStatus,
    GuardViolationCode,
    NonEmptyStr,
    PortalModel,
    ensure_utc,
)

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def parse_status(value) -> GraduationProcessStatus | None:
    """
    Parse a backend status code.

    Null and unrecognised codes both mean "no active process".
    """
    if value is None or isinstance(value, GraduationProcessStatus):
        return value
    if isinstance(value, str):
        if value.strip().isdigit():
            value = int(value)
        elif value in GraduationProcessStatus.__members__:
            return GraduationProcessStatus[value]
    try:
        return GraduationProcessStatus(value)
    except (ValueError, TypeError):
        logger.warning("Unknown graduation process status %r; treating as no active process", value)
        return None


class GraduationProcess(PortalModel):
    """One student's graduation process for one academic term."""
    model_config = ConfigDict(frozen=True)

    id: str
    student_id: str = Field(validation_alias=AliasChoices("student_id", "studentId", "studentUserId"))
    academic_term: str | None = None
    status: GraduationProcessStatus | None = None
    initiation_date: datetime | None = None
    last_update_date: datetime | None = None

    @field_validator("id", "student_id", mode="before")
    @classmethod
    def _coerce_identifier(cls, value):
        return None if value is None else str(value)

    @field_validator("status", mode="before")
    @classmethod
    def _parse_status(cls, value):
        return parse_status(value)

    @field_validator("initiation_date", "last_update_date")
    @classmethod
    def _utc(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value)

    @property
    def recency(self) -> datetime:
        return self.last_update_date or self.initiation_date or _EPOCH


def select_active_processes(processes: Iterable[GraduationProcess]) -> dict[str, GraduationProcess]:
    """Most recently updated process per student (later arrivals win ties)."""
    active: dict[str, GraduationProcess] = {}
    for process in processes:
        current = active.get(process.student_id)
        if current is None or process.recency >= current.recency:
            active[process.student_id] = process
    return active


# =============================================================================
# TRANSITION RESULTS
# =============================================================================

class GuardViolation(PortalModel):
    """A transition refused by the status engine. Returned, never raised."""
    code: GuardViolationCode
    reason: NonEmptyStr = Field(description="User-facing explanation")
    status: GraduationProcessStatus | None = None
    role: ActorRole | None = None


class TransitionResult(PortalModel):
    """Outcome of one approve/reject request for one student."""
    student_id: str
    success: bool
    reason: str | None = None
    violation: GuardViolation | None = None
    previous_status: GraduationProcessStatus | None = None
    new_status: GraduationProcessStatus | None = None

    @classmethod
    def refused(cls, student_id: str, violation: GuardViolation) -> "TransitionResult":
        return cls(
            student_id=student_id,
            success=False,
            reason=violation.reason,
            violation=violation,
            previous_status=violation.status,
        )


class ProcessSummary(PortalModel):
    """Backend report for one student of a bulk transition."""
    student_user_id: str
    success: bool
    message: str | None = None
    graduation_process_id: str | None = None
    new_graduation_process_status: GraduationProcessStatus | None = None

    @field_validator("student_user_id", "graduation_process_id", mode="before")
    @classmethod
    def _coerce_identifier(cls, value):
        return None if value is None else str(value)

    @field_validator("new_graduation_process_status", mode="before")
    @classmethod
    def _parse_status(cls, value):
        return parse_status(value)


class TransitionResponse(PortalModel):
    """Backend response to a bulk approve/reject call."""
    total_students_in_request: int = 0
    successfully_processed_count: int = 0
    failed_to_process_count: int = 0
    process_summaries: list[ProcessSummary] = Field(default_factory=list)
    overall_message: str | None = None

    @classmethod
    def accepted(cls, student_ids: list[str]) -> "TransitionResponse":
        """Response for an empty success body: every student went through."""
        return cls(
            total_students_in_request=len(student_ids),
            successfully_processed_count=len(student_ids),
            process_summaries=[
                ProcessSummary(student_user_id=student_id, success=True)
                for student_id in student_ids
            ],
        )

    @property
    def success(self) -> bool:
        return self.failed_to_process_count == 0 and all(
            summary.success for summary in self.process_summaries
        )

    def summary_for(self, student_id: str) -> ProcessSummary | None:
        for summary in self.process_summaries:
            if summary.student_user_id == student_id:
                return summary
        return None
