"""
Base types and constants used across all schemas.

This module defines the shared enums, the common model base and the
roster scope that keep the workflow, cache and orchestrator layers
speaking the same language as the GradSys backend.
"""

from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# =============================================================================
# MODEL BASE
# =============================================================================

class PortalModel(BaseModel):
    """
    Base for every data contract.

    Backend payloads are camelCase; cached payloads are dumped with field
    names. Both must validate.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive timestamps as UTC so check dates always compare."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


# =============================================================================
# ENUMS
# =============================================================================

class CheckType(IntEnum):
    """Graduation requirement evaluated by the grading service (backend codes)."""
    GPA = 1
    TOTAL_CREDITS = 2  # ECTS on the backend
    MANDATORY_COURSES = 3
    TECHNICAL_ELECTIVES = 4
    NON_TECHNICAL_ELECTIVES = 5
    UNIVERSITY_ELECTIVES = 6
    FAILED_COURSE_LIMIT = 7


class GraduationProcessStatus(IntEnum):
    """
    State of a graduation process.

    Values are the backend's integer codes. The gaps are states the
    backend reserves and never reports to this layer.
    """
    AWAITING_TRANSCRIPT_UPLOAD = 1
    PENDING_ADVISOR_CHECK = 3
    TRANSCRIPT_PARSE_ERROR = 4
    ADVISOR_ELIGIBLE = 5
    ADVISOR_NOT_ELIGIBLE = 6
    SECRETARY_APPROVED_PENDING_DEAN = 8
    SECRETARY_REJECTED = 9
    DEAN_APPROVED = 11
    DEAN_REJECTED = 12
    STUDENT_AFFAIRS_APPROVED = 14
    STUDENT_AFFAIRS_REJECTED = 15
    COMPLETED_GRADUATED = 18
    PROCESS_TERMINATED_BY_ADMIN = 19


class ActorRole(str, Enum):
    """Who is acting on a graduation process."""
    ADVISOR = "advisor"
    SECRETARY = "secretary"
    DEANS_OFFICE = "deans_office"
    STUDENT_AFFAIRS = "student_affairs"
    SYSTEM = "system"
    ADMIN = "admin"


class TransitionAction(str, Enum):
    """Named transition operations."""
    APPROVE = "approve"
    REJECT = "reject"
    TERMINATE = "terminate"


class ScopeType(str, Enum):
    """Roster selection boundary."""
    DEPARTMENT = "department"
    FACULTY = "faculty"
    UNIVERSITY = "university"


class GuardViolationCode(str, Enum):
    """Why a transition was refused before reaching the backend."""
    NO_ACTIVE_PROCESS = "no_active_process"
    PROCESS_CLOSED = "process_closed"
    NOT_ACTORS_TURN = "not_actors_turn"
    INVALID_TRANSITION = "invalid_transition"
    STUDENT_NOT_ELIGIBLE = "student_not_eligible"
    MISSING_REJECTION_REASON = "missing_rejection_reason"


# =============================================================================
# SCOPE
# =============================================================================

class RosterScope(PortalModel):
    """A department, a faculty or the whole university."""
    model_config = ConfigDict(frozen=True)

    scope_type: ScopeType
    scope_id: str = Field(min_length=1)

    @classmethod
    def department(cls, department_id: str) -> "RosterScope":
        return cls(scope_type=ScopeType.DEPARTMENT, scope_id=str(department_id))

    @classmethod
    def faculty(cls, faculty_id: str) -> "RosterScope":
        return cls(scope_type=ScopeType.FACULTY, scope_id=str(faculty_id))

    @classmethod
    def university(cls) -> "RosterScope":
        return cls(scope_type=ScopeType.UNIVERSITY, scope_id="all")

    @property
    def namespace(self) -> str:
        """Cache namespace: ``{scope-type}:{scope-id}``."""
        return f"{self.scope_type.value}:{self.scope_id}"

    def __str__(self) -> str:
        return self.namespace


# =============================================================================
# ANNOTATED TYPES
# =============================================================================

# Non-empty string
NonEmptyStr = Annotated[str, Field(min_length=1)]
