"""
Collaborator Interfaces

What the workflow core needs from the outside world. GradSysClient
implements all three against the REST backend; tests use in-memory fakes.
"""

from typing import Protocol

from src.schemas.base import ActorRole, RosterScope
from src.schemas.eligibility import RequirementCheck
from src.schemas.process import GraduationProcess, TransitionResponse
from src.schemas.student import StudentRecord


class StudentRegistry(Protocol):
    """Identity and academic records."""

    async def fetch_roster(self, scope: RosterScope) -> list[StudentRecord]:
        """Every student in scope (all pages)."""
        ...

    async def fetch_student(self, student_id: str) -> StudentRecord: ...


class EligibilityCheckService(Protocol):
    """Requirement checks computed by the grading service."""

    async def fetch_checks(self, student_id: str) -> list[RequirementCheck]: ...

    async def trigger_checks(self, student_ids: list[str]) -> list[str]:
        """Ask the backend to recompute checks. Returns the processed ids."""
        ...


class ProcessTransitionService(Protocol):
    """Graduation process reads and role-scoped transitions."""

    async def fetch_processes(self, scope: RosterScope) -> list[GraduationProcess]: ...

    async def fetch_process(self, student_id: str) -> GraduationProcess | None:
        """The student's active process, or None."""
        ...

    async def approve(
        self,
        role: ActorRole,
        student_ids: list[str],
        actor_id: str,
    ) -> TransitionResponse: ...

    async def reject(
        self,
        role: ActorRole,
        student_ids: list[str],
        actor_id: str,
        reason: str,
    ) -> TransitionResponse: ...
