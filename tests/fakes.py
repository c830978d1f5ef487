"""
Test Doubles and Factories

In-memory stand-ins for the GradSys collaborators plus factories for
checks, records and processes. Everything is deterministic:
- ManualClock drives cache expiry
- RecordingSleep replaces asyncio.sleep in executors (no real waiting)
"""

from datetime import datetime, timedelta, timezone
from typing import Callable

from src.schemas.base import (
    ActorRole,
    CheckType,
    GraduationProcessStatus,
    RosterScope,
    ScopeType,
    TransitionAction,
)
from src.schemas.eligibility import RequirementCheck
from src.schemas.process import GraduationProcess, TransitionResponse, select_active_processes
from src.schemas.student import StudentRecord
from src.utils.errors import ServiceError
from src.workflow.status_engine import TRANSITIONS

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)

CS = RosterScope.department("cs")
ENGINEERING = RosterScope.faculty("eng")


# =============================================================================
# FACTORIES
# =============================================================================

def make_check(
    student_id: str,
    check_type: int = CheckType.GPA,
    is_met: bool = True,
    days_ago: float = 0,
    check_id: str | None = None,
) -> RequirementCheck:
    return RequirementCheck(
        id=check_id or f"{student_id}-{int(check_type)}-{days_ago}",
        student_id=student_id,
        check_type=int(check_type),
        is_met=is_met,
        check_date=NOW - timedelta(days=days_ago),
    )


def passing_checks(student_id: str) -> list[RequirementCheck]:
    """One met check for every requirement."""
    return [make_check(student_id, check_type) for check_type in CheckType]


def make_record(
    student_id: str,
    gpa: float | None = 3.0,
    department_id: str = "cs",
    faculty_id: str = "eng",
) -> StudentRecord:
    return StudentRecord(
        id=student_id,
        student_number=f"2020{student_id}",
        first_name="Student",
        last_name=student_id.upper(),
        department_id=department_id,
        faculty_id=faculty_id,
        gpa=gpa,
    )


def make_process(
    student_id: str,
    status: GraduationProcessStatus | None,
    days_ago: float = 0,
    process_id: str | None = None,
) -> GraduationProcess:
    return GraduationProcess(
        id=process_id or f"gp-{student_id}-{days_ago}",
        student_id=student_id,
        status=status,
        last_update_date=NOW - timedelta(days=days_ago),
    )


# =============================================================================
# FAKE COLLABORATORS
# =============================================================================

class FakeRegistry:
    """Student registry backed by a dict."""

    def __init__(self, records: list[StudentRecord]) -> None:
        self.records = {record.id: record for record in records}
        self.roster_calls = 0

    async def fetch_roster(self, scope: RosterScope) -> list[StudentRecord]:
        self.roster_calls += 1
        return [record for record in self.records.values() if _in_scope(record, scope)]

    async def fetch_student(self, student_id: str) -> StudentRecord:
        try:
            return self.records[student_id]
        except KeyError:
            raise ServiceError(f"Student {student_id} not found", status_code=404) from None


class FakeEligibilityService:
    """Eligibility service with per-student queued failures."""

    def __init__(self, checks: dict[str, list[RequirementCheck]] | None = None) -> None:
        self.checks = checks or {}
        self.failures: dict[str, list[BaseException]] = {}
        self.trigger_failures: list[BaseException] = []
        self.fetch_calls: list[str] = []
        self.triggered: list[list[str]] = []
        self.on_fetch: Callable[[str], None] | None = None

    def fail(self, student_id: str, error: BaseException, times: int = 1) -> None:
        self.failures.setdefault(student_id, []).extend([error] * times)

    async def fetch_checks(self, student_id: str) -> list[RequirementCheck]:
        self.fetch_calls.append(student_id)
        if self.on_fetch is not None:
            self.on_fetch(student_id)
        queued = self.failures.get(student_id)
        if queued:
            raise queued.pop(0)
        return list(self.checks.get(student_id, []))

    async def trigger_checks(self, student_ids: list[str]) -> list[str]:
        if self.trigger_failures:
            raise self.trigger_failures.pop(0)
        self.triggered.append(list(student_ids))
        return list(student_ids)


class FakeTransitionService:
    """Process backend that applies accepted transitions to its own records."""

    def __init__(self, processes: list[GraduationProcess] | None = None) -> None:
        self.processes = list(processes or [])
        self.calls: list[dict] = []
        self.response: TransitionResponse | None = None

    async def fetch_processes(self, scope: RosterScope) -> list[GraduationProcess]:
        return list(self.processes)

    async def fetch_process(self, student_id: str) -> GraduationProcess | None:
        return select_active_processes(self.processes).get(student_id)

    async def approve(self, role: ActorRole, student_ids: list[str], actor_id: str) -> TransitionResponse:
        self.calls.append({"action": "approve", "role": role, "student_ids": list(student_ids), "actor_id": actor_id})
        return self._apply(role, TransitionAction.APPROVE, student_ids)

    async def reject(
        self,
        role: ActorRole,
        student_ids: list[str],
        actor_id: str,
        reason: str,
    ) -> TransitionResponse:
        self.calls.append({
            "action": "reject", "role": role, "student_ids": list(student_ids),
            "actor_id": actor_id, "reason": reason,
        })
        return self._apply(role, TransitionAction.REJECT, student_ids)

    def _apply(self, role: ActorRole, action: TransitionAction, student_ids: list[str]) -> TransitionResponse:
        if self.response is not None:
            return self.response
        active = select_active_processes(self.processes)
        for student_id in student_ids:
            process = active[student_id]
            target = TRANSITIONS[(process.status, role, action)].target
            self.processes.append(process.model_copy(update={
                "status": target,
                "last_update_date": process.recency + timedelta(minutes=1),
            }))
        return TransitionResponse.accepted(list(student_ids))


def _in_scope(record: StudentRecord, scope: RosterScope) -> bool:
    if scope.scope_type == ScopeType.DEPARTMENT:
        return record.department_id == scope.scope_id
    if scope.scope_type == ScopeType.FACULTY:
        return record.faculty_id == scope.scope_id
    return True


# =============================================================================
# CLOCK / SLEEP
# =============================================================================

class ManualClock:
    """Monotonic test clock in seconds."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)
