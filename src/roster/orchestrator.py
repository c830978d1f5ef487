"""
Student Roster Orchestrator

Composes the cache, the rate limited executor, the eligibility aggregator
and the status engine into the operations the portal UI calls:

get_roster:
    cache hit → return
    miss → fetch students + processes → fetch missing verdicts in waves →
    aggregate → merge → cache → sort

approve/reject:
    load status (+ verdict) → guard with the status engine → call the
    role's transition endpoint → invalidate affected scopes

Verdicts are cached inside the scope namespace, so dropping a scope drops
its students' verdicts with its roster. Cache writes are tagged with a
per-scope version. A refresh that started before an invalidation of its
scope still answers its caller but does not write its (possibly stale)
result back.
"""

import asyncio
import functools
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Iterable

from pydantic import TypeAdapter, ValidationError

from src.cache.ttl_cache import TTLCache
from src.clients.interfaces import (
    EligibilityCheckService,
    ProcessTransitionService,
    StudentRegistry,
)
from src.eligibility.aggregator import EligibilityAggregator
from src.schemas.base import ActorRole, RosterScope, ScopeType, TransitionAction
from src.schemas.eligibility import EligibilityTriggerResult, EligibilityVerdict
from src.schemas.process import (
    GraduationProcess,
    TransitionResult,
    select_active_processes,
)
from src.schemas.student import Student, StudentRecord
from src.utils.errors import AuthError
from src.utils.rate_limit import (
    BatchItemResult,
    RateLimitConfig,
    RateLimitedBatchExecutor,
    execute_with_retry,
)
from src.workflow.status_engine import GraduationStatusEngine, Transition, TransitionDecision

logger = logging.getLogger(__name__)

# Roster scope each role works in
ROLE_SCOPE_TYPES: dict[ActorRole, ScopeType] = {
    ActorRole.ADVISOR: ScopeType.DEPARTMENT,
    ActorRole.SECRETARY: ScopeType.DEPARTMENT,
    ActorRole.DEANS_OFFICE: ScopeType.FACULTY,
    ActorRole.STUDENT_AFFAIRS: ScopeType.UNIVERSITY,
}

_ROSTER_ADAPTER = TypeAdapter(list[Student])

# Eligibility sort rank: eligible, ineligible, unknown
_ELIGIBLE, _INELIGIBLE, _UNKNOWN = 0, 1, 2


def roster_key(scope: RosterScope) -> str:
    return f"{scope.namespace}:roster"


def eligibility_key(scope: RosterScope, student_id: str) -> str:
    return f"{scope.namespace}:eligibility:{student_id}"


@dataclass(frozen=True)
class _TransitionContext:
    """What the guards need to know about one student."""
    student_id: str
    record: StudentRecord
    process: GraduationProcess | None
    verdict: EligibilityVerdict | None

    @property
    def status(self):
        return self.process.status if self.process else None


class StudentRosterOrchestrator:
    """
    Roster reads and approval actions for one viewing role.

    The role decides which students sort first (those waiting on this
    role) and which transition endpoints approve/reject calls use.
    """

    def __init__(
        self,
        registry: StudentRegistry,
        eligibility_service: EligibilityCheckService,
        transitions: ProcessTransitionService,
        cache: TTLCache,
        role: ActorRole,
        engine: GraduationStatusEngine | None = None,
        aggregator: EligibilityAggregator | None = None,
        eligibility_executor: RateLimitedBatchExecutor | None = None,
        lookup_executor: RateLimitedBatchExecutor | None = None,
        trigger_retry: RateLimitConfig | None = None,
    ) -> None:
        self.role = role
        self._registry = registry
        self._eligibility = eligibility_service
        self._transitions = transitions
        self._cache = cache
        self._engine = engine or GraduationStatusEngine()
        self._aggregator = aggregator or EligibilityAggregator()
        self._eligibility_executor = eligibility_executor or RateLimitedBatchExecutor(
            RateLimitConfig.from_settings("eligibility")
        )
        self._lookup_executor = lookup_executor or RateLimitedBatchExecutor(
            RateLimitConfig.from_settings("transitions")
        )
        self._trigger_retry = trigger_retry or RateLimitConfig.from_settings("default")
        self._scope_versions: dict[str, int] = defaultdict(int)

    # =========================================================================
    # ROSTER
    # =========================================================================

    async def get_roster(self, scope: RosterScope, force_refresh: bool = False) -> list[Student]:
        """
        Students in `scope` with eligibility and process status, sorted:
        waiting on this role first, then eligible → ineligible → unknown,
        then GPA descending.
        """
        if not force_refresh:
            cached = self._read_roster(scope)
            if cached is not None:
                logger.debug("Serving roster for %s from cache (%d students)", scope, len(cached))
                return self._sort(cached)

        version = self._scope_versions[scope.namespace]
        logger.info("Refreshing roster for %s", scope)

        records, processes = await asyncio.gather(
            self._registry.fetch_roster(scope),
            self._transitions.fetch_processes(scope),
        )
        active = select_active_processes(processes)

        verdicts: dict[str, EligibilityVerdict] = {}
        missing: list[StudentRecord] = []
        for record in records:
            verdict = self._read_verdict(scope, record.id)
            if verdict is None:
                missing.append(record)
            else:
                verdicts[record.id] = verdict

        outcomes = await self._eligibility_executor.run(missing, self._fetch_verdict)
        fresh, failed = self._collect_verdicts(outcomes)
        verdicts.update(fresh)

        students = [
            self._merge(record, verdicts.get(record.id), active.get(record.id), record.id in failed)
            for record in records
        ]

        if self._scope_versions[scope.namespace] != version:
            logger.warning("Roster for %s was invalidated during refresh; not caching result", scope)
        else:
            for student_id, verdict in fresh.items():
                self._cache.set(eligibility_key(scope, student_id), verdict.model_dump(mode="json"))
            if failed:
                logger.warning(
                    "Not caching roster for %s: eligibility unavailable for %d students",
                    scope, len(failed),
                )
            else:
                self._cache.set(roster_key(scope), [student.model_dump(mode="json") for student in students])

        logger.info(
            "Roster for %s: %d students (%d verdicts fetched, %d failed)",
            scope, len(students), len(fresh), len(failed),
        )
        return self._sort(students)

    def available_actions(self, student: Student) -> list[TransitionAction]:
        """Transitions this role can offer for a roster entry."""
        return self._engine.available_actions(
            student.active_graduation_process_status, self.role, student.eligibility_status
        )

    def invalidate(self, scope: RosterScope) -> None:
        """Drop everything cached for `scope`: its roster and its students' verdicts."""
        removed = self._cache.invalidate_by_prefix(f"{scope.namespace}:")
        self._scope_versions[scope.namespace] += 1
        logger.info("Invalidated %s (%d entries)", scope, removed)

    # =========================================================================
    # ELIGIBILITY RECOMPUTATION
    # =========================================================================

    async def perform_eligibility_checks_for_missing(self, scope: RosterScope) -> EligibilityTriggerResult:
        """Ask the backend to compute checks for students in `scope` that have none."""
        roster = await self.get_roster(scope)
        unavailable = [student.id for student in roster if student.eligibility_error]
        if unavailable:
            logger.info(
                "Skipping %d students in %s whose results could not be read", len(unavailable), scope
            )
        missing = [student for student in roster if not student.has_results and not student.eligibility_error]
        if not missing:
            logger.info("All readable students in %s already have eligibility results", scope)
            return EligibilityTriggerResult(success=True)

        processed = await self._trigger_checks(scope, missing)
        return EligibilityTriggerResult(
            success=True,
            processed_students=processed,
            students_without_results=[student.id for student in missing],
        )

    async def perform_eligibility_checks_for_all(self, scope: RosterScope) -> EligibilityTriggerResult:
        """Ask the backend to recompute checks for every student in `scope`."""
        roster = await self.get_roster(scope)
        if not roster:
            return EligibilityTriggerResult(success=True)

        processed = await self._trigger_checks(scope, roster)
        return EligibilityTriggerResult(
            success=True,
            processed_students=processed,
            students_without_results=[student.id for student in roster if not student.has_results],
        )

    async def _trigger_checks(self, scope: RosterScope, students: list[Student]) -> list[str]:
        student_ids = [student.id for student in students]
        processed = await execute_with_retry(
            lambda: self._eligibility.trigger_checks(student_ids),
            max_retries=self._trigger_retry.max_retries,
            retry_delay=self._trigger_retry.retry_delay,
        )
        # Recomputation is asynchronous on the backend; the next read refetches
        self._forget_verdicts(students, extra_scope=scope)
        logger.info("Eligibility checks requested for %d students in %s", len(processed), scope)
        return processed

    def _forget_verdicts(self, records: list[StudentRecord], extra_scope: RosterScope | None = None) -> None:
        """Drop the verdicts of `records` from every scope that can hold them."""
        scopes: dict[str, RosterScope] = {}
        if extra_scope is not None:
            scopes[extra_scope.namespace] = extra_scope
        for record in records:
            for scope in _scopes_of(record):
                scopes[scope.namespace] = scope
        for scope in scopes.values():
            for record in records:
                self._cache.invalidate(eligibility_key(scope, record.id))
            self._cache.invalidate(roster_key(scope))
            self._scope_versions[scope.namespace] += 1

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    async def approve_student(self, student_id: str, actor_id: str) -> TransitionResult:
        return (await self.approve_students([student_id], actor_id))[0]

    async def reject_student(self, student_id: str, actor_id: str, reason: str) -> TransitionResult:
        return (await self.reject_students([student_id], actor_id, reason))[0]

    async def approve_students(self, student_ids: Iterable[str], actor_id: str) -> list[TransitionResult]:
        return await self._transition(list(student_ids), actor_id, TransitionAction.APPROVE)

    async def reject_students(
        self,
        student_ids: Iterable[str],
        actor_id: str,
        reason: str,
    ) -> list[TransitionResult]:
        return await self._transition(list(student_ids), actor_id, TransitionAction.REJECT, reason)

    async def _transition(
        self,
        student_ids: list[str],
        actor_id: str,
        action: TransitionAction,
        reason: str | None = None,
    ) -> list[TransitionResult]:
        """
        Guard each student, send the passing subset in one backend call and
        invalidate the scopes of every student that moved.

        Transport and auth failures propagate; guard failures are results.
        """
        student_ids = list(dict.fromkeys(str(student_id) for student_id in student_ids))
        if not student_ids:
            return []

        if action == TransitionAction.REJECT and not (reason and reason.strip()):
            violation = self._engine.evaluate(None, self.role, action, reason=reason).violation
            return [TransitionResult.refused(student_id, violation) for student_id in student_ids]

        lookups = await self._lookup_executor.run(
            student_ids, functools.partial(self._load_transition_context, action)
        )
        failed_lookup = next((outcome for outcome in lookups if not outcome.success), None)
        if failed_lookup is not None:
            raise failed_lookup.error

        results: dict[str, TransitionResult] = {}
        accepted: list[tuple[_TransitionContext, TransitionDecision]] = []
        for outcome in lookups:
            context = outcome.result
            decision = self._engine.evaluate(context.status, self.role, action, verdict=context.verdict, reason=reason)
            if decision.allowed:
                accepted.append((context, decision))
            else:
                results[context.student_id] = TransitionResult.refused(context.student_id, decision.violation)

        if accepted:
            accepted_ids = [context.student_id for context, _ in accepted]
            if action == TransitionAction.APPROVE:
                response = await self._transitions.approve(self.role, accepted_ids, actor_id)
            else:
                response = await self._transitions.reject(self.role, accepted_ids, actor_id, reason.strip())

            for context, decision in accepted:
                summary = response.summary_for(context.student_id)
                success = summary.success if summary is not None else response.success
                if success:
                    self._invalidate_after_transition(context, decision.transition)
                    new_status = (summary and summary.new_graduation_process_status) or decision.target
                else:
                    new_status = context.status
                results[context.student_id] = TransitionResult(
                    student_id=context.student_id,
                    success=success,
                    reason=None if success else (summary and summary.message) or response.overall_message,
                    previous_status=context.status,
                    new_status=new_status,
                )

        succeeded = sum(1 for result in results.values() if result.success)
        logger.info(
            "%s %s: %d of %d students moved",
            self.role.value, action.value, succeeded, len(student_ids),
        )
        return [results[student_id] for student_id in student_ids]

    async def _load_transition_context(self, action: TransitionAction, student_id: str) -> _TransitionContext:
        record, process = await asyncio.gather(
            self._registry.fetch_student(student_id),
            self._transitions.fetch_process(student_id),
        )
        status = process.status if process else None
        verdict = None
        if self._engine.requires_eligibility(status, self.role, action):
            verdict = await self._get_verdict(record)
        return _TransitionContext(student_id=student_id, record=record, process=process, verdict=verdict)

    def _invalidate_after_transition(self, context: _TransitionContext, transition: Transition) -> None:
        for scope in self._affected_scopes(context.record, transition):
            self._cache.invalidate_by_prefix(f"{scope.namespace}:")
            self._scope_versions[scope.namespace] += 1
            logger.debug("Invalidated %s after %s of %s", scope, transition.action.value, context.student_id)

    def _affected_scopes(self, record: StudentRecord, transition: Transition) -> list[RosterScope]:
        scopes: dict[str, RosterScope] = {}
        for role in self._engine.affected_roles(transition):
            scope = _scope_of(record, ROLE_SCOPE_TYPES.get(role))
            if scope is not None:
                scopes[scope.namespace] = scope
        return list(scopes.values())

    # =========================================================================
    # ELIGIBILITY VERDICTS
    # =========================================================================

    async def _fetch_verdict(self, record: StudentRecord) -> EligibilityVerdict:
        checks = await self._eligibility.fetch_checks(record.id)
        return self._aggregator.aggregate(checks, student_id=record.id)

    async def _get_verdict(self, record: StudentRecord) -> EligibilityVerdict:
        """Verdict from this role's scope cache, fetched when absent."""
        scope = _scope_of(record, ROLE_SCOPE_TYPES.get(self.role))
        if scope is None:
            return await self._fetch_verdict(record)

        verdict = self._read_verdict(scope, record.id)
        if verdict is not None:
            return verdict

        version = self._scope_versions[scope.namespace]
        verdict = await self._fetch_verdict(record)
        if self._scope_versions[scope.namespace] == version:
            self._cache.set(eligibility_key(scope, record.id), verdict.model_dump(mode="json"))
        return verdict

    def _collect_verdicts(
        self,
        outcomes: list[BatchItemResult[StudentRecord, EligibilityVerdict]],
    ) -> tuple[dict[str, EligibilityVerdict], set[str]]:
        fresh: dict[str, EligibilityVerdict] = {}
        failed: set[str] = set()
        for outcome in outcomes:
            if outcome.success:
                fresh[outcome.item.id] = outcome.result
                continue
            if isinstance(outcome.error, AuthError):
                raise outcome.error
            logger.warning(
                "Eligibility unavailable for student %s: %s", outcome.item.id, outcome.error
            )
            failed.add(outcome.item.id)
        return fresh, failed

    # =========================================================================
    # CACHE READS
    # =========================================================================

    def _read_roster(self, scope: RosterScope) -> list[Student] | None:
        return self._read_cached(roster_key(scope), _ROSTER_ADAPTER)

    def _read_verdict(self, scope: RosterScope, student_id: str) -> EligibilityVerdict | None:
        return self._read_cached(eligibility_key(scope, student_id), EligibilityVerdict)

    def _read_cached(self, key: str, schema: Any) -> Any | None:
        raw = self._cache.get(key)
        if raw is None:
            return None
        try:
            if isinstance(schema, TypeAdapter):
                return schema.validate_python(raw)
            return schema.model_validate(raw)
        except ValidationError as e:
            logger.warning(f"Discarding cached {key}: {e.error_count()} validation error(s)")
            self._cache.invalidate(key)
            return None

    # =========================================================================
    # MERGE & SORT
    # =========================================================================

    def _merge(
        self,
        record: StudentRecord,
        verdict: EligibilityVerdict | None,
        process: GraduationProcess | None,
        eligibility_error: bool,
    ) -> Student:
        return Student(
            **record.model_dump(),
            eligibility_status=verdict or EligibilityVerdict.unknown(record.id),
            active_graduation_process_status=process.status if process else None,
            eligibility_error=eligibility_error,
        )

    def _sort(self, students: list[Student]) -> list[Student]:
        return sorted(students, key=self._sort_key)

    def _sort_key(self, student: Student) -> tuple[int, int, float]:
        attention = 0 if self._engine.requires_attention(student.active_graduation_process_status, self.role) else 1
        if not student.has_results:
            eligibility = _UNKNOWN
        elif student.is_eligible:
            eligibility = _ELIGIBLE
        else:
            eligibility = _INELIGIBLE
        gpa = -student.gpa if student.gpa is not None else float("inf")
        return attention, eligibility, gpa


def _scope_of(record: StudentRecord, scope_type: ScopeType | None) -> RosterScope | None:
    if scope_type == ScopeType.DEPARTMENT and record.department_id:
        return RosterScope.department(record.department_id)
    if scope_type == ScopeType.FACULTY and record.faculty_id:
        return RosterScope.faculty(record.faculty_id)
    if scope_type == ScopeType.UNIVERSITY:
        return RosterScope.university()
    return None


def _scopes_of(record: StudentRecord) -> list[RosterScope]:
    """Every roster scope `record` appears in."""
    scopes = (_scope_of(record, scope_type) for scope_type in ScopeType)
    return [scope for scope in scopes if scope is not None]
