"""
Graduation Status Engine

The single authority on graduation process states:
- Which transitions exist, and which role may perform each one
- Guard conditions (eligibility, rejection reasons, whose turn it is)
- Which role must act next for a given state

Pipeline:
AWAITING_TRANSCRIPT_UPLOAD → PENDING_ADVISOR_CHECK → ADVISOR_ELIGIBLE →
SECRETARY_APPROVED_PENDING_DEAN → DEAN_APPROVED → STUDENT_AFFAIRS_APPROVED →
COMPLETED_GRADUATED

Every approval step has a rejection branch that closes the process for
the current cycle. A status of None means "no active process" and allows
no transition until the transcript service starts a new one.

The engine holds no process state of its own; the backend is the source
of truth. Guard failures come back as GuardViolation values, not
exceptions.
"""

import logging
from dataclasses import dataclass

from src.schemas.base import (
    ActorRole,
    GraduationProcessStatus,
    GuardViolationCode,
    TransitionAction,
)
from src.schemas.eligibility import EligibilityVerdict
from src.schemas.process import GuardViolation

logger = logging.getLogger(__name__)

S = GraduationProcessStatus


@dataclass(frozen=True)
class Transition:
    """One legal move of the state machine."""
    source: GraduationProcessStatus
    role: ActorRole
    action: TransitionAction
    target: GraduationProcessStatus
    requires_eligibility: bool = False


# =============================================================================
# TRANSITION TABLE
# =============================================================================

# Permanent markers: nothing may leave these states
PERMANENT_STATES = frozenset({S.COMPLETED_GRADUATED, S.PROCESS_TERMINATED_BY_ADMIN})

# Closed states: no further approvals
TERMINAL_STATES = PERMANENT_STATES | {S.STUDENT_AFFAIRS_REJECTED}
CLOSED_FOR_CYCLE_STATES = frozenset({
    S.ADVISOR_NOT_ELIGIBLE,
    S.SECRETARY_REJECTED,
    S.DEAN_REJECTED,
})

_PIPELINE: tuple[Transition, ...] = (
    # Advisor
    Transition(S.PENDING_ADVISOR_CHECK, ActorRole.ADVISOR, TransitionAction.APPROVE,
               S.ADVISOR_ELIGIBLE, requires_eligibility=True),
    Transition(S.PENDING_ADVISOR_CHECK, ActorRole.ADVISOR, TransitionAction.REJECT,
               S.ADVISOR_NOT_ELIGIBLE),
    # Department secretary
    Transition(S.ADVISOR_ELIGIBLE, ActorRole.SECRETARY, TransitionAction.APPROVE,
               S.SECRETARY_APPROVED_PENDING_DEAN),
    Transition(S.ADVISOR_ELIGIBLE, ActorRole.SECRETARY, TransitionAction.REJECT,
               S.SECRETARY_REJECTED),
    # Dean's office
    Transition(S.SECRETARY_APPROVED_PENDING_DEAN, ActorRole.DEANS_OFFICE, TransitionAction.APPROVE,
               S.DEAN_APPROVED),
    Transition(S.SECRETARY_APPROVED_PENDING_DEAN, ActorRole.DEANS_OFFICE, TransitionAction.REJECT,
               S.DEAN_REJECTED),
    # Student affairs
    Transition(S.DEAN_APPROVED, ActorRole.STUDENT_AFFAIRS, TransitionAction.APPROVE,
               S.STUDENT_AFFAIRS_APPROVED),
    Transition(S.DEAN_APPROVED, ActorRole.STUDENT_AFFAIRS, TransitionAction.REJECT,
               S.STUDENT_AFFAIRS_REJECTED),
    # Completion
    Transition(S.STUDENT_AFFAIRS_APPROVED, ActorRole.SYSTEM, TransitionAction.APPROVE,
               S.COMPLETED_GRADUATED),
)

_TERMINATIONS: tuple[Transition, ...] = tuple(
    Transition(status, ActorRole.ADMIN, TransitionAction.TERMINATE, S.PROCESS_TERMINATED_BY_ADMIN)
    for status in S
    if status not in PERMANENT_STATES
)

TRANSITIONS: dict[tuple[GraduationProcessStatus, ActorRole, TransitionAction], Transition] = {
    (t.source, t.role, t.action): t for t in _PIPELINE + _TERMINATIONS
}

# Role that must act next in each state
ACTION_OWNER: dict[GraduationProcessStatus, ActorRole] = {
    S.AWAITING_TRANSCRIPT_UPLOAD: ActorRole.SECRETARY,
    S.TRANSCRIPT_PARSE_ERROR: ActorRole.SECRETARY,
    S.PENDING_ADVISOR_CHECK: ActorRole.ADVISOR,
    S.ADVISOR_ELIGIBLE: ActorRole.SECRETARY,
    S.SECRETARY_APPROVED_PENDING_DEAN: ActorRole.DEANS_OFFICE,
    S.DEAN_APPROVED: ActorRole.STUDENT_AFFAIRS,
    S.STUDENT_AFFAIRS_APPROVED: ActorRole.SYSTEM,
}

# Shown when someone other than the owner tries to act
_WAITING_ON: dict[GraduationProcessStatus, str] = {
    S.AWAITING_TRANSCRIPT_UPLOAD: "Transcript must be uploaded by the department secretary first",
    S.TRANSCRIPT_PARSE_ERROR: "Transcript must be re-uploaded by the department secretary first",
    S.PENDING_ADVISOR_CHECK: "Student must be approved by advisor first",
    S.ADVISOR_ELIGIBLE: "Student must be approved by department secretary first",
    S.SECRETARY_APPROVED_PENDING_DEAN: "Student must be approved by dean's office first",
    S.DEAN_APPROVED: "Student must be approved by student affairs first",
    S.STUDENT_AFFAIRS_APPROVED: "Graduation is awaiting final completion",
}

STATUS_LABELS: dict[GraduationProcessStatus, str] = {
    S.AWAITING_TRANSCRIPT_UPLOAD: "Awaiting transcript upload",
    S.TRANSCRIPT_PARSE_ERROR: "Transcript parse error, awaiting re-upload",
    S.PENDING_ADVISOR_CHECK: "Pending advisor check",
    S.ADVISOR_ELIGIBLE: "Approved by advisor",
    S.ADVISOR_NOT_ELIGIBLE: "Rejected by advisor",
    S.SECRETARY_APPROVED_PENDING_DEAN: "Approved by department secretary, pending dean's office",
    S.SECRETARY_REJECTED: "Rejected by department secretary",
    S.DEAN_APPROVED: "Approved by dean's office",
    S.DEAN_REJECTED: "Rejected by dean's office",
    S.STUDENT_AFFAIRS_APPROVED: "Approved by student affairs",
    S.STUDENT_AFFAIRS_REJECTED: "Rejected by student affairs",
    S.COMPLETED_GRADUATED: "Graduated",
    S.PROCESS_TERMINATED_BY_ADMIN: "Terminated by administrator",
}

NO_PROCESS_LABEL = "No active graduation process"


@dataclass(frozen=True)
class TransitionDecision:
    """Result of evaluating a proposed transition against the guards."""
    allowed: bool
    transition: Transition | None = None
    violation: GuardViolation | None = None

    @property
    def target(self) -> GraduationProcessStatus | None:
        return self.transition.target if self.transition else None


class GraduationStatusEngine:
    """Guards and bookkeeping for the graduation approval pipeline."""

    # =========================================================================
    # STATE QUERIES
    # =========================================================================

    def describe(self, status: GraduationProcessStatus | None) -> str:
        """Human-readable label for a status."""
        if status is None:
            return NO_PROCESS_LABEL
        return STATUS_LABELS[status]

    def is_terminal(self, status: GraduationProcessStatus | None) -> bool:
        """Final outcome reached; no one acts on this process again."""
        return status in TERMINAL_STATES

    def is_closed(self, status: GraduationProcessStatus | None) -> bool:
        """Terminal, or rejected for the current cycle."""
        return status in TERMINAL_STATES or status in CLOSED_FOR_CYCLE_STATES

    def action_owner(self, status: GraduationProcessStatus | None) -> ActorRole | None:
        """Role that must act next, or None for closed/absent processes."""
        if status is None:
            return None
        return ACTION_OWNER.get(status)

    def requires_attention(self, status: GraduationProcessStatus | None, role: ActorRole) -> bool:
        """Whether a process in `status` is waiting on `role`."""
        return self.action_owner(status) == role

    # =========================================================================
    # GUARDS
    # =========================================================================

    def evaluate(
        self,
        status: GraduationProcessStatus | None,
        role: ActorRole,
        action: TransitionAction,
        verdict: EligibilityVerdict | None = None,
        reason: str | None = None,
    ) -> TransitionDecision:
        """
        Check whether `role` may perform `action` on a process in `status`.

        Guards, in order:
        1. Rejections need a non-blank reason
        2. There must be an active process
        3. The (status, role, action) transition must exist
        4. Eligibility-gated transitions need an eligible verdict
        """
        if action == TransitionAction.REJECT and not (reason and reason.strip()):
            return self._refuse(
                GuardViolationCode.MISSING_REJECTION_REASON,
                "A rejection reason is required",
                status, role,
            )

        if status is None:
            return self._refuse(GuardViolationCode.NO_ACTIVE_PROCESS, NO_PROCESS_LABEL, status, role)

        transition = TRANSITIONS.get((status, role, action))
        if transition is None:
            return self._refuse_missing_transition(status, role, action)

        if transition.requires_eligibility and not (verdict and verdict.is_eligible):
            if verdict is None or not verdict.has_results:
                message = "Student has no eligibility check results yet"
            else:
                message = "Student does not meet all graduation requirements"
            return self._refuse(GuardViolationCode.STUDENT_NOT_ELIGIBLE, message, status, role)

        return TransitionDecision(allowed=True, transition=transition)

    def requires_eligibility(
        self,
        status: GraduationProcessStatus | None,
        role: ActorRole,
        action: TransitionAction,
    ) -> bool:
        """Whether evaluating this move needs the student's eligibility verdict."""
        if status is None:
            return False
        transition = TRANSITIONS.get((status, role, action))
        return bool(transition and transition.requires_eligibility)

    def can_approve(
        self,
        status: GraduationProcessStatus | None,
        role: ActorRole,
        verdict: EligibilityVerdict | None = None,
    ) -> bool:
        return self.evaluate(status, role, TransitionAction.APPROVE, verdict=verdict).allowed

    def can_reject(self, status: GraduationProcessStatus | None, role: ActorRole) -> bool:
        """Whether a rejection would be accepted once a reason is given."""
        if status is None:
            return False
        return (status, role, TransitionAction.REJECT) in TRANSITIONS

    def available_actions(
        self,
        status: GraduationProcessStatus | None,
        role: ActorRole,
        verdict: EligibilityVerdict | None = None,
    ) -> list[TransitionAction]:
        """Actions `role` can be offered for a process in `status`."""
        actions = []
        if self.can_approve(status, role, verdict):
            actions.append(TransitionAction.APPROVE)
        if self.can_reject(status, role):
            actions.append(TransitionAction.REJECT)
        if status is not None and (status, role, TransitionAction.TERMINATE) in TRANSITIONS:
            actions.append(TransitionAction.TERMINATE)
        return actions

    def affected_roles(self, transition: Transition) -> list[ActorRole]:
        """Roles whose rosters show a change after `transition`: the actor and the next owner."""
        roles = [transition.role]
        next_owner = ACTION_OWNER.get(transition.target)
        if next_owner is not None and next_owner not in roles:
            roles.append(next_owner)
        return roles

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _refuse_missing_transition(
        self,
        status: GraduationProcessStatus,
        role: ActorRole,
        action: TransitionAction,
    ) -> TransitionDecision:
        if self.is_closed(status):
            return self._refuse(
                GuardViolationCode.PROCESS_CLOSED,
                f"Graduation process is closed: {STATUS_LABELS[status]}",
                status, role,
            )

        owner = ACTION_OWNER.get(status)
        if owner is not None and owner != role:
            return self._refuse(GuardViolationCode.NOT_ACTORS_TURN, _WAITING_ON[status], status, role)

        return self._refuse(
            GuardViolationCode.INVALID_TRANSITION,
            f"Cannot {action.value} a process that is '{STATUS_LABELS[status]}'",
            status, role,
        )

    def _refuse(
        self,
        code: GuardViolationCode,
        message: str,
        status: GraduationProcessStatus | None,
        role: ActorRole,
    ) -> TransitionDecision:
        logger.info("Transition refused (%s) for %s: %s", code.value, role.value, message)
        return TransitionDecision(
            allowed=False,
            violation=GuardViolation(code=code, reason=message, status=status, role=role),
        )
