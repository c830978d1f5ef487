"""
Graduation Portal Schemas Package

Pydantic data contracts shared by the workflow engine, the cache, the
orchestrator and the GradSys backend client.
"""

from src.schemas.base import (
    ActorRole,
    CheckType,
    GraduationProcessStatus,
    GuardViolationCode,
    RosterScope,
    ScopeType,
    TransitionAction,
)
from src.schemas.eligibility import (
    EligibilityTriggerResult,
    EligibilityVerdict,
    RequirementCheck,
)
from src.schemas.process import (
    GraduationProcess,
    GuardViolation,
    ProcessSummary,
    TransitionResponse,
    TransitionResult,
)
from src.schemas.student import Student, StudentRecord

__all__ = [
    "ActorRole",
    "CheckType",
    "GraduationProcessStatus",
    "GuardViolationCode",
    "RosterScope",
    "ScopeType",
    "TransitionAction",
    "EligibilityTriggerResult",
    "EligibilityVerdict",
    "RequirementCheck",
    "GraduationProcess",
    "GuardViolation",
    "ProcessSummary",
    "TransitionResponse",
    "TransitionResult",
    "Student",
    "StudentRecord",
]
