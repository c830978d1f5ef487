"""
Workflow Package

State machine for the graduation approval pipeline:
advisor → department secretary → dean's office → student affairs.
"""

from src.workflow.status_engine import (
    ACTION_OWNER,
    TRANSITIONS,
    GraduationStatusEngine,
    Transition,
    TransitionDecision,
)

__all__ = [
    "ACTION_OWNER",
    "TRANSITIONS",
    "GraduationStatusEngine",
    "Transition",
    "TransitionDecision",
]
