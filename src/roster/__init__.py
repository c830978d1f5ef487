"""
Roster Package

Composes caching, batching, aggregation and status guards into the
roster reads and approval actions the portal UI calls.
"""
from src.roster.orchestrator import (
    ROLE_SCOPE_TYPES,
    StudentRosterOrchestrator,
    eligibility_key,
    roster_key,
)

__all__ = [
    "StudentRosterOrchestrator",
    "ROLE_SCOPE_TYPES",
    "roster_key",
    "eligibility_key",
]
