"""
Clients Package

Collaborator interfaces and the aiohttp client for the GradSys backend.
"""

from src.clients.gradsys import GradSysClient, PageResponse, ROLE_ENDPOINTS
from src.clients.interfaces import (
    EligibilityCheckService,
    ProcessTransitionService,
    StudentRegistry,
)

__all__ = [
    "GradSysClient",
    "PageResponse",
    "ROLE_ENDPOINTS",
    "EligibilityCheckService",
    "ProcessTransitionService",
    "StudentRegistry",
]
