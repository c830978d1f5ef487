"""
GradSys Backend Client

aiohttp client for the GradSys REST API. Implements the three
collaborator interfaces used by the roster orchestrator:
- StudentRegistry (Students)
- EligibilityCheckService (EligibilityCheckResults, PerformSystemEligibilityChecks)
- ProcessTransitionService (GraduationProcesses and the role endpoints)

Error mapping:
- no token, 401, 403        → AuthError (never retried)
- network, timeout, 408/429/5xx → TransportError (retryable)
- any other 4xx             → ServiceError
"""

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

import aiohttp
from pydantic import BaseModel, Field, ValidationError

from config.portal_settings import API
from src.schemas.base import ActorRole, PortalModel, RosterScope, ScopeType
from src.schemas.eligibility import RequirementCheck
from src.schemas.process import GraduationProcess, TransitionResponse, select_active_processes
from src.schemas.student import StudentRecord
from src.utils.errors import AuthError, ServiceError, TransportError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

TokenProvider = Callable[[], str | None]


@dataclass(frozen=True)
class RoleEndpoints:
    """Transition endpoints for one role. All share one request body shape."""
    approve: str
    reject: str
    actor_field: str


ROLE_ENDPOINTS: dict[ActorRole, RoleEndpoints] = {
    ActorRole.ADVISOR: RoleEndpoints("SetAdvisorEligible", "SetAdvisorNotEligible", "advisorUserId"),
    ActorRole.SECRETARY: RoleEndpoints(
        "SetDeptSecretaryApproved", "SetDeptSecretaryRejected", "deptSecretaryUserId"
    ),
    ActorRole.DEANS_OFFICE: RoleEndpoints(
        "SetDeansOfficeApproved", "SetDeansOfficeRejected", "deansOfficeUserId"
    ),
    ActorRole.STUDENT_AFFAIRS: RoleEndpoints(
        "SetStudentAffairsApproved", "SetStudentAffairsRejected", "studentAffairsUserId"
    ),
}

SCOPE_FILTERS: dict[ScopeType, str | None] = {
    ScopeType.DEPARTMENT: "departmentId",
    ScopeType.FACULTY: "facultyId",
    ScopeType.UNIVERSITY: None,
}

_TRANSIENT_STATUSES = {408, 429}


class PageResponse(PortalModel):
    """Backend pagination envelope."""
    items: list[dict[str, Any]] = Field(default_factory=list)
    index: int = 0
    size: int = 0
    count: int = 0
    pages: int = 0
    has_previous: bool = False
    has_next: bool = False


def _token_from_env() -> str | None:
    return os.environ.get(API["auth_token_env"])


class GradSysClient:
    """
    Async client for the GradSys backend.

    Use as an async context manager, or call close() when done, unless an
    externally owned session was passed in.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token_provider: TokenProvider | None = None,
        timeout: float | None = None,
        page_size: int | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._base_url = (base_url or API["base_url"]).rstrip("/")
        self._token_provider = token_provider or _token_from_env
        self._timeout = aiohttp.ClientTimeout(total=timeout or API["request_timeout"])
        self._page_size = page_size or API["page_size"]
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self) -> "GradSysClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, str] | None = None,
        payload: dict[str, Any] | None = None,
    ) -> Any:
        """Send one authenticated request and decode the JSON body (None if empty)."""
        token = self._token_provider()
        if not token:
            raise AuthError("No authentication token found")

        url = f"{self._base_url}/{path.lstrip('/')}"
        headers = {"Authorization": f"Bearer {token}", "Accept": "application/json"}

        try:
            async with self._get_session().request(
                method, url, params=params, json=payload, headers=headers, timeout=self._timeout
            ) as response:
                body = await response.text()
                status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportError(f"{method} {path} failed: {e!r}") from e

        if status in (401, 403):
            raise AuthError(f"{method} {path} was not authorised ({status})", status_code=status)
        if status >= 500 or status in _TRANSIENT_STATUSES:
            raise TransportError(f"{method} {path} failed with {status}: {_error_detail(body)}", status_code=status)
        if status >= 400:
            raise ServiceError(f"API error: {_error_detail(body)}", status_code=status)

        if not body.strip():
            return None
        try:
            return json.loads(body)
        except ValueError as e:
            raise ServiceError(f"{method} {path} returned invalid JSON", status_code=status) from e

    async def _fetch_all_pages(self, path: str, params: dict[str, str] | None = None) -> list[dict[str, Any]]:
        """Follow pagination until the backend reports no next page."""
        items: list[dict[str, Any]] = []
        index = 0
        while True:
            page_params = {
                **(params or {}),
                "PageRequest.PageIndex": str(index),
                "PageRequest.PageSize": str(self._page_size),
            }
            data = await self._request("GET", path, params=page_params)
            if isinstance(data, list):
                # Unpaginated endpoint
                items.extend(data)
                break

            page = PageResponse.model_validate(data or {})
            items.extend(page.items)
            if not page.has_next or not page.items:
                break
            index += 1

        logger.debug("Fetched %d items from %s (%d pages)", len(items), path, index + 1)
        return items

    # =========================================================================
    # STUDENT REGISTRY
    # =========================================================================

    async def fetch_roster(self, scope: RosterScope) -> list[StudentRecord]:
        items = await self._fetch_all_pages("Students", _scope_params(scope))
        students = _parse_items(StudentRecord, items, "student")
        logger.info("Fetched %d students for %s", len(students), scope)
        return students

    async def fetch_student(self, student_id: str) -> StudentRecord:
        data = await self._request("GET", f"Students/{student_id}")
        if not isinstance(data, dict):
            raise ServiceError(f"Student {student_id} not found", status_code=404)
        return StudentRecord.model_validate(data)

    # =========================================================================
    # ELIGIBILITY CHECKS
    # =========================================================================

    async def fetch_checks(self, student_id: str) -> list[RequirementCheck]:
        items = await self._fetch_all_pages(f"EligibilityCheckResults/student/{student_id}")
        for item in items:
            item.setdefault("studentId", student_id)
        return _parse_items(RequirementCheck, items, "eligibility check")

    async def trigger_checks(self, student_ids: list[str]) -> list[str]:
        logger.info("Requesting eligibility checks for %d students", len(student_ids))
        data = await self._request(
            "POST",
            "GraduationProcesses/PerformSystemEligibilityChecks",
            payload={"studentUserIds": list(student_ids)},
        )
        processed = data.get("processedStudents") if isinstance(data, dict) else None
        if processed is None:
            return list(student_ids)
        return [str(student_id) for student_id in processed]

    # =========================================================================
    # GRADUATION PROCESSES
    # =========================================================================

    async def fetch_processes(self, scope: RosterScope) -> list[GraduationProcess]:
        items = await self._fetch_all_pages("GraduationProcesses", _scope_params(scope))
        return _parse_items(GraduationProcess, items, "graduation process")

    async def fetch_process(self, student_id: str) -> GraduationProcess | None:
        items = await self._fetch_all_pages("GraduationProcesses", {"studentId": student_id})
        processes = _parse_items(GraduationProcess, items, "graduation process")
        return select_active_processes(processes).get(student_id)

    async def approve(self, role: ActorRole, student_ids: list[str], actor_id: str) -> TransitionResponse:
        endpoints = _endpoints_for(role)
        payload = {"studentUserIds": list(student_ids), endpoints.actor_field: actor_id}
        data = await self._request("POST", f"GraduationProcesses/{endpoints.approve}", payload=payload)
        return _transition_response(data, student_ids)

    async def reject(
        self,
        role: ActorRole,
        student_ids: list[str],
        actor_id: str,
        reason: str,
    ) -> TransitionResponse:
        endpoints = _endpoints_for(role)
        payload = {
            "studentUserIds": list(student_ids),
            endpoints.actor_field: actor_id,
            "rejectionReason": reason,
        }
        data = await self._request("POST", f"GraduationProcesses/{endpoints.reject}", payload=payload)
        return _transition_response(data, student_ids)


# =============================================================================
# HELPERS
# =============================================================================

def _scope_params(scope: RosterScope) -> dict[str, str]:
    field = SCOPE_FILTERS[scope.scope_type]
    return {field: scope.scope_id} if field else {}


def _endpoints_for(role: ActorRole) -> RoleEndpoints:
    try:
        return ROLE_ENDPOINTS[role]
    except KeyError:
        raise ValueError(f"Role {role.value} has no transition endpoints") from None


def _parse_items(model: type[M], items: list[dict[str, Any]], what: str) -> list[M]:
    parsed = []
    for item in items:
        try:
            parsed.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning(f"Skipping malformed {what} record: {e.error_count()} validation error(s)")
    return parsed


def _transition_response(data: Any, student_ids: list[str]) -> TransitionResponse:
    if isinstance(data, dict) and "processSummaries" in data:
        return TransitionResponse.model_validate(data)
    return TransitionResponse.accepted(list(student_ids))


def _error_detail(body: str) -> str:
    try:
        data = json.loads(body)
    except ValueError:
        return body.strip()[:200] or "no details"
    if isinstance(data, dict):
        return str(data.get("message") or data.get("detail") or data.get("title") or data)
    return str(data)
