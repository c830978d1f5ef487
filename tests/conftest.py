"""
Shared Test Fixtures

Cache, executor and orchestrator wiring for the unit tests. Collaborator
fakes and data factories live in tests/fakes.py.
"""

import pytest

from src.cache.storage import MemoryStore
from src.cache.ttl_cache import TTLCache
from src.roster.orchestrator import StudentRosterOrchestrator
from src.schemas.base import ActorRole
from src.utils.rate_limit import RateLimitConfig, RateLimitedBatchExecutor
from tests.fakes import (
    FakeEligibilityService,
    FakeRegistry,
    FakeTransitionService,
    ManualClock,
    RecordingSleep,
)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def cache(clock) -> TTLCache:
    """One-hour cache over an in-memory store, driven by the manual clock."""
    return TTLCache(store=MemoryStore(quota_bytes=1024 * 1024), ttl=3600, namespace="test", timer=clock)


@pytest.fixture
def fast_executor(recording_sleep) -> RateLimitedBatchExecutor:
    return RateLimitedBatchExecutor(
        RateLimitConfig(concurrency=2, inter_wave_delay=0.2, max_retries=2, retry_delay=0.5),
        sleep=recording_sleep,
    )


@pytest.fixture
def build_orchestrator(cache, fast_executor):
    """Factory: orchestrator for a role over the given fakes."""

    def _build(
        role: ActorRole,
        registry: FakeRegistry,
        eligibility: FakeEligibilityService,
        transitions: FakeTransitionService,
    ) -> StudentRosterOrchestrator:
        return StudentRosterOrchestrator(
            registry=registry,
            eligibility_service=eligibility,
            transitions=transitions,
            cache=cache,
            role=role,
            eligibility_executor=fast_executor,
            lookup_executor=fast_executor,
            trigger_retry=RateLimitConfig(concurrency=1, inter_wave_delay=0, max_retries=2, retry_delay=0),
        )

    return _build
