"""
Pytest Configuration and Fixtures

Provides reusable fixtures for testing the account recovery service:
a controllable clock, a scripted randomness source, a recording delivery
gateway and the service objects wired over in-memory stores.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from recovery.core.clock import Clock
from recovery.services.email_service import DeliveryGateway, DeliveryResult


ACCOUNT = "a@example.com"
T0 = datetime(2026, 1, 5, 9, 0, 0, tzinfo=timezone.utc)


# ==================== Test Doubles ====================

class FrozenClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class ScriptedRandom:
    """
    Deterministic stand-in for secrets.randbelow.

    Returns the queued values in order, then `default` forever.
    """

    def __init__(self, values: Iterable[int] = (), default: int = 123456):
        self.values = list(values)
        self.default = default
        self.calls = 0

    def __call__(self, upper: int) -> int:
        self.calls += 1
        if self.values:
            return self.values.pop(0) % upper
        return self.default % upper


class FakeGateway(DeliveryGateway):
    """
    Records every send.

    Set `fail_with` to a reason to make sends fail, or `hang` to make them
    never return.
    """

    def __init__(self):
        self.sent: List[Tuple[str, str, datetime]] = []
        self.fail_with: Optional[str] = None
        self.hang = False

    @property
    def last_code(self) -> Optional[str]:
        return self.sent[-1][1] if self.sent else None

    async def send(self, account_id: str, code: str, expires_at: datetime) -> DeliveryResult:
        if self.hang:
            await asyncio.sleep(3600)
        if self.fail_with is not None:
            return DeliveryResult(success=False, reason=self.fail_with)
        self.sent.append((account_id, code, expires_at))
        return DeliveryResult(success=True, message_id=f"msg-{len(self.sent)}")


# ==================== Service Fixtures ====================

@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def randbelow() -> ScriptedRandom:
    return ScriptedRandom()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def otp_store():
    from recovery.services.memory_store import InMemoryOtpRecordStore

    return InMemoryOtpRecordStore()


@pytest.fixture
def credential_store():
    from recovery.services.memory_store import InMemoryCredentialStore

    return InMemoryCredentialStore([ACCOUNT])


@pytest.fixture
def generator(clock, randbelow):
    from recovery.services.otp_generator import OtpGenerator

    return OtpGenerator(clock, ttl=timedelta(minutes=10), max_attempts=3, randbelow=randbelow)


@pytest.fixture
def rate_limiter(otp_store, clock):
    from recovery.services.rate_limiter import OtpRateLimiter

    return OtpRateLimiter(otp_store, clock, cooldown=timedelta(minutes=2))


@pytest.fixture
def manager(otp_store, generator, rate_limiter, gateway, clock):
    from recovery.services.otp_service import OtpLifecycleManager

    return OtpLifecycleManager(
        store=otp_store,
        generator=generator,
        rate_limiter=rate_limiter,
        gateway=gateway,
        clock=clock,
        delivery_timeout=1.0,
    )


@pytest.fixture
def executor(manager, otp_store, credential_store, clock):
    from recovery.services.password_reset_service import PasswordResetExecutor

    return PasswordResetExecutor(
        manager=manager,
        store=otp_store,
        credentials=credential_store,
        clock=clock,
        password_min_length=8,
    )


# ==================== API Fixtures ====================

@pytest.fixture
def api_client(otp_store, credential_store, gateway, clock):
    """
    TestClient over the real app with in-memory stores, the fake gateway
    and the frozen clock injected.
    """
    from fastapi.testclient import TestClient

    from recovery.api.deps import RecoveryStores, get_clock, get_delivery_gateway, get_stores
    from recovery.main import app
    from recovery.middleware.rate_limit import recovery_limiter

    app.dependency_overrides[get_stores] = lambda: RecoveryStores(
        otp=otp_store, credentials=credential_store
    )
    app.dependency_overrides[get_delivery_gateway] = lambda: gateway
    app.dependency_overrides[get_clock] = lambda: clock
    recovery_limiter._buckets.clear()

    yield TestClient(app)

    app.dependency_overrides.clear()
    recovery_limiter._buckets.clear()


# ==================== Database Fixtures ====================

@pytest.fixture
def mock_async_session() -> AsyncMock:
    """
    Create a mock async database session.

    Returns:
        AsyncMock configured to behave like AsyncSession.
    """
    session = AsyncMock(spec=AsyncSession)
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.flush = AsyncMock()
    session.execute = AsyncMock()
    session.scalar = AsyncMock()
    return session


# ==================== HTTP Client Fixtures ====================

@pytest.fixture
def mock_httpx_response():
    """
    Factory fixture to create mock httpx responses.

    Usage:
        response = mock_httpx_response(status_code=200, json_data={"id": "abc"})
    """
    def _create_response(status_code: int = 200, json_data: dict = None, text: str = ""):
        response = MagicMock()
        response.status_code = status_code
        response.json.return_value = json_data or {}
        response.text = text
        return response
    return _create_response
