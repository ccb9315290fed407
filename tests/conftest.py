import os

os.environ.setdefault("OTLP_ENDPOINT", "")
os.environ.setdefault("INTERNAL_ADMIN_KEY", "test-internal")
os.environ.setdefault("API_KEY_PEPPER", "test-pepper")

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Import Base + all models so metadata is complete
import app.models  # noqa: F401
from app.models.base import Base

from app.main import app
from app.core.db import get_db
from app.gateways.base import InitializeResult, VerifyResult
from app.gateways.registry import get_payment_gateway
from app.services.rate_limit import RateLimitResult, get_bid_rate_limiter

from fixtures_seed import active_listing, seed_users  # noqa: F401


def _test_db_url() -> str:
    return os.getenv("DATABASE_URL_TEST", "sqlite+aiosqlite:///:memory:")


class FakeGateway:
    """Stands in for the payment provider; `verify_outcome` drives the next verify answers."""

    name = "fake"

    def __init__(self):
        self.verify_outcome = "success"
        self.init_ok = True
        self.amount_override: int | None = None
        self.initialized: dict[str, int] = {}
        self.verify_calls: list[str] = []

    async def initialize(self, *, email, amount_minor, reference, callback_url, metadata) -> InitializeResult:
        if not self.init_ok:
            return InitializeResult(ok=False, error_code="INIT_REJECTED", error_message="gateway said no")
        self.initialized[reference] = amount_minor
        return InitializeResult(
            ok=True,
            redirect_url=f"https://pay.test/{reference}",
            access_code=f"ac_{reference}",
            reference=reference,
        )

    async def verify(self, *, reference) -> VerifyResult:
        self.verify_calls.append(reference)
        if self.verify_outcome == "unknown":
            return VerifyResult(outcome="unknown", error_code="TIMEOUT", error_message="Request timed out")
        if self.verify_outcome == "failed":
            return VerifyResult(outcome="failed", error_code="NOT_SUCCESSFUL", error_message="Declined")
        amount = self.amount_override if self.amount_override is not None else self.initialized.get(reference)
        return VerifyResult(outcome="success", amount_minor=amount)


class FakeRateLimiter:
    def __init__(self):
        self.counts: dict[str, int] = {}

    async def allow(self, *, key: str, limit: int, window_seconds: int) -> RateLimitResult:
        count = self.counts.get(key, 0) + 1
        allowed = count <= limit
        if allowed:
            self.counts[key] = count
        return RateLimitResult(allowed=allowed, remaining=max(0, limit - count), reset_seconds=window_seconds)


@pytest_asyncio.fixture
async def async_engine():
    url = _test_db_url()
    if url.startswith("sqlite"):
        engine = create_async_engine(url, poolclass=StaticPool, connect_args={"check_same_thread": False})
    else:
        engine = create_async_engine(url, pool_pre_ping=True)
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
            await conn.run_sync(Base.metadata.create_all)
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return async_sessionmaker(bind=async_engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def fake_limiter():
    return FakeRateLimiter()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, fake_gateway, fake_limiter):
    """
    HTTP client sharing the test session, with the gateway and the rate
    limiter replaced by in-memory doubles.
    """
    async def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: fake_gateway
    app.dependency_overrides[get_bid_rate_limiter] = lambda: fake_limiter

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
