"""
Test configuration and fixtures for LendCircle backend tests.
"""
import pytest
from typing import AsyncGenerator
from decimal import Decimal

import httpx
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from httpx import AsyncClient, ASGITransport

from lendcircle.core.database import Base, engine_options, get_db
from lendcircle.core.security import create_access_token
from lendcircle.modules.currency.cache import ExchangeRateCache, InMemoryRateStore, get_rate_cache
from lendcircle.modules.currency.rates import ExchangeRateProvider
from lendcircle.modules.loans.models import LoanRequest, LoanStatus
from main import app


# ============================================================
# Database Fixtures
# ============================================================

@pytest.fixture
async def test_engine(tmp_path):
    """
    File-backed SQLite database per test.

    A file (not :memory:) lets several sessions run side by side the way
    concurrent requests do.
    """
    url = f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    engine = create_async_engine(url, echo=False, **engine_options(url))

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False
    )


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for each test"""
    async with session_factory() as session:
        yield session
        await session.rollback()


# ============================================================
# Exchange Rate Fixtures
# ============================================================

USD_RATES = {"USD": 1.0, "EUR": 0.9, "GBP": 0.8, "JPY": 150.0}


@pytest.fixture
def rate_requests():
    """URLs the mock rate provider has been asked for"""
    return []


@pytest.fixture
def rate_transport(rate_requests):
    def handler(request: httpx.Request) -> httpx.Response:
        rate_requests.append(str(request.url))
        return httpx.Response(200, json={"base": "USD", "rates": USD_RATES})

    return httpx.MockTransport(handler)


@pytest.fixture
def rate_cache(rate_transport):
    provider = ExchangeRateProvider(base_url="https://rates.test/latest", transport=rate_transport)
    return ExchangeRateCache(provider=provider, store=InMemoryRateStore(), ttl_seconds=3600)


# ============================================================
# HTTP Client Fixtures
# ============================================================

@pytest.fixture
async def client(session_factory, rate_cache) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with database and rate cache overrides"""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_rate_cache] = lambda: rate_cache

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


def auth_headers_for(user_id: int) -> dict:
    token = create_access_token(data={"sub": str(user_id)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def borrower_headers():
    return auth_headers_for(1)


@pytest.fixture
def investor_headers():
    return auth_headers_for(2)


# ============================================================
# Loan Fixtures
# ============================================================

@pytest.fixture
def make_loan(session_factory):
    """Insert a loan request directly, bypassing validation"""

    async def _make_loan(
        amount_requested="1000.00",
        interest_rate="6.00",
        repayment_months=12,
        borrower_id=1,
        currency="USD",
        title="Test loan"
    ) -> LoanRequest:
        async with session_factory() as session:
            loan = LoanRequest(
                borrower_id=borrower_id,
                title=title,
                description="",
                amount_requested=Decimal(amount_requested),
                interest_rate=Decimal(interest_rate),
                repayment_months=repayment_months,
                currency=currency,
                amount_funded=Decimal("0.00"),
                status=LoanStatus.OPEN
            )
            session.add(loan)
            await session.commit()
            await session.refresh(loan)
            return loan

    return _make_loan
