"""
Propodocs Backend — Test Configuration (conftest.py)
======================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Environment is overridden BEFORE any propodocs import, so the settings
       singleton, the engine and the provider chain are built from test
       values: in-memory SQLite, fake AI keys, one retry attempt, a known
       JWT secret.

Fixture Hierarchy:
    Function-scoped:
    ├── db_session:       AsyncSession on a fresh in-memory SQLite schema
    ├── owner / proposal: seeded User and Proposal rows
    ├── auth_headers:     Bearer token for `owner`
    ├── fake_chain:       GenerationChain over scripted providers
    └── test_client:      HTTPX AsyncClient bound to the app, DB overridden
"""

import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["GEMINI_API_KEY"] = "test-gemini-key"
os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
os.environ["OPENAI_API_KEY"] = "test-openai-key"
os.environ["JWT_SECRET"] = "test-secret-not-for-production"
os.environ["RETRY_MAX_ATTEMPTS"] = "1"
os.environ["RESEND_API_KEY"] = ""
os.environ["TWILIO_ACCOUNT_SID"] = ""
os.environ["LOG_LEVEL"] = "WARNING"

from typing import List, Optional, Union  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from propodocs.auth import create_access_token  # noqa: E402
from propodocs.database import Base, get_db_session  # noqa: E402
from propodocs.models import Proposal, User  # noqa: E402
from propodocs.services.generation_chain import GenerationChain  # noqa: E402
from propodocs.services.llm_base import GenerationOptions, LLMProvider  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Scripted provider
# ══════════════════════════════════════════════════════════════════════════


class FakeProvider(LLMProvider):
    """
    LLMProvider whose answers are scripted per call.

    Each entry of `responses` is either a string (returned) or an exception
    (raised). The last entry repeats once the script runs out.
    """

    def __init__(
        self,
        name: str,
        responses: Optional[List[Union[str, Exception]]] = None,
        configured: bool = True,
    ):
        self.name = name
        super().__init__(api_key="fake-key" if configured else "")
        self.responses = responses or ['{"ok": true}']
        self.calls: List[tuple] = []

    async def _complete(self, system_prompt: str, user_prompt: str, options: GenerationOptions) -> str:
        self.calls.append((system_prompt, user_prompt, options))
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        outcome = self.responses[index]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def make_provider():
    return FakeProvider


# ══════════════════════════════════════════════════════════════════════════
# Database fixtures
# ══════════════════════════════════════════════════════════════════════════


@pytest_asyncio.fixture
async def db_session():
    """
    A real AsyncSession on a private in-memory SQLite database.

    StaticPool keeps the single in-memory connection alive for the whole test.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, expire_on_commit=False)
    async with factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def owner(db_session):
    user = User(email="owner@agency.test", name="Owner", phone="+15550001111")
    db_session.add(user)
    await db_session.flush()
    return user


@pytest_asyncio.fixture
async def proposal(db_session, owner):
    row = Proposal(
        user_id=owner.id,
        title="Q3 Growth Retainer",
        client_name="Acme Corp",
        status="sent",
        calculator_data={"totals": {"annualTotal": 60000}},
    )
    db_session.add(row)
    await db_session.flush()
    return row


@pytest.fixture
def auth_headers(owner):
    return {"Authorization": f"Bearer {create_access_token(owner.id)}"}


# ══════════════════════════════════════════════════════════════════════════
# Generation fixtures
# ══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def fake_chain():
    """Factory: fake_chain(provider, ...) → GenerationChain over those providers."""

    def build(*providers: LLMProvider) -> GenerationChain:
        return GenerationChain(list(providers))

    return build


# ══════════════════════════════════════════════════════════════════════════
# HTTP client
# ══════════════════════════════════════════════════════════════════════════


@pytest_asyncio.fixture
async def test_client(db_session):
    """
    HTTPX AsyncClient talking to the app through ASGITransport.

    get_db_session is overridden to hand out the test session; both rate
    limit stores are emptied so tests do not share budgets.
    """
    from propodocs.main import app
    from propodocs.middleware.rate_limit import standard_store, strict_store

    async def override_db_session():
        yield db_session

    app.dependency_overrides[get_db_session] = override_db_session
    standard_store.clear()
    strict_store.clear()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
