"""Pytest configuration and fixtures for the shop chat gateway test suite.

Provides:
- In-memory SQLite database and conversation store per test
- Fake Redis (fakeredis) and turn guard
- A scripted chat model standing in for ChatOpenAI
- Disabled rate limiting
- An async HTTP client with dependencies overridden
- SSE frame parsing helper
"""

import json
import os

# Settings are read at import time; point them at test values first.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["OPENAI_API_KEY"] = "sk-test"
os.environ["ENCRYPTION_KEY"] = "test-encryption-key"
os.environ["SHOPIFY_CLIENT_ID"] = "test-client-id"
os.environ["SHOPIFY_SHOP_ID"] = "12345"
os.environ["APP_URL"] = "https://gateway.test"
os.environ["SHOP_ORIGINS"] = '["https://test-shop.myshopify.com"]'

from collections.abc import AsyncGenerator, Iterator  # noqa: E402
from typing import Any  # noqa: E402
from unittest.mock import patch  # noqa: E402

import fakeredis.aioredis  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from langchain_core.messages import AIMessageChunk  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from shopchat.core.deps import (  # noqa: E402
    get_conversation_store,
    get_db,
    get_redis,
    get_turn_guard,
)
from shopchat.core.rate_limit import limiter  # noqa: E402
from shopchat.main import app  # noqa: E402
from shopchat.models import Base  # noqa: E402
from shopchat.services.conversation_store import SqlConversationStore  # noqa: E402
from shopchat.services.turn_guard import TurnGuard  # noqa: E402

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
TEST_SHOP_ORIGIN = "https://test-shop.myshopify.com"
TEST_CUSTOMER_ACCOUNT_URL = "https://shopify.com/12345/account"
TEST_CONVERSATION_ID = "conv-test-123"

# ---------------------------------------------------------------------------
# Disable rate limiting globally for tests
# ---------------------------------------------------------------------------
limiter.enabled = False


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def parse_sse(body: str) -> list[dict[str, Any]]:
    """Decode a text/event-stream body into its JSON events."""
    events = []
    for frame in body.split("\n\n"):
        frame = frame.strip()
        if frame.startswith("data: "):
            events.append(json.loads(frame[len("data: ") :]))
    return events


def event_types(events: list[dict[str, Any]]) -> list[str]:
    return [e["type"] for e in events]


def text_chunks(*parts: str) -> list[AIMessageChunk]:
    """Chunks for a plain text completion that ends the turn."""
    chunks = [AIMessageChunk(content=part) for part in parts]
    chunks.append(AIMessageChunk(content="", response_metadata={"finish_reason": "stop"}))
    return chunks


def tool_call_chunks(
    *calls: tuple[str, str, dict[str, Any]], text: str = ""
) -> list[AIMessageChunk]:
    """Chunks for a completion requesting tools, one ``(id, name, args)`` per call."""
    chunks = [AIMessageChunk(content=text)] if text else []
    for index, (call_id, name, args) in enumerate(calls):
        chunks.append(
            AIMessageChunk(
                content="",
                tool_call_chunks=[
                    {"id": call_id, "name": name, "args": json.dumps(args), "index": index}
                ],
            )
        )
    chunks.append(AIMessageChunk(content="", response_metadata={"finish_reason": "tool_calls"}))
    return chunks


class FakeChatModel:
    """Scripted stand-in for ChatOpenAI.

    Each queued script is one completion; ``astream`` yields its chunks.
    ``bind_tools`` kwargs and the messages of every call are recorded.
    """

    def __init__(self) -> None:
        self.scripts: list[list[AIMessageChunk] | Exception] = []
        self.calls: list[list[Any]] = []
        self.bind_calls: list[dict[str, Any]] = []
        self.init_kwargs: dict[str, Any] = {}

    def queue(self, *scripts: list[AIMessageChunk] | Exception) -> None:
        self.scripts.extend(scripts)

    def bind_tools(self, tools: list[dict[str, Any]], **kwargs: Any) -> "FakeChatModel":
        self.bind_calls.append({"tools": tools, **kwargs})
        return self

    async def astream(self, messages: list[Any]) -> AsyncGenerator[AIMessageChunk, None]:
        self.calls.append(list(messages))
        script = self.scripts.pop(0)
        if isinstance(script, Exception):
            raise script
        for chunk in script:
            yield chunk


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine shared across sessions via StaticPool."""
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession]) -> SqlConversationStore:
    return SqlConversationStore(session_factory)


# ---------------------------------------------------------------------------
# Fake Redis
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Provide a fresh fakeredis instance per test."""
    return fakeredis.aioredis.FakeRedis(decode_responses=True)


@pytest.fixture
def turn_guard(fake_redis: fakeredis.aioredis.FakeRedis) -> TurnGuard:
    return TurnGuard(fake_redis, ttl_seconds=60)


# ---------------------------------------------------------------------------
# LLM
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_llm() -> Iterator[FakeChatModel]:
    """Patch ChatOpenAI with a scripted model."""
    model = FakeChatModel()

    def _factory(**kwargs: Any) -> FakeChatModel:
        model.init_kwargs = kwargs
        return model

    with patch("shopchat.services.llm_service.ChatOpenAI", side_effect=_factory):
        yield model


# ---------------------------------------------------------------------------
# HTTP client (overrides DB, store, Redis, turn guard)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    store: SqlConversationStore,
    fake_redis: fakeredis.aioredis.FakeRedis,
    turn_guard: TurnGuard,
) -> AsyncGenerator[AsyncClient, None]:
    """Async test client with all dependencies overridden."""

    async def _override_session() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_db] = _override_session
    app.dependency_overrides[get_redis] = lambda: fake_redis
    app.dependency_overrides[get_conversation_store] = lambda: store
    app.dependency_overrides[get_turn_guard] = lambda: turn_guard

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def plain_client() -> AsyncGenerator[AsyncClient, None]:
    """Minimal async test client with NO dependency overrides."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
