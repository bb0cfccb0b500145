"""Tests for the SQL conversation store.

Covers:
- Lazy conversation creation and insertion ordering
- Byte-identical round trip of message content
- Content encoding / decoding helpers
- Customer tokens (encryption at rest, expiry, upsert)
- PKCE verifiers (single use, expiry)
- Customer account URL cache
"""

import json
from datetime import UTC, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shopchat.models import CodeVerifier, Conversation, CustomerToken, MessageRole
from shopchat.services.conversation_store import (
    SqlConversationStore,
    decode_content,
    encode_content,
)
from tests.conftest import TEST_CONVERSATION_ID

# ---------------------------------------------------------------------------
# Tests: messages
# ---------------------------------------------------------------------------


class TestMessages:
    """Tests for append_message / load_history."""

    async def test_creates_conversation_lazily(
        self,
        store: SqlConversationStore,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """The first append creates the conversation row."""
        await store.append_message(TEST_CONVERSATION_ID, MessageRole.USER, "hello")

        async with session_factory() as session:
            conversation = await session.get(Conversation, TEST_CONVERSATION_ID)
        assert conversation is not None

    async def test_history_in_insertion_order(self, store: SqlConversationStore) -> None:
        """Messages come back in the order they were appended, with positions."""
        contents = ["first", "second", "third", "fourth"]
        for i, content in enumerate(contents):
            role = MessageRole.USER if i % 2 == 0 else MessageRole.ASSISTANT
            await store.append_message(TEST_CONVERSATION_ID, role, content)

        history = await store.load_history(TEST_CONVERSATION_ID)

        assert [m.content for m in history] == contents
        assert [m.position for m in history] == [0, 1, 2, 3]
        assert [m.role for m in history] == [
            MessageRole.USER,
            MessageRole.ASSISTANT,
            MessageRole.USER,
            MessageRole.ASSISTANT,
        ]

    async def test_round_trip_is_byte_identical(self, store: SqlConversationStore) -> None:
        """Stored content, including JSON blocks and unicode, reloads unchanged."""
        blocks = json.dumps([
            {"type": "text", "text": "Voilà, here you go ☕"},
            {"type": "tool_use", "id": "call_1", "name": "search_shop_catalog", "input": {}},
        ])
        await store.append_message(TEST_CONVERSATION_ID, MessageRole.ASSISTANT, blocks)

        history = await store.load_history(TEST_CONVERSATION_ID)

        assert history[0].content == blocks

    async def test_conversations_are_isolated(self, store: SqlConversationStore) -> None:
        await store.append_message("conv-a", MessageRole.USER, "a")
        await store.append_message("conv-b", MessageRole.USER, "b")

        history = await store.load_history("conv-a")

        assert [m.content for m in history] == ["a"]
        assert history[0].position == 0

    async def test_unknown_conversation_is_empty(self, store: SqlConversationStore) -> None:
        assert await store.load_history("nope") == []


class TestContentEncoding:
    """Tests for encode_content / decode_content."""

    def test_text_passes_through(self) -> None:
        assert encode_content("plain") == "plain"
        assert decode_content("plain") == "plain"

    def test_blocks_round_trip(self) -> None:
        blocks = [{"type": "tool_result", "tool_use_id": "call_1", "content": "ok"}]

        assert decode_content(encode_content(blocks)) == blocks

    def test_json_that_is_not_blocks_stays_text(self) -> None:
        """User text that happens to be JSON is not mistaken for blocks."""
        assert decode_content("[1, 2, 3]") == "[1, 2, 3]"
        assert decode_content('{"a": 1}') == '{"a": 1}'
        assert decode_content("[]") == "[]"


# ---------------------------------------------------------------------------
# Tests: customer tokens
# ---------------------------------------------------------------------------


class TestTokens:
    """Tests for get_token / upsert_token."""

    async def test_upsert_and_get(self, store: SqlConversationStore) -> None:
        expires_at = datetime.now(UTC) + timedelta(hours=1)

        await store.upsert_token(TEST_CONVERSATION_ID, "customer-token", expires_at)
        token = await store.get_token(TEST_CONVERSATION_ID)

        assert token is not None
        assert token.access_token == "customer-token"
        assert token.expires_at.tzinfo is not None

    async def test_token_encrypted_at_rest(
        self,
        store: SqlConversationStore,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        await store.upsert_token(
            TEST_CONVERSATION_ID, "customer-token", datetime.now(UTC) + timedelta(hours=1)
        )

        async with session_factory() as session:
            record = (await session.execute(select(CustomerToken))).scalar_one()
        assert record.access_token != "customer-token"

    async def test_upsert_replaces(
        self,
        store: SqlConversationStore,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        """At most one token per conversation."""
        expires_at = datetime.now(UTC) + timedelta(hours=1)
        await store.upsert_token(TEST_CONVERSATION_ID, "old", expires_at)
        await store.upsert_token(TEST_CONVERSATION_ID, "new", expires_at)

        token = await store.get_token(TEST_CONVERSATION_ID)
        async with session_factory() as session:
            records = (await session.execute(select(CustomerToken))).scalars().all()

        assert token is not None
        assert token.access_token == "new"
        assert len(records) == 1

    async def test_expired_token_is_absent(self, store: SqlConversationStore) -> None:
        await store.upsert_token(
            TEST_CONVERSATION_ID, "stale", datetime.now(UTC) - timedelta(minutes=1)
        )

        assert await store.get_token(TEST_CONVERSATION_ID) is None

    async def test_missing_token(self, store: SqlConversationStore) -> None:
        assert await store.get_token(TEST_CONVERSATION_ID) is None


# ---------------------------------------------------------------------------
# Tests: PKCE verifiers
# ---------------------------------------------------------------------------


class TestCodeVerifiers:
    """Tests for store_code_verifier / pop_code_verifier."""

    async def test_pop_returns_and_deletes(self, store: SqlConversationStore) -> None:
        await store.store_code_verifier("state-1", "verifier-1")

        assert await store.pop_code_verifier("state-1") == "verifier-1"
        assert await store.pop_code_verifier("state-1") is None

    async def test_expired_verifier_is_ignored(
        self,
        store: SqlConversationStore,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        async with session_factory() as session:
            session.add(
                CodeVerifier(
                    state="state-1",
                    verifier="old",
                    expires_at=datetime.now(UTC) - timedelta(seconds=1),
                )
            )
            await session.commit()

        assert await store.pop_code_verifier("state-1") is None

        async with session_factory() as session:
            remaining = (await session.execute(select(CodeVerifier))).scalars().all()
        assert remaining == []

    async def test_unknown_state(self, store: SqlConversationStore) -> None:
        assert await store.pop_code_verifier("missing") is None


# ---------------------------------------------------------------------------
# Tests: customer account URLs
# ---------------------------------------------------------------------------


class TestCustomerAccountUrls:
    """Tests for the customer account URL cache."""

    async def test_store_and_get(self, store: SqlConversationStore) -> None:
        assert await store.get_customer_account_url(TEST_CONVERSATION_ID) is None

        await store.store_customer_account_url(TEST_CONVERSATION_ID, "https://a.test/account")
        await store.store_customer_account_url(TEST_CONVERSATION_ID, "https://b.test/account")

        assert await store.get_customer_account_url(TEST_CONVERSATION_ID) == "https://b.test/account"
