"""Durable conversation store backed by async SQLAlchemy."""

import json
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from shopchat.core.config import settings
from shopchat.core.encryption import decrypt_token, encrypt_token
from shopchat.models.base import utcnow
from shopchat.models.code_verifier import CodeVerifier
from shopchat.models.conversation import Conversation
from shopchat.models.customer_account_url import CustomerAccountUrl
from shopchat.models.customer_token import CustomerToken
from shopchat.models.message import Message, MessageRole
from shopchat.schemas.auth import AccessToken


def _aware(value: datetime) -> datetime:
    """SQLite drops tzinfo on read; treat naive datetimes as UTC."""
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def encode_content(content: str | list[dict[str, Any]]) -> str:
    """Encode message content for storage: text as-is, blocks as JSON."""
    return content if isinstance(content, str) else json.dumps(content)


def decode_content(raw: str) -> str | list[dict[str, Any]]:
    """Decode stored content back into text or a list of content blocks."""
    try:
        parsed = json.loads(raw)
    except ValueError:
        return raw
    if isinstance(parsed, list) and parsed and all(
        isinstance(block, dict) and "type" in block for block in parsed
    ):
        return parsed
    return raw


class ConversationStore(Protocol):
    """Storage operations the chat flow depends on."""

    async def append_message(
        self, conversation_id: str, role: MessageRole, content: str
    ) -> Message: ...

    async def load_history(self, conversation_id: str) -> list[Message]: ...

    async def get_token(self, conversation_id: str) -> AccessToken | None: ...

    async def upsert_token(
        self, conversation_id: str, access_token: str, expires_at: datetime
    ) -> None: ...

    async def store_code_verifier(self, state: str, verifier: str) -> None: ...

    async def pop_code_verifier(self, state: str) -> str | None: ...

    async def get_customer_account_url(self, conversation_id: str) -> str | None: ...

    async def store_customer_account_url(self, conversation_id: str, url: str) -> None: ...


class SqlConversationStore:
    """SQLAlchemy implementation of :class:`ConversationStore`.

    Every operation opens its own short-lived session and commits on its own,
    so each append is durable independently of the rest of the turn.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    # === Messages ===

    async def append_message(
        self, conversation_id: str, role: MessageRole, content: str
    ) -> Message:
        """Append a message, creating the conversation on first use."""
        async with self.session_factory() as session:
            conversation = await session.get(Conversation, conversation_id)
            if conversation is None:
                session.add(Conversation(id=conversation_id))
            else:
                conversation.updated_at = utcnow()

            result = await session.execute(
                select(func.max(Message.position)).where(
                    Message.conversation_id == conversation_id
                )
            )
            last_position = result.scalar_one_or_none()

            message = Message(
                conversation_id=conversation_id,
                position=0 if last_position is None else last_position + 1,
                role=role,
                content=content,
            )
            session.add(message)
            await session.commit()
            return message

    async def load_history(self, conversation_id: str) -> list[Message]:
        """Load all messages for a conversation in insertion order."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Message)
                .where(Message.conversation_id == conversation_id)
                .order_by(Message.position)
            )
            return list(result.scalars().all())

    # === Customer tokens ===

    async def get_token(self, conversation_id: str) -> AccessToken | None:
        """Return the live customer token for a conversation, if any."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(CustomerToken).where(CustomerToken.conversation_id == conversation_id)
            )
            record = result.scalar_one_or_none()

        if record is None or _aware(record.expires_at) <= datetime.now(UTC):
            return None

        return AccessToken(
            conversation_id=record.conversation_id,
            access_token=decrypt_token(record.access_token),
            expires_at=_aware(record.expires_at),
        )

    async def upsert_token(
        self, conversation_id: str, access_token: str, expires_at: datetime
    ) -> None:
        """Create or replace the customer token for a conversation."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(CustomerToken).where(CustomerToken.conversation_id == conversation_id)
            )
            record = result.scalar_one_or_none()
            if record is None:
                record = CustomerToken(conversation_id=conversation_id)
                session.add(record)
            record.access_token = encrypt_token(access_token)
            record.expires_at = expires_at
            await session.commit()

    # === PKCE verifiers ===

    async def store_code_verifier(self, state: str, verifier: str) -> None:
        """Store a PKCE verifier for the OAuth callback."""
        async with self.session_factory() as session:
            session.add(
                CodeVerifier(
                    state=state,
                    verifier=verifier,
                    expires_at=utcnow() + timedelta(seconds=settings.code_verifier_ttl_seconds),
                )
            )
            await session.commit()

    async def pop_code_verifier(self, state: str) -> str | None:
        """Return the newest unexpired verifier for ``state`` and delete all of them."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(CodeVerifier)
                .where(CodeVerifier.state == state)
                .order_by(CodeVerifier.created_at.desc())
            )
            records = list(result.scalars().all())
            now = datetime.now(UTC)
            verifier = next(
                (r.verifier for r in records if _aware(r.expires_at) > now),
                None,
            )
            if records:
                await session.execute(delete(CodeVerifier).where(CodeVerifier.state == state))
                await session.commit()
            return verifier

    # === Customer account URLs ===

    async def get_customer_account_url(self, conversation_id: str) -> str | None:
        async with self.session_factory() as session:
            record = await session.get(CustomerAccountUrl, conversation_id)
            return record.url if record else None

    async def store_customer_account_url(self, conversation_id: str, url: str) -> None:
        async with self.session_factory() as session:
            record = await session.get(CustomerAccountUrl, conversation_id)
            if record is None:
                session.add(CustomerAccountUrl(conversation_id=conversation_id, url=url))
            else:
                record.url = url
            await session.commit()
