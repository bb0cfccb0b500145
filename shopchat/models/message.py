"""Message model for individual chat messages."""

import enum
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import Enum, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shopchat.models.base import Base

if TYPE_CHECKING:
    from shopchat.models.conversation import Conversation


class MessageRole(str, enum.Enum):
    """Message sender roles."""

    USER = "user"
    ASSISTANT = "assistant"


class Message(Base):
    """An immutable entry in a conversation's history.

    ``content`` holds either plain text or a JSON-encoded list of content
    blocks (text, tool_use, tool_result). Tool results are stored with the
    ``user`` role. ``position`` is the insertion index within the conversation
    and defines reload order.
    """

    __tablename__ = "messages"
    __table_args__ = (UniqueConstraint("conversation_id", "position"),)

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Conversation relationship
    conversation_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("conversations.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    # Message content
    role: Mapped[MessageRole] = mapped_column(
        Enum(MessageRole, name="message_role", values_callable=lambda x: [e.value for e in x]),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)

    # Relationships
    conversation: Mapped["Conversation"] = relationship(
        "Conversation",
        back_populates="messages",
    )

    def __repr__(self) -> str:
        return f"<Message {self.role.value}: {self.content[:50]}...>"
