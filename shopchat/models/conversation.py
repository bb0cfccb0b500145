"""Conversation model keyed by the widget's opaque conversation id."""

from typing import TYPE_CHECKING

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from shopchat.models.base import Base

if TYPE_CHECKING:
    from shopchat.models.message import Message


class Conversation(Base):
    """A chat conversation.

    Created lazily when the first message is appended. The id is chosen by the
    client (or generated by the chat endpoint) and is never reinterpreted.
    """

    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)

    # Relationships
    messages: Mapped[list["Message"]] = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.position",
    )

    def __repr__(self) -> str:
        return f"<Conversation {self.id}>"
