"""Pydantic schemas for chat functionality."""

from datetime import datetime
from uuid import UUID

from pydantic import Field

from shopchat.models.message import MessageRole
from shopchat.schemas.common import BaseSchema

# === Product Card Schemas ===


class ProductCard(BaseSchema):
    """A display-ready product extracted from a catalog search result."""

    id: str
    title: str
    price: str
    image_url: str = ""
    description: str = ""
    url: str = ""


# === Message Schemas ===


class MessageResponse(BaseSchema):
    """A stored message, returned verbatim (tool results included)."""

    id: UUID
    role: MessageRole
    content: str
    created_at: datetime


class HistoryResponse(BaseSchema):
    """Conversation history in insertion order."""

    messages: list[MessageResponse]


# === Chat API Schemas ===


class ChatRequest(BaseSchema):
    """Request body for a streamed chat turn.

    ``message`` is validated by the endpoint so a missing message yields the
    widget's expected ``{"error": ...}`` 400 body rather than a 422.
    """

    message: str | None = Field(None, max_length=4000)
    conversation_id: str | None = Field(None, max_length=64)
    prompt_type: str | None = None
