"""Pydantic schemas for customer account authorization."""

from datetime import datetime
from typing import Literal

from shopchat.schemas.common import BaseSchema


class AccessToken(BaseSchema):
    """A live customer access token for one conversation."""

    conversation_id: str
    access_token: str
    expires_at: datetime


class AuthorizationRequest(BaseSchema):
    """An authorization URL handed to the customer."""

    url: str
    conversation_id: str


class TokenStatusResponse(BaseSchema):
    """Token status polled by the widget after showing an auth link."""

    status: Literal["authorized", "unauthorized"]
    expires_at: datetime | None = None
