"""SQLAlchemy models."""

from shopchat.models.base import Base
from shopchat.models.code_verifier import CodeVerifier
from shopchat.models.conversation import Conversation
from shopchat.models.customer_account_url import CustomerAccountUrl
from shopchat.models.customer_token import CustomerToken
from shopchat.models.message import Message, MessageRole

__all__ = [
    # Base
    "Base",
    # Conversations
    "Conversation",
    "Message",
    "MessageRole",
    # Customer accounts
    "CustomerToken",
    "CodeVerifier",
    "CustomerAccountUrl",
]
