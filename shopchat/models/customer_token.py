"""Customer access token issued by the customer account OAuth flow."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from shopchat.models.base import Base


class CustomerToken(Base):
    """At most one live customer token per conversation.

    The token is encrypted at rest (see ``shopchat.core.encryption``).
    """

    __tablename__ = "customer_tokens"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    conversation_id: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
    )
    access_token: Mapped[str] = mapped_column(Text, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<CustomerToken {self.conversation_id} expires={self.expires_at}>"
