"""PKCE code verifier awaiting its OAuth callback."""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from shopchat.models.base import Base


class CodeVerifier(Base):
    """Single-use PKCE verifier keyed by the OAuth ``state`` parameter."""

    __tablename__ = "code_verifiers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    state: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    verifier: Mapped[str] = mapped_column(String(128), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<CodeVerifier state={self.state}>"
