"""Cached customer account URL per conversation."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from shopchat.models.base import Base


class CustomerAccountUrl(Base):
    """The shop's customer account base URL, discovered once per conversation."""

    __tablename__ = "customer_account_urls"

    conversation_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    url: Mapped[str] = mapped_column(String(512), nullable=False)

    def __repr__(self) -> str:
        return f"<CustomerAccountUrl {self.conversation_id}: {self.url}>"
