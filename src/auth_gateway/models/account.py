"""SQLAlchemy Account model."""

import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

DEFAULT_ROLE = "default"


class Base(DeclarativeBase):
    """Shared declarative base for all ORM models."""


def _new_account_id() -> str:
    return uuid.uuid4().hex


class Account(Base):
    """A persisted identity.

    At least one of ``email`` / ``mobile_number`` is present.  Both are
    unique across accounts; the identifier is assigned on insert and never
    changes afterwards.
    """

    __tablename__ = "accounts"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=_new_account_id)
    email: Mapped[str | None] = mapped_column(String(256), unique=True, nullable=True)
    mobile_number: Mapped[str | None] = mapped_column(String(32), unique=True, nullable=True)
    password_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    roles: Mapped[list[str]] = mapped_column(JSON, default=lambda: [DEFAULT_ROLE])
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(UTC)
    )

    def __repr__(self) -> str:
        return f"<Account id={self.id} email={self.email!r} mobile={self.mobile_number!r}>"
