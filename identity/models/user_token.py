"""Single-use token ORM model."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import DateTime, Enum, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from identity.db.base import Base

if TYPE_CHECKING:
    from identity.models.user import User


class UserTokenType(str, enum.Enum):
    """Purpose a single-use token was issued for."""

    ACTIVATION = "activation"
    PASSWORD_RESET = "password_reset"
    EMAIL_CHANGE = "email_change"


class UserToken(Base):
    """Represents an opaque, time-boxed, single-use grant for a user."""

    __tablename__ = "user_tokens"
    __table_args__ = (
        UniqueConstraint("token", name="uq_user_tokens_token"),
        Index("ix_user_tokens_user_id_type", "user_id", "type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    token: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[UserTokenType] = mapped_column(
        Enum(
            UserTokenType,
            name="user_token_type",
            values_callable=lambda members: [member.value for member in members],
            validate_strings=True,
        ),
        nullable=False,
    )
    payload: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    consumed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    user: Mapped["User"] = relationship(
        "User",
        back_populates="tokens",
    )


__all__ = ["UserToken", "UserTokenType"]
