"""Idempotency record for registration submissions."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from identity.db.base import Base


class RegistrationIdempotency(Base):
    """Maps a client-supplied key to the response it originally produced.

    Rows are written once, in the same transaction as the user they refer to,
    and never updated.
    """

    __tablename__ = "registration_idempotency"

    key: Mapped[str] = mapped_column("idempotency_key", String(255), primary_key=True)
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    response_payload: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


__all__ = ["RegistrationIdempotency"]
