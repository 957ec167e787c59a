"""SQLAlchemy declarative base for ORM models."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Import model modules so SQLAlchemy registers the mappers during startup.
from identity.models import (  # noqa: E402,F401
    registration_idempotency,
    user,
    user_session,
    user_token,
)


__all__ = ["Base"]
