"""API dependency exports."""

from identity.db.session import get_db

from .auth import (
    get_authenticated_context,
    get_request_context,
    presented_refresh_token,
    require_user_id,
)
from .services import (
    get_auth_service,
    get_clock,
    get_hasher,
    get_mailer,
    get_registration_service,
    get_signer,
)

__all__ = [
    "get_auth_service",
    "get_authenticated_context",
    "get_clock",
    "get_db",
    "get_hasher",
    "get_mailer",
    "get_registration_service",
    "get_request_context",
    "get_signer",
    "presented_refresh_token",
    "require_user_id",
]
