"""Public API package exports."""

from .dependencies import require_user_id
from identity.api.routes.auth import router as auth_router
from identity.api.routes.registration import router as registration_router

__all__ = ["auth_router", "registration_router", "require_user_id"]
