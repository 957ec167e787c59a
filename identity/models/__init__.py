"""ORM model exports."""

from .registration_idempotency import RegistrationIdempotency
from .user import User, UserStatus
from .user_session import UserSession
from .user_token import UserToken, UserTokenType

__all__ = [
	"RegistrationIdempotency",
	"User",
	"UserSession",
	"UserStatus",
	"UserToken",
	"UserTokenType",
]
