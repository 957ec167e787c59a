"""API route modules."""

from . import auth
from . import registration

__all__ = ["auth", "registration"]
