"""Per-IP request throttling shared by the public routes."""

from __future__ import annotations

from slowapi import Limiter
from slowapi.util import get_remote_address

from identity.core.config import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)

ATTEMPTS_PER_IP = f"{settings.max_attempts_per_ip_per_hour}/hour"

__all__ = ["ATTEMPTS_PER_IP", "limiter"]
