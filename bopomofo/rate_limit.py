"""Shared slowapi limiter so routers can decorate endpoints without importing the app."""
from slowapi import Limiter
from slowapi.util import get_remote_address
from bopomofo.config import settings

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    enabled=settings.RATE_LIMIT_ENABLED,
)
