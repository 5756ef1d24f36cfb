"""Request throttling with slowapi.

The limiter keys on client IP. Routers decorate sensitive endpoints
(credential checks) with a tighter ``LOGIN_RATE_LIMIT``.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from manahr.config import settings

DEFAULT_LIMITS = ["60/minute"]

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=DEFAULT_LIMITS,
    enabled=settings.ENVIRONMENT != "test",
)


def login_limit() -> str:
    """Limit string for credential endpoints, read at request time."""
    return settings.LOGIN_RATE_LIMIT
