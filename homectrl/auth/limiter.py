"""Shared rate limiter for home-ctrl auth endpoints.

Uses slowapi (Starlette-compatible rate limiting) keyed on the remote address
to cap login attempts and key-management calls.

The Limiter instance is created here and shared between:
  - homectrl/auth/router.py  (route decorators)
  - homectrl/main.py         (app.state.limiter + RateLimitExceeded handler)
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from homectrl.constants import KEY_MANAGEMENT_RATE_LIMIT, LOGIN_RATE_LIMIT

limiter = Limiter(key_func=get_remote_address)

__all__ = ["limiter", "LOGIN_RATE_LIMIT", "KEY_MANAGEMENT_RATE_LIMIT"]
