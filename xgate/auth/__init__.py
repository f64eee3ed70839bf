"""Authentication: login and bearer-token storage."""

from xgate.auth.manager import AuthenticationManager
from xgate.auth.store import DEFAULT_TOKEN_TTL_SECONDS, InMemoryTokenStore, TokenStore


__all__ = [
    "AuthenticationManager",
    "DEFAULT_TOKEN_TTL_SECONDS",
    "InMemoryTokenStore",
    "TokenStore",
]
