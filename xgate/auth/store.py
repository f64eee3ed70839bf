"""In-memory storage for the access token."""

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol


# Tokens issued by /auth/token are kept for one day
DEFAULT_TOKEN_TTL_SECONDS = 86400


class TokenStore(Protocol):
    """Storage for the current access token."""

    def get(self) -> str | None:
        """Return the stored token, or None if absent or expired."""
        ...

    def set(self, token: str, ttl_seconds: float) -> None:
        """Store a token for ``ttl_seconds``."""
        ...

    def clear(self) -> bool:
        """Remove the token; return True if one was stored."""
        ...


@dataclass
class InMemoryTokenStore:
    """Token store with expiry on a monotonic clock."""

    clock: Callable[[], float] = time.monotonic
    _token: str | None = field(default=None, init=False)
    _expires_at: float = field(default=0.0, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    def get(self) -> str | None:
        with self._lock:
            if self._token is None:
                return None
            if self.clock() >= self._expires_at:
                self._token = None
                return None
            return self._token

    def set(self, token: str, ttl_seconds: float = DEFAULT_TOKEN_TTL_SECONDS) -> None:
        with self._lock:
            self._token = token
            self._expires_at = self.clock() + ttl_seconds

    def clear(self) -> bool:
        with self._lock:
            had_token = self._token is not None
            self._token = None
            self._expires_at = 0.0
            return had_token
