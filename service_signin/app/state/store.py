"""
Pending anti-CSRF state tokens.
"""

import secrets
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from shared.logging import get_logger


class StateStore(ABC):
    """Server-side record of state tokens awaiting their callback.

    A token is valid while it is pending; validating it removes it, so each
    value can be redeemed at most once.
    """

    @abstractmethod
    def issue(self) -> str:
        """Generate, record and return a new state token."""

    @abstractmethod
    def validate_and_consume(self, token: Optional[str]) -> bool:
        """Return True and drop the token if it is pending, False otherwise."""


class InMemoryStateStore(StateStore):
    """Process-local state store guarded by a mutex.

    Pending tokens do not survive a restart and are not shared between
    processes. Tokens older than ``ttl_seconds`` are treated as absent.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = 600,
        token_bytes: int = 32,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.token_bytes = token_bytes
        self._clock = clock
        self._pending: Dict[str, float] = {}
        self._lock = threading.Lock()
        self.logger = get_logger("signin.state")

    def issue(self) -> str:
        now = self._clock()
        with self._lock:
            self._evict_expired(now)
            token = secrets.token_urlsafe(self.token_bytes)
            while token in self._pending:
                token = secrets.token_urlsafe(self.token_bytes)
            self._pending[token] = now
            pending = len(self._pending)

        self.logger.debug("State issued", pending=pending)
        return token

    def validate_and_consume(self, token: Optional[str]) -> bool:
        if not token:
            return False

        with self._lock:
            issued_at = self._pending.pop(token, None)

        if issued_at is None:
            return False
        if self._is_expired(issued_at, self._clock()):
            self.logger.info("Expired state presented")
            return False
        return True

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def _is_expired(self, issued_at: float, now: float) -> bool:
        return self.ttl_seconds is not None and now - issued_at > self.ttl_seconds

    def _evict_expired(self, now: float) -> None:
        # Caller holds the lock.
        if self.ttl_seconds is None:
            return
        expired = [t for t, issued_at in self._pending.items() if self._is_expired(issued_at, now)]
        for token in expired:
            del self._pending[token]
        if expired:
            self.logger.debug("Evicted expired states", count=len(expired))
