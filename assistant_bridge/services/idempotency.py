"""Short-lived cache of operation results keyed by an idempotency key."""

import asyncio
import hashlib
import json
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional, Sequence

from ..structured_logging import get_logger

logger = get_logger("IDEMPOTENCY")


def derive_key(scope: str, record_id: int, payload: Sequence[str]) -> str:
    """Key for callers that send none: ``<scope>:<record id>:<sha256 of payload>``."""
    digest = hashlib.sha256(json.dumps(list(payload)).encode("utf-8")).hexdigest()
    return f"{scope}:{record_id}:{digest}"


class IdempotencyCache:
    """Time-boxed map from idempotency key to the result of the first call."""

    def __init__(self, ttl_seconds: float = 300, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._records: dict[str, tuple[float, Any]] = {}
        self._lock = asyncio.Lock()
        self._key_locks: dict[str, asyncio.Lock] = {}
        self._holders: dict[str, int] = {}

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            record = self._records.get(key)
            if record is None:
                return None
            expires_at, value = record
            if expires_at < self._clock():
                self._records.pop(key, None)
                return None
            logger.info("Idempotency key hit", idempotency_key=key)
            return value

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            now = self._clock()
            self._records = {k: v for k, v in self._records.items() if v[0] >= now}
            self._records[key] = (now + self.ttl_seconds, value)

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Serialize callers sharing a key, so a concurrent repeat waits for the first result."""
        lock = self._key_locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if not self._holders[key]:
                del self._holders[key]
                del self._key_locks[key]
