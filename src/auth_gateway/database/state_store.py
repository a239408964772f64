"""Ephemeral key-value stores backing the multi-step auth flows.

Every record written here carries its own expiry; an expired key simply
reads back as missing.  ``pop`` deletes and returns the previous value in
one step, which is how flows detect that a record was already consumed.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import TypeVar

from pydantic import BaseModel
from redis.asyncio import Redis

from auth_gateway.errors import RecordNotFound

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class EphemeralStore(ABC):
    """Set-with-expiry / get / delete interface over string values."""

    @abstractmethod
    async def set_with_expiry(self, key: str, seconds: int, value: str) -> None:
        """Store *value* under *key* for *seconds*."""

    @abstractmethod
    async def get_string(self, key: str) -> str | None:
        """Return the stored value, or ``None`` when missing or expired."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove *key*; ``True`` if something was deleted."""

    @abstractmethod
    async def pop(self, key: str) -> str | None:
        """Atomically remove *key* and return the value it held."""

    async def set_json(self, key: str, seconds: int, value: BaseModel) -> None:
        await self.set_with_expiry(key, seconds, value.model_dump_json())

    async def get_json(self, key: str, model: type[ModelT]) -> ModelT:
        """Load and validate a JSON record.

        Raises ``RecordNotFound`` when the key is missing, never returns an
        empty result.
        """
        raw = await self.get_string(key)
        if raw is None:
            raise RecordNotFound(key)
        return model.model_validate_json(raw)

    async def close(self) -> None:
        """Release any connection held by the store."""


class RedisStateStore(EphemeralStore):
    """Redis implementation; the client's pool is safe for concurrent use."""

    def __init__(self, client: Redis, key_prefix: str = "") -> None:
        self._redis = client
        self._key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, key_prefix: str = "") -> RedisStateStore:
        client = Redis.from_url(url, decode_responses=True)
        logger.info("Redis state store configured for %s", url)
        return cls(client, key_prefix)

    def _full_key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def set_with_expiry(self, key: str, seconds: int, value: str) -> None:
        await self._redis.set(self._full_key(key), value, ex=seconds)

    async def get_string(self, key: str) -> str | None:
        return await self._redis.get(self._full_key(key))

    async def delete(self, key: str) -> bool:
        return bool(await self._redis.delete(self._full_key(key)))

    async def pop(self, key: str) -> str | None:
        return await self._redis.getdel(self._full_key(key))

    async def close(self) -> None:
        await self._redis.aclose()


class MemoryStateStore(EphemeralStore):
    """In-process store with lazy expiry, for local development and tests.

    Each entry maps ``key → (value, expires_at)``.  Expired entries are
    purged when they are next touched.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._store: dict[str, tuple[str, float]] = {}

    def _live_entry(self, key: str) -> tuple[str, float] | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        if self._clock() >= entry[1]:
            self._store.pop(key, None)
            logger.debug("Ephemeral key %s expired", key)
            return None
        return entry

    async def set_with_expiry(self, key: str, seconds: int, value: str) -> None:
        self._store[key] = (value, self._clock() + seconds)

    async def get_string(self, key: str) -> str | None:
        entry = self._live_entry(key)
        return entry[0] if entry else None

    async def delete(self, key: str) -> bool:
        return self._live_entry(key) is not None and self._store.pop(key, None) is not None

    async def pop(self, key: str) -> str | None:
        entry = self._live_entry(key)
        if entry is None:
            return None
        self._store.pop(key, None)
        return entry[0]

    def ttl(self, key: str) -> float | None:
        """Seconds left before *key* expires (``None`` if missing)."""
        entry = self._live_entry(key)
        return entry[1] - self._clock() if entry else None
