"""Redis-backed key-value store."""

from __future__ import annotations

import hashlib
import logging
import re

import redis.asyncio as aioredis
from redis.exceptions import WatchError

_logger = logging.getLogger(__name__)


_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def _glob_escape(text: str) -> str:
    """Escape redis MATCH metacharacters so *text* matches literally."""
    return _GLOB_SPECIAL.sub(r"\\\1", text)


def _etag(value: str | bytes) -> str:
    data = value.encode("utf-8") if isinstance(value, str) else value
    return hashlib.sha1(data).hexdigest()  # noqa: S324


class RedisStore:
    """Store keys as plain strings under ``<store_name>/``.

    Conditional writes use WATCH/MULTI; the etag is a digest of the
    current value.
    """

    def __init__(self, client: aioredis.Redis, store_name: str) -> None:
        self._client = client
        self._namespace = f"{store_name}/"

    @classmethod
    def from_url(cls, url: str, store_name: str) -> RedisStore:
        return cls(aioredis.from_url(url, decode_responses=True), store_name)

    def _key(self, key: str) -> str:
        return f"{self._namespace}{key}"

    async def get(self, key: str) -> str | None:
        value = await self._client.get(self._key(key))
        return value if value is None or isinstance(value, str) else value.decode("utf-8")

    async def set(self, key: str, value: str) -> None:
        await self._client.set(self._key(key), value)

    async def list(self, prefix: str = "", limit: int | None = None) -> list[str]:
        keys: list[str] = []
        strip = len(self._namespace)
        async for raw in self._client.scan_iter(match=f"{_glob_escape(self._key(prefix))}*", count=500):
            name = raw if isinstance(raw, str) else raw.decode("utf-8")
            keys.append(name[strip:])
        keys.sort()
        return keys[:limit] if limit is not None else keys

    async def get_with_etag(self, key: str) -> tuple[str | None, str | None]:
        value = await self.get(key)
        return value, (_etag(value) if value is not None else None)

    async def set_if_match(self, key: str, value: str, etag: str | None) -> bool:
        name = self._key(key)
        async with self._client.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(name)
                current = await pipe.get(name)
                current_etag = _etag(current) if current is not None else None
                if current_etag != etag:
                    await pipe.unwatch()
                    return False
                pipe.multi()
                pipe.set(name, value)
                await pipe.execute()
            except WatchError:
                _logger.debug("Conditional write on %s lost a race", key)
                return False
        return True

    async def close(self) -> None:
        await self._client.aclose()
