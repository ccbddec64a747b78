from collections.abc import Iterator
from contextlib import contextmanager

from redis.asyncio import Redis, from_url
from redis.exceptions import RedisError

from quotagate.core.errors import StoreError
from quotagate.core.storage.base import CounterStore


@contextmanager
def _translate_errors(command: str, key: str) -> Iterator[None]:
    try:
        yield
    except RedisError as exc:
        raise StoreError(f"Redis {command} failed for {key!r}: {exc}") from exc


class RedisStore(CounterStore):
    """
    Counter store backed by a Redis server.

    INCR provides the atomicity. The expiry is attached with a second call
    only when INCR returns 1, so later increments in the same window do not
    push the deadline out. All TTLs are sent in milliseconds.
    """

    def __init__(self, redis: Redis, prefix: str = "ratelimit"):
        self._redis = redis
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "ratelimit") -> "RedisStore":
        client = from_url(url, encoding="utf-8", decode_responses=True)
        return cls(client, prefix=prefix)

    def _full_key(self, key: str) -> str:
        return f"{self._prefix}:{key}" if self._prefix else key

    async def get(self, key: str) -> int | None:
        with _translate_errors("GET", key):
            value = await self._redis.get(self._full_key(key))
        return int(value) if value is not None else None

    async def set(self, key: str, value: int, ttl: int) -> None:
        full_key = self._full_key(key)
        if ttl <= 0:
            with _translate_errors("DEL", key):
                await self._redis.delete(full_key)
            return
        with _translate_errors("SET", key):
            await self._redis.set(full_key, int(value), px=ttl)

    async def increment(self, key: str, ttl: int) -> int:
        full_key = self._full_key(key)
        with _translate_errors("INCR", key):
            value = int(await self._redis.incr(full_key))

        if ttl <= 0:
            with _translate_errors("DEL", key):
                await self._redis.delete(full_key)
        elif value == 1:
            with _translate_errors("PEXPIRE", key):
                await self._redis.pexpire(full_key, ttl)

        return value

    async def close(self) -> None:
        await self._redis.aclose()
