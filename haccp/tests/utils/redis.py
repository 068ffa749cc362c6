from __future__ import annotations

from redis.exceptions import ConnectionError as RedisConnectionError


class FakeRedis:
    """In-memory stand-in for the few string commands the archive lock issues.

    Expiry is not simulated; tests that need a lapsed lock overwrite the key.
    """

    def __init__(self, *, available: bool = True) -> None:
        self.available = available
        self.values: dict[str, str] = {}
        self.closed = False

    def _check(self) -> None:
        if not self.available:
            raise RedisConnectionError("redis unavailable")

    async def set(self, name: str, value: str, *, nx: bool = False, ex: int | None = None) -> bool | None:
        self._check()
        if nx and name in self.values:
            return None
        self.values[name] = value
        return True

    async def get(self, name: str) -> str | None:
        self._check()
        return self.values.get(name)

    async def delete(self, name: str) -> int:
        self._check()
        return 1 if self.values.pop(name, None) is not None else 0

    async def aclose(self) -> None:
        self.closed = True
