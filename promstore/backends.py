from __future__ import annotations

import fnmatch
import threading
from typing import Any, Mapping, Optional, Protocol

import redis


class MetricsStore(Protocol):
    """
    Hash-of-hashes store shared by every writer and scraper.

    `keys()` returns physical keys, i.e. including `key_prefix`; every other
    primitive takes logical keys and applies the prefix itself.
    """

    key_prefix: str

    def keys(self, pattern: str) -> list[str]: ...

    def hgetall(self, key: str) -> dict[str, str]: ...

    def hincrby(self, key: str, field: str, amount: int) -> int:
        """Raises NotAnIntegerError when the field holds a non-integer."""
        ...

    def hincrbyfloat(self, key: str, field: str, amount: float) -> float: ...

    def hset(self, key: str, mapping: Mapping[str, Any]) -> None: ...

    def delete(self, *keys: str) -> int: ...


class NotAnIntegerError(ValueError):
    """HINCRBY hit a field that holds a float or a non-number."""


def format_number(x: float) -> str:
    # Same trimmed representation Redis uses for HINCRBYFLOAT results.
    x = float(x)
    if x.is_integer() and abs(x) < 1e17:
        return str(int(x))
    return repr(x)


class InMemoryStore:
    """
    Process-local store for tests and single-process setups.

    A single lock makes every primitive atomic, so concurrent writers behave
    like they would against Redis.
    """

    def __init__(self, *, key_prefix: str = "") -> None:
        self.key_prefix = key_prefix
        self._lock = threading.Lock()
        self._data: dict[str, dict[str, str]] = {}

    def _k(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def keys(self, pattern: str) -> list[str]:
        full = self._k(pattern)
        with self._lock:
            return [k for k in self._data if fnmatch.fnmatchcase(k, full)]

    def hgetall(self, key: str) -> dict[str, str]:
        with self._lock:
            return dict(self._data.get(self._k(key), {}))

    def hincrby(self, key: str, field: str, amount: int) -> int:
        with self._lock:
            h = self._data.setdefault(self._k(key), {})
            raw = h.get(field, "0")
            try:
                current = int(raw)
            except ValueError:
                raise NotAnIntegerError("hash value is not an integer") from None
            current += int(amount)
            h[field] = str(current)
            return current

    def hincrbyfloat(self, key: str, field: str, amount: float) -> float:
        with self._lock:
            h = self._data.setdefault(self._k(key), {})
            raw = h.get(field, "0")
            try:
                current = float(raw)
            except ValueError:
                raise ValueError("hash value is not a float") from None
            current += float(amount)
            h[field] = format_number(current)
            return current

    def hset(self, key: str, mapping: Mapping[str, Any]) -> None:
        if not mapping:
            return
        with self._lock:
            h = self._data.setdefault(self._k(key), {})
            for f, v in mapping.items():
                h[str(f)] = str(v)

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        removed = 0
        with self._lock:
            for key in keys:
                if self._data.pop(self._k(key), None) is not None:
                    removed += 1
        return removed

    def raw_keys(self) -> list[str]:
        with self._lock:
            return sorted(self._data)


def _decode(v: Any) -> str:
    if isinstance(v, bytes):
        return v.decode("utf-8")
    return str(v)


class RedisStore:
    """
    redis-py backed store.

    Connection failures propagate as redis-py raises them; retries belong to
    the client's own configuration.
    """

    def __init__(self, client: "redis.Redis", *, key_prefix: str = "") -> None:
        self._client = client
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, *, key_prefix: str = "", **kwargs: Any) -> "RedisStore":
        client = redis.Redis.from_url(url, decode_responses=True, **kwargs)
        return cls(client, key_prefix=key_prefix)

    @property
    def client(self) -> "redis.Redis":
        return self._client

    def _k(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def keys(self, pattern: str) -> list[str]:
        return [_decode(k) for k in self._client.scan_iter(match=self._k(pattern))]

    def hgetall(self, key: str) -> dict[str, str]:
        raw = self._client.hgetall(self._k(key)) or {}
        return {_decode(f): _decode(v) for f, v in raw.items()}

    def hincrby(self, key: str, field: str, amount: int) -> int:
        try:
            return int(self._client.hincrby(self._k(key), field, int(amount)))
        except redis.exceptions.ResponseError as e:
            if "not an integer" in str(e):
                raise NotAnIntegerError(str(e)) from e
            raise

    def hincrbyfloat(self, key: str, field: str, amount: float) -> float:
        return float(self._client.hincrbyfloat(self._k(key), field, float(amount)))

    def hset(self, key: str, mapping: Mapping[str, Any]) -> None:
        if not mapping:
            return
        self._client.hset(self._k(key), mapping={str(f): str(v) for f, v in mapping.items()})

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return int(self._client.delete(*(self._k(k) for k in keys)))

    def close(self) -> None:
        self._client.close()


def build_store(
    storage: str,
    *,
    redis_url: str = "",
    key_prefix: str = "",
    socket_timeout_s: Optional[float] = None,
) -> MetricsStore:
    if storage == "memory":
        return InMemoryStore(key_prefix=key_prefix)
    if storage == "redis":
        return RedisStore.from_url(
            redis_url,
            key_prefix=key_prefix,
            socket_timeout=socket_timeout_s,
            socket_connect_timeout=socket_timeout_s,
        )
    raise ValueError(f"unknown storage backend: {storage!r}")
