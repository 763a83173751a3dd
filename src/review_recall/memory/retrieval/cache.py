# Copyright 2024-2025 Amiable Development
# SPDX-License-Identifier: Apache-2.0

"""Fail-open TTL cache for retrieval lookups.

Caches search and embedding lookups keyed by normalized request
parameters:
- Key: compact key-sorted JSON of (repo, search_type, query, extra)
- Lazy TTL expiration on read
- Coalescing of concurrent identical loads onto one in-flight future
- Pluggable value and in-flight stores

The cache never causes a caller-visible failure. Every store operation is
guarded; failures are reported through `on_error` and the cache degrades
to calling the loader directly.
"""

import asyncio
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

ErrorCallback = Callable[[str, str, Exception], None]


class KeyValueStore(Protocol):
    """Minimal mapping interface backing the cache."""

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def items(self) -> Iterable[tuple[str, Any]]:
        ...


class DictStore:
    """Thread-safe in-memory KeyValueStore."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}
        self._lock = threading.RLock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def items(self) -> list[tuple[str, Any]]:
        with self._lock:
            return list(self._data.items())

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)


@dataclass
class CacheEntry:
    """A cached value with its absolute expiry time."""

    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now


def normalize_query(query: str) -> str:
    """Trim, lower-case and collapse whitespace."""
    return " ".join(query.split()).lower()


def _stable(value: Any) -> Any:
    """Reduce a value to a JSON form that serializes identically every time."""
    if isinstance(value, dict):
        return {str(k): _stable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_stable(v) for v in value]
    if isinstance(value, (set, frozenset)):
        items = [_stable(v) for v in value]
        return sorted(items, key=lambda v: json.dumps(v, sort_keys=True))
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return str(value)


def build_search_cache_key(
    repo: str,
    search_type: str,
    query: str,
    extra: Optional[dict[str, Any]] = None,
) -> str:
    """Build a cache key that is stable across incidental request differences.

    Repository and search type are trimmed and case-folded, the query is
    whitespace-normalized, and `extra` is serialized with sorted keys at
    every nesting level. Mapping keys become strings and sets are sorted.

    Args:
        repo: Repository name (owner/name).
        search_type: Kind of lookup (e.g. "embedding").
        query: Free-text query.
        extra: Additional JSON-serializable parameters.

    Returns:
        Compact JSON cache key.
    """
    normalized = {
        "repo": repo.strip().lower(),
        "search_type": search_type.strip().lower(),
        "query": normalize_query(query),
        "extra": _stable(extra or {}),
    }
    return json.dumps(normalized, sort_keys=True, separators=(",", ":"))


class SearchCache:
    """TTL cache with in-flight load coalescing.

    Example:
        >>> cache = SearchCache(ttl_seconds=60)
        >>> key = build_search_cache_key("acme/api", "embedding", "fix auth")
        >>> value = await cache.get_or_load(key, load_embedding)
    """

    DEFAULT_TTL_SECONDS = 600.0  # 10 minutes

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        store: Optional[KeyValueStore] = None,
        in_flight_store: Optional[KeyValueStore] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        """Initialize the cache.

        Args:
            ttl_seconds: Default time-to-live for entries.
            clock: Time source in seconds.
            store: Value store (in-memory if not provided).
            in_flight_store: Store for pending loads (in-memory if not provided).
            on_error: Called with (operation, key, error) on store failures.
        """
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")

        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._store: KeyValueStore = store if store is not None else DictStore()
        self._in_flight: KeyValueStore = (
            in_flight_store if in_flight_store is not None else DictStore()
        )
        self._on_error = on_error

    def _report(self, operation: str, key: str, error: Exception) -> None:
        logger.warning(f"Search cache {operation} failed (fail-open): {error}")
        if self._on_error is None:
            return
        try:
            self._on_error(operation, key, error)
        except Exception as callback_error:
            logger.debug(f"Search cache error callback raised: {callback_error}")

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None on miss or expiry."""
        try:
            entry = self._store.get(key)
            if entry is None:
                return None
            expired = entry.is_expired(self._clock())
            value = entry.value
        except Exception as e:
            self._report("get", key, e)
            return None

        if expired:
            try:
                self._store.delete(key)
            except Exception as e:
                self._report("delete", key, e)
            return None

        return value

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> None:
        """Store a value for ttl_seconds (the cache default if not given)."""
        ttl = ttl_seconds if ttl_seconds is not None else self.ttl_seconds
        try:
            self._store.set(key, CacheEntry(value=value, expires_at=self._clock() + ttl))
        except Exception as e:
            self._report("set", key, e)

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[T]],
        ttl_seconds: Optional[float] = None,
    ) -> T:
        """Return the cached value or load it once for all concurrent callers.

        Callers arriving while a load for the same key is outstanding await
        that same load. Loader exceptions reach every waiter and nothing is
        cached. A None result is returned but not cached.

        Args:
            key: Cache key.
            loader: Zero-argument coroutine function producing the value.
            ttl_seconds: TTL override for the loaded value.

        Returns:
            The cached or freshly loaded value.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        try:
            pending = self._in_flight.get(key)
        except Exception as e:
            self._report("in_flight_get", key, e)
            return await self._load(key, loader, ttl_seconds, coalesced=False)

        if pending is not None:
            return await asyncio.shield(pending)

        task = asyncio.ensure_future(self._load(key, loader, ttl_seconds))
        try:
            self._in_flight.set(key, task)
        except Exception as e:
            self._report("in_flight_set", key, e)

        return await asyncio.shield(task)

    async def _load(
        self,
        key: str,
        loader: Callable[[], Awaitable[T]],
        ttl_seconds: Optional[float],
        coalesced: bool = True,
    ) -> T:
        try:
            value = await loader()
            if value is not None:
                self.set(key, value, ttl_seconds)
            return value
        finally:
            if coalesced:
                self._release(key)

    def _release(self, key: str) -> None:
        try:
            self._in_flight.delete(key)
        except Exception as e:
            self._report("in_flight_delete", key, e)

    def purge_expired(self) -> int:
        """Evict every expired entry.

        Returns:
            Number of entries evicted (0 if the store cannot be listed).
        """
        now = self._clock()
        try:
            entries = list(self._store.items())
        except Exception as e:
            self._report("items", "*", e)
            return 0

        purged = 0
        for key, entry in entries:
            try:
                expired = entry.is_expired(now)
            except Exception as e:
                self._report("items", key, e)
                continue
            if not expired:
                continue
            try:
                self._store.delete(key)
                purged += 1
            except Exception as e:
                self._report("delete", key, e)

        if purged:
            logger.debug(f"Purged {purged} expired search cache entries")
        return purged
