"""Process-local cache shared by all tenants, isolated by key prefix.

One ``cachetools.TTLCache`` backs every tenant; a :class:`ScopedCache`
view prefixes all keys so tenants never see each other's entries.

Key format: ``<prefix><key>``, e.g. ``tenant_acme:settings``.
"""

from __future__ import annotations

import threading
from typing import Any

from cachetools import TTLCache  # type: ignore[import-untyped]

_MISSING = object()


class TenantAwareCache:
    """Shared TTL cache store.

    Args:
        maxsize: Maximum number of entries across all tenants.
        ttl: Entry lifetime in seconds.
    """

    def __init__(self, maxsize: int = 10_000, ttl: int = 300) -> None:
        self._store: TTLCache[str, Any] = TTLCache(maxsize=maxsize, ttl=ttl)
        self._lock = threading.Lock()

    def scoped(self, prefix: str) -> ScopedCache:
        return ScopedCache(self, prefix)

    def _get(self, key: str, default: Any) -> Any:
        with self._lock:
            return self._store.get(key, default)

    def _set(self, key: str, value: Any) -> None:
        with self._lock:
            self._store[key] = value

    def _delete(self, key: str) -> bool:
        with self._lock:
            return self._store.pop(key, _MISSING) is not _MISSING

    def _flush(self, prefix: str) -> int:
        with self._lock:
            keys = [k for k in self._store if k.startswith(prefix)]
            for key in keys:
                del self._store[key]
            return len(keys)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


class ScopedCache:
    """A view of :class:`TenantAwareCache` restricted to one key prefix."""

    def __init__(self, store: TenantAwareCache, prefix: str) -> None:
        self._store = store
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def get(self, key: str, default: Any = None) -> Any:
        return self._store._get(self._key(key), default)

    def set(self, key: str, value: Any) -> None:
        self._store._set(self._key(key), value)

    def forget(self, key: str) -> bool:
        return self._store._delete(self._key(key))

    def flush(self) -> int:
        """Remove every entry under this prefix. The central scope flushes everything."""
        return self._store._flush(self.prefix)
