"""Per-user permission cache."""

import asyncio
import time
from collections.abc import Callable
from typing import Protocol

from authz.core.settings import PERMISSION_CACHE_TTL_DEFAULT


class PermissionCache(Protocol):
    """Cache of resolved permission names keyed by user id."""

    async def get(self, user_id: str) -> list[str] | None: ...

    async def set(self, user_id: str, permissions: list[str], ttl: int) -> None: ...

    async def invalidate(self, user_id: str) -> None: ...


class InMemoryPermissionCache:
    """Process-local ``PermissionCache`` with per-entry TTL."""

    def __init__(
        self,
        default_ttl: int = PERMISSION_CACHE_TTL_DEFAULT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, tuple[list[str], float]] = {}
        self._lock = asyncio.Lock()

    async def get(self, user_id: str) -> list[str] | None:
        """Return cached permissions, or None when absent or expired."""
        async with self._lock:
            entry = self._entries.get(user_id)
            if entry is None:
                return None
            permissions, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[user_id]
                return None
            return list(permissions)

    def __len__(self) -> int:
        return len(self._entries)

    def _prune(self, now: float) -> None:
        expired = [uid for uid, (_, expires_at) in self._entries.items() if now >= expires_at]
        for uid in expired:
            del self._entries[uid]

    async def set(self, user_id: str, permissions: list[str], ttl: int | None = None) -> None:
        """Store permissions for ``ttl`` seconds, dropping any expired entries."""
        lifetime = self._default_ttl if ttl is None else ttl
        async with self._lock:
            now = self._clock()
            self._prune(now)
            self._entries[user_id] = (list(permissions), now + lifetime)

    async def invalidate(self, user_id: str) -> None:
        """Drop the entry for ``user_id`` if present."""
        async with self._lock:
            self._entries.pop(user_id, None)

    async def clear(self) -> None:
        """Drop every entry."""
        async with self._lock:
            self._entries.clear()
