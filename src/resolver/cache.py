"""Resolution cache: release sets per name and resolved modules per name@range."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from common.logging_utils import extra_context, is_debug_enabled
from resolver.module import Module
from versioning.models import Manifest, ReleaseSet

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """A resolved name@range: the prototype module and the release's manifest."""

    module: Module
    manifest: Manifest


class ResolutionCache:
    """Cache scoped to a resolver instance.

    Avoids repeat registry work within (and, when shared, across)
    resolutions: whole release sets are kept per package name and resolved
    releases per ``name@range`` key. Concurrent requests for a release set
    that is still being fetched share the one in-flight fetch.
    """

    def __init__(self) -> None:
        self._releases: Dict[str, ReleaseSet] = {}
        self._entries: Dict[str, CacheEntry] = {}
        self._pending: Dict[str, "asyncio.Future[ReleaseSet]"] = {}
        self._hits = 0
        self._misses = 0

    def __contains__(self, key: str) -> bool:
        return key in self._entries or key in self._releases

    def __len__(self) -> int:
        return len(self._entries) + len(self._releases)

    def get(self, key: str) -> Optional[CacheEntry]:
        """Get a resolved entry for ``name@range``."""
        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None
        self._hits += 1
        if is_debug_enabled(logger):
            logger.debug(
                "CACHEHIT: Retrieving `%s` from cache",
                key,
                extra=extra_context(event="cache_hit", component="resolution_cache", target=key),
            )
        return entry

    def set(self, key: str, entry: CacheEntry) -> None:
        """Cache a resolved entry for ``name@range``."""
        self._entries[key] = entry

    async def releases(
        self, name: str, fetch: Callable[[str], Awaitable[ReleaseSet]]
    ) -> ReleaseSet:
        """Return the release set of ``name``, fetching it at most once at a time.

        Args:
            name: Package name.
            fetch: Coroutine function performing the actual registry call.

        Raises:
            Whatever ``fetch`` raises; failures are not cached, every waiter
            of the failed fetch receives the error.
        """
        cached = self._releases.get(name)
        if cached is not None:
            self._hits += 1
            if is_debug_enabled(logger):
                logger.debug(
                    "CACHEHIT: Retrieving `%s` from cache",
                    name,
                    extra=extra_context(event="cache_hit", component="resolution_cache", target=name),
                )
            return cached

        pending = self._pending.get(name)
        if pending is None:
            self._misses += 1
            pending = asyncio.ensure_future(fetch(name))
            self._pending[name] = pending
            pending.add_done_callback(lambda future: self._settle(name, future))
        # Shielded so one waiter timing out does not cancel the shared fetch.
        return await asyncio.shield(pending)

    def _settle(self, name: str, future: "asyncio.Future[ReleaseSet]") -> None:
        if self._pending.get(name) is future:
            del self._pending[name]
        if future.cancelled():
            return
        if future.exception() is None:
            self._releases[name] = future.result()

    def cancel_pending(self) -> None:
        """Cancel in-flight fetches (used when a resolution is aborted)."""
        for future in list(self._pending.values()):
            future.cancel()
        self._pending.clear()

    def clear(self) -> None:
        """Clear all cached entries."""
        self.cancel_pending()
        self._releases.clear()
        self._entries.clear()

    def stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        return {
            "releases": len(self._releases),
            "entries": len(self._entries),
            "pending": len(self._pending),
            "hits": self._hits,
            "misses": self._misses,
        }
