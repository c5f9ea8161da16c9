"""Dependency resolver: the bounded worker queue that builds the tree.

``Shrinkwrap.resolve`` seeds a queue with the root manifest's dependencies
and drains it with at most ``limit`` registry lookups in flight. Every
distinct ``name@range`` is looked up once per resolution: a key that is
already queued or in flight absorbs the new requester, a key that is
already resolved gains a dependent (and is re-optimized) without touching
the network.

Lookups run concurrently but their results are committed in dispatch
order, so the shape of the final tree does not depend on which registry
response happens to arrive first.
"""

from __future__ import annotations

import asyncio
import collections
import logging
from dataclasses import dataclass, field
from typing import Any, Deque, Dict, List, NamedTuple, Optional, Set, Tuple

from constants import Constants
from common.errors import (
    InvalidManifestError,
    RegistryError,
    RequestTimeoutError,
    ResolutionCancelledError,
    ShrinkwrapError,
    UnsatisfiableRangeError,
)
from common.logging_utils import Timer, extra_context, is_debug_enabled
from registry.npm.client import RegistryClient
from resolver.cache import CacheEntry, ResolutionCache
from resolver.config import ResolverConfig
from resolver.dedupe import dedupe
from resolver.module import Module
from resolver.optimizer import TreeOptimizer
from resolver.tree import ROOT_ID, DependencyTree
from versioning.models import Manifest, PackageSpec, Release, private_key

logger = logging.getLogger(__name__)


class Resolution(NamedTuple):
    """Outcome of one resolution: the tree and the non-fatal errors."""

    tree: DependencyTree
    errors: List[ShrinkwrapError]


@dataclass
class _Session:
    """State of one ``resolve`` call."""

    tree: DependencyTree
    errors: List[ShrinkwrapError] = field(default_factory=list)
    todo: Deque[PackageSpec] = field(default_factory=collections.deque)
    queued: Dict[str, PackageSpec] = field(default_factory=dict)
    inflight: Dict[str, PackageSpec] = field(default_factory=dict)
    failed: Dict[str, PackageSpec] = field(default_factory=dict)
    reservations: Dict[Tuple[str, str], Set[str]] = field(default_factory=dict)
    optimizer: Optional[TreeOptimizer] = None

    def reserve(self, spec: PackageSpec, parents: List[str]) -> None:
        for parent in parents:
            self.reservations.setdefault((parent, spec.name), set()).add(spec.id)

    def release(self, spec: PackageSpec) -> None:
        for parent in spec.parents:
            keys = self.reservations.get((parent, spec.name))
            if keys is not None:
                keys.discard(spec.id)
                if not keys:
                    del self.reservations[(parent, spec.name)]

    def reserved(self, node_id: str, name: str) -> Set[str]:
        return self.reservations.get((node_id, name), set())

    def dispatch(self) -> PackageSpec:
        spec = self.todo.popleft()
        del self.queued[spec.id]
        self.inflight[spec.id] = spec
        return spec

    def settle(self, spec: PackageSpec) -> None:
        self.inflight.pop(spec.id, None)
        self.release(spec)


class Shrinkwrap:
    """Resolve a package's full dependency tree against an npm registry.

    Configuration (registry, production, limit, optimize, timeouts) is
    passed in explicitly through ``ResolverConfig``.
    """

    def __init__(
        self,
        config: Optional[ResolverConfig] = None,
        client: Optional[RegistryClient] = None,
        cache: Optional[ResolutionCache] = None,
    ):
        """Initialize the resolver.

        Args:
            config: ``ResolverConfig``; defaults are used when omitted.
            client: Registry client; one is built from ``config.registry``
                when omitted.
            cache: Shared cache kept across ``resolve`` calls. Without one
                the resolver owns a cache that is cleared after every call.
        """
        if config is None:
            config = ResolverConfig()
        self.config = config
        self.production = bool(config.production)
        self.limit = int(config.limit)
        self.optimize = bool(config.optimize)
        self.lookup_timeout = config.lookup_timeout
        self.client = client if client is not None else RegistryClient(
            config.registry, timeout=config.timeout, mirrors=config.mirrors
        )
        self._shared_cache = cache is not None
        self.cache: Optional[ResolutionCache] = cache if cache is not None else ResolutionCache()

    async def get(self, name: str, range_: str = Constants.DEFAULT_RANGE, **kwargs: Any) -> Resolution:
        """Resolve the tree of a package fetched from the registry.

        Failures fetching the root package are fatal and propagate.

        Raises:
            RegistryError: the root package could not be fetched.
            UnsatisfiableRangeError: no release of the root matches ``range_``.
        """
        self._ensure_alive()
        try:
            release = await self.client.release(name, range_)
        except RegistryError:
            await self.client.close()
            raise
        if release is None:
            await self.client.close()
            raise UnsatisfiableRangeError(name, range_)
        logger.debug("successfully resolved %s@%s", name, range_)
        return await self.resolve(release.manifest, **kwargs)

    async def resolve(
        self,
        source: Any,
        limit: Optional[int] = None,
        cancel: Optional[asyncio.Event] = None,
    ) -> Resolution:
        """Resolve every dependency of ``source``.

        Args:
            source: Root ``Manifest``, package.json-like mapping, or a list
                whose first element is one of those.
            limit: Concurrency cap for this call; defaults to the configured one.
            cancel: Set it to stop dispatching; the partial tree is returned
                with a ``ResolutionCancelledError`` appended to the errors.

        Returns:
            ``Resolution(tree, errors)``; errors of individual dependencies
            never abort the resolution.

        Raises:
            InvalidManifestError: the root manifest is unusable.
        """
        self._ensure_alive()
        manifest = self._root_manifest(source)
        limit = self.limit if limit is None else int(limit)
        if limit < 1:
            raise ValueError("Concurrency limit must be at least 1")

        session = _Session(tree=DependencyTree(manifest.name, manifest.version))
        if self.optimize:
            session.optimizer = TreeOptimizer(session.tree, session.reserved)

        with Timer() as timer:
            try:
                self._enqueue(session, manifest, session.tree.root)
                await self._drain(session, limit, cancel)
            finally:
                await self.client.close()
                if not self._shared_cache and self.cache is not None:
                    self.cache.clear()

        session.tree.freeze()
        logger.info(
            "Resolved %s@%s: %s modules, %s errors",
            manifest.name,
            manifest.version,
            len(session.tree),
            len(session.errors),
            extra=extra_context(
                event="resolve_complete",
                component="resolver",
                modules=len(session.tree),
                errors=len(session.errors),
                duration_ms=timer.duration_ms(),
            ),
        )
        return Resolution(session.tree, session.errors)

    def destroy(self) -> bool:
        """Drop the cache and the client; safe to call repeatedly."""
        if self.cache is not None:
            self.cache.clear()
        self.cache = None
        self.client = None
        return True

    def _ensure_alive(self) -> None:
        if self.client is None or self.cache is None:
            raise RuntimeError("Shrinkwrap instance has been destroyed")

    @staticmethod
    def _root_manifest(source: Any) -> Manifest:
        if isinstance(source, (list, tuple)):
            if not source:
                raise InvalidManifestError("Empty list given as root manifest")
            source = source[0]
        if isinstance(source, Manifest):
            return source
        return Manifest.from_dict(source, strict=True)

    def _enqueue(self, session: _Session, manifest: Manifest, parent: Module) -> None:
        """Queue every dependency declared by ``manifest`` on behalf of ``parent``."""
        if manifest.is_empty():
            return
        manifest = dedupe(manifest, production=self.production)
        for _group, name, range_ in manifest.iter_dependencies(production=self.production):
            self._push(session, PackageSpec(name=name, range=range_, parents=[parent.id], depth=parent.depth + 1))

    def _push(self, session: _Session, spec: PackageSpec) -> None:
        """Queue ``spec`` unless its key is already queued, in flight or resolved."""
        key = spec.id
        pending = session.queued.get(key) or session.inflight.get(key)
        if pending is not None:
            session.reserve(pending, pending.merge(spec.parents))
            return

        failed = session.failed.get(key)
        if failed is not None:
            failed.merge(spec.parents)
            return

        module = session.tree.get(key)
        if module is not None:
            added = [parent for parent in spec.parents if module.add_dependent(parent)]
            if not added:
                return
            for parent in added:
                self._link(session, module, parent)
            if session.optimizer is not None:
                session.optimizer.optimize(module)
            return

        session.queued[key] = spec
        session.todo.append(spec)
        session.reserve(spec, spec.parents)

    def _link(self, session: _Session, module: Module, parent_id: str) -> None:
        """Place ``module`` under ``parent_id`` unless that would form a cycle.

        A requester sitting below ``module`` finds it by walking up, unless a
        node in between holds another version of the name; that requester
        gets a private copy instead.
        """
        parent = session.tree.node(parent_id)
        if parent is None or parent.id == module.id:
            return
        if any(ancestor.id == module.id for ancestor in session.tree.ancestors(parent.id)):
            holder = session.tree.holder(parent.id, module.name)
            if holder is not None and holder.version == module.version:
                return
            self._place_copy(session, module, parent)
            return
        parent.dependencies.setdefault(module.name, module.id)

    def _place_copy(self, session: _Session, module: Module, parent: Module) -> None:
        """Nest a private copy of ``module`` directly under ``parent``."""
        if module.name in parent.dependencies:
            return
        private = module.clone(
            id=private_key(module.id, parent.id),
            depth=parent.depth + 1,
            parent=parent.id,
            dependents=[parent.id],
        )
        session.tree.add(private)
        parent.dependencies[module.name] = private.id
        logger.debug(
            "Placed a private copy of %s under %s",
            module.id,
            parent.id,
            extra=extra_context(event="link", component="resolver", outcome="private_copy", target=module.id),
        )

    async def _drain(self, session: _Session, limit: int, cancel: Optional[asyncio.Event]) -> None:
        """Run lookups until the queue is empty and nothing is in flight."""
        window: Deque[Tuple[PackageSpec, "asyncio.Future[Optional[CacheEntry]]"]] = collections.deque()
        waiter = asyncio.ensure_future(cancel.wait()) if cancel is not None else None
        try:
            while session.todo or window:
                if cancel is not None and cancel.is_set():
                    self._abort(session, window)
                    return

                while session.todo and len(window) < limit:
                    spec = session.dispatch()
                    if is_debug_enabled(logger):
                        logger.debug("processing %s. %s left to process", spec.id, len(session.todo))
                    window.append((spec, asyncio.ensure_future(self._lookup(spec))))

                spec, task = window[0]
                if waiter is not None:
                    await asyncio.wait((task, waiter), return_when=asyncio.FIRST_COMPLETED)
                    if not task.done():
                        continue
                else:
                    await asyncio.wait((task,))

                window.popleft()
                session.settle(spec)
                try:
                    entry = task.result()
                except RegistryError as exc:
                    self._fail(session, spec, exc.for_spec(spec))
                    continue
                if entry is None:
                    self._fail(session, spec, UnsatisfiableRangeError(spec.name, spec.range, spec=spec))
                    continue
                self._commit(session, spec, entry)
        finally:
            if waiter is not None:
                waiter.cancel()
            for _spec, task in window:
                task.cancel()

    def _abort(self, session: _Session, window: Deque) -> None:
        """Stop after a cancellation request, keeping what was committed."""
        for spec, task in window:
            task.cancel()
            session.settle(spec)
        window.clear()
        session.todo.clear()
        session.queued.clear()
        if self.cache is not None:
            self.cache.cancel_pending()
        logger.warning("Resolution cancelled; returning a partial tree")
        session.errors.append(ResolutionCancelledError("Resolution cancelled before the queue drained"))

    async def _lookup(self, spec: PackageSpec) -> Optional[CacheEntry]:
        """Resolve one key to a cache entry, honouring the lookup deadline."""
        if self.lookup_timeout is None:
            return await self._release(spec.name, spec.range)
        try:
            return await asyncio.wait_for(self._release(spec.name, spec.range), timeout=self.lookup_timeout)
        except asyncio.TimeoutError as exc:
            raise RequestTimeoutError(
                spec.name, f"Lookup of {spec.id} exceeded {self.lookup_timeout}s"
            ) from exc

    async def _release(self, name: str, range_: str) -> Optional[CacheEntry]:
        """Cached release lookup; one registry ``release`` call per uncached key."""
        key = f"{name}@{range_}"
        entry = self.cache.get(key)
        if entry is not None:
            return entry

        releases = await self.cache.releases(name, self.client.releases)
        release: Optional[Release] = await self.client.release(name, range_, releases=releases)
        if release is None:
            logger.debug("Couldn't find the matching version %s in the returned releases for %s", range_, name)
            return None

        entry = CacheEntry(module=Module.from_release(release, range_), manifest=release.manifest)
        self.cache.set(key, entry)
        return entry

    def _fail(self, session: _Session, spec: PackageSpec, error: ShrinkwrapError) -> None:
        session.failed[spec.id] = spec
        session.errors.append(error)
        logger.warning(
            "failed to resolve %s: %s",
            spec.id,
            error,
            extra=extra_context(event="resolve_error", component="resolver", target=spec.id, error=type(error).__name__),
        )

    def _commit(self, session: _Session, spec: PackageSpec, entry: CacheEntry) -> None:
        """Insert the resolved module, link it under its requesters, queue its dependencies."""
        placement = session.tree.node(spec.parents[0]) if spec.parents else session.tree.root
        module = entry.module.clone(
            dependents=[],
            depth=placement.depth + 1 if placement is not None else spec.depth,
            parent=placement.id if placement is not None else ROOT_ID,
        )
        for parent in spec.parents:
            module.add_dependent(parent)
        session.tree.add(module)
        for parent in module.dependents:
            self._link(session, module, parent)

        if session.optimizer is not None and len(module.dependents) > 1:
            session.optimizer.optimize(module)

        self._enqueue(session, entry.manifest, module)
