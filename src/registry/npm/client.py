"""NPM registry client: package documents, release sets and range lookups.

The client only talks to the registry and normalizes what it gets back.
Caching and request coalescing belong to the resolver (``resolver.cache``).
"""

from __future__ import annotations

import copy
import logging
import urllib.parse
from typing import Any, Dict, List, Optional

import aiohttp

from constants import Constants
from common.errors import HTTPStatusError, MalformedDataError, NetworkError, RegistryError
from common.http_client import get_json
from common.logging_utils import extra_context, is_debug_enabled, safe_url
from registry.license import extract_license
from versioning import semver
from versioning.models import Manifest, Release, ReleaseSet

logger = logging.getLogger(__name__)


def _release_from_version(
    name: str, version: str, data: Any, times: Dict[str, Any], latest: str
) -> Release:
    """Map one entry of a document's ``versions`` to a ``Release``."""
    if not isinstance(data, dict):
        data = {}
    dist = data.get("dist") if isinstance(data.get("dist"), dict) else {}
    author = data.get("_npmUser") if isinstance(data.get("_npmUser"), dict) else {}
    released = times.get(version)

    manifest = Manifest.from_dict(data, strict=False)
    manifest.name = manifest.name or name
    manifest.version = manifest.version or version

    return Release(
        name=manifest.name,
        version=manifest.version,
        released=released if isinstance(released, str) and released else Constants.EPOCH,
        license=extract_license(data),
        shasum=dist.get("shasum") or "",
        author=author,
        latest=latest,
        manifest=manifest,
    )


def parse_releases(name: str, document: Any) -> ReleaseSet:
    """Normalize a registry document into a ``ReleaseSet``.

    Every published version becomes a release. Every dist-tag becomes an
    extra key (the tag name) holding its own deep copy of the tagged
    version's release with ``tag`` set, so annotating a tag never touches
    the shared version record.

    Raises:
        MalformedDataError: the document is not an object or has no ``versions``.
    """
    if not isinstance(document, dict):
        raise MalformedDataError(name, f"Registry document for {name} is not an object")
    versions = document.get("versions")
    if not isinstance(versions, dict):
        raise MalformedDataError(name, f"Registry document for {name} lacks a 'versions' field")
    times = document.get("time") if isinstance(document.get("time"), dict) else {}

    keys = list(versions.keys())
    newest = semver.latest(keys)
    result = ReleaseSet(name=name, versions=keys, latest=newest)
    for version, data in versions.items():
        result.releases[version] = _release_from_version(name, version, data, times, newest)

    dist_tags = document.get("dist-tags")
    if isinstance(dist_tags, dict):
        for tag, version in dist_tags.items():
            tagged = result.releases.get(version) if isinstance(version, str) else None
            if tagged is None:
                logger.debug("Skipping dist-tag %s of %s: unknown version %r", tag, name, version)
                continue
            release = copy.deepcopy(tagged)
            release.tag = tag
            result.releases[tag] = release
            result.tags[tag] = version

    return result


def select_release(releases: ReleaseSet, range_: str) -> Optional[Release]:
    """Pick the release for ``range_`` from a release set.

    An exact key (version or dist-tag name) wins; otherwise the highest
    version satisfying the range. None when nothing matches.
    """
    exact = releases.get(range_)
    if exact is not None:
        return exact
    if not semver.valid_range(range_):
        logger.debug("%s is neither a version, a dist-tag nor a range of %s", range_, releases.name)
        return None

    version = semver.max_satisfying(releases.versions, range_)
    if version is None:
        logger.debug(
            "Couldn't find a version of %s matching %s; only found: %s",
            releases.name,
            range_,
            ", ".join(releases.versions),
        )
        return None
    return releases.get(version)


def _base_url(registry: str) -> str:
    return registry if registry.endswith("/") else registry + "/"


class RegistryClient:
    """Async client for a CouchDB-style npm registry."""

    def __init__(
        self,
        registry: str = Constants.REGISTRY_URL_NPM,
        timeout: int = Constants.REQUEST_TIMEOUT,
        mirrors: Optional[List[str]] = None,
    ):
        """Initialize the registry client.

        Args:
            registry: Registry base URL.
            timeout: Per-request timeout in seconds.
            mirrors: Fallback registries, tried in order when the primary
                registry is unreachable or answers with a server error.
        """
        self.registry = _base_url(registry)
        self.mirrors = [_base_url(mirror) for mirror in (mirrors or []) if mirror]
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: Optional[aiohttp.ClientSession] = None

    async def start(self) -> aiohttp.ClientSession:
        """Start the HTTP session if needed and return it."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=self._timeout,
                headers={
                    "Accept": "application/json",
                    "User-Agent": Constants.USER_AGENT,
                },
            )
        return self._session

    async def close(self) -> None:
        """Close the HTTP session; safe to call repeatedly."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> "RegistryClient":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def package_url(self, name: str, registry: Optional[str] = None) -> str:
        """Document URL for ``name``; scoped names keep '@' and escape '/'."""
        return (registry or self.registry) + urllib.parse.quote(name, safe="@")

    async def fetch_document(self, name: str) -> Any:
        """Fetch the raw registry document for ``name``.

        Mirrors are tried in order after a transport failure or a 5xx answer.
        Any other failure is final.

        Raises:
            RegistryError: the last failure once no registry is left to try.
        """
        session = await self.start()
        registries = [self.registry] + self.mirrors
        last_error: Optional[RegistryError] = None
        for registry in registries:
            url = self.package_url(name, registry)
            if last_error is not None:
                logger.warning(
                    "Falling back to mirror for %s after: %s",
                    name,
                    last_error,
                    extra=extra_context(
                        event="registry_fallback",
                        component="registry_client",
                        package=name,
                        target=safe_url(url),
                    ),
                )
            elif is_debug_enabled(logger):
                logger.debug(
                    "Fetching package document",
                    extra=extra_context(
                        event="registry_fetch",
                        component="registry_client",
                        package=name,
                        target=safe_url(url),
                    ),
                )
            try:
                return await get_json(session, url, name=name, context="npm")
            except HTTPStatusError as exc:
                if exc.status_code < 500:
                    raise
                last_error = exc
            except NetworkError as exc:
                last_error = exc
        raise last_error

    async def releases(self, name: str) -> ReleaseSet:
        """All releases and dist-tags of ``name``."""
        document = await self.fetch_document(name)
        return parse_releases(name, document)

    async def release(
        self, name: str, range_: str, releases: Optional[ReleaseSet] = None
    ) -> Optional[Release]:
        """Resolve ``range_`` to one release of ``name``.

        Args:
            name: Package name.
            range_: Semver range, exact version or dist-tag.
            releases: Already known release set; fetched when omitted.

        Returns:
            The matching release, or None when no published version
            satisfies the range.
        """
        if releases is None:
            releases = await self.releases(name)
        return select_release(releases, range_)
