"""Data models for manifests, registry releases and resolution requests."""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple

from constants import Constants
from common.errors import InvalidManifestError


class DependencyGroup(Enum):
    """Manifest sections that declare dependencies, in scan order."""
    DEPENDENCIES = "dependencies"
    DEV_DEPENDENCIES = "devDependencies"
    PEER_DEPENDENCIES = "peerDependencies"
    OPTIONAL_DEPENDENCIES = "optionalDependencies"

    @property
    def attr(self) -> str:
        """Dataclass field holding this group on ``Manifest``."""
        return _GROUP_FIELDS[self]


_GROUP_FIELDS = {
    DependencyGroup.DEPENDENCIES: "dependencies",
    DependencyGroup.DEV_DEPENDENCIES: "dev_dependencies",
    DependencyGroup.PEER_DEPENDENCIES: "peer_dependencies",
    DependencyGroup.OPTIONAL_DEPENDENCIES: "optional_dependencies",
}


def _coerce_group(
    group: DependencyGroup, entries: Any, strict: bool
) -> Optional[Dict[str, str]]:
    """Validate one dependency group; None means the group is absent."""
    if entries is None:
        return None
    if not isinstance(entries, Mapping):
        if strict:
            raise InvalidManifestError(f"'{group.value}' must be an object, got {type(entries).__name__}")
        return None
    result: Dict[str, str] = {}
    for name, range_ in entries.items():
        if not isinstance(name, str) or not isinstance(range_, str):
            if strict:
                raise InvalidManifestError(f"Invalid entry in '{group.value}': {name!r}: {range_!r}")
            continue
        result[name] = range_
    return result


@dataclass
class Manifest:
    """A package's declared dependency groups.

    Each group is either absent (None) or a name -> range mapping. Built and
    validated once through ``from_dict``; the resolver never inspects raw
    package.json data.
    """
    name: str = ""
    version: str = ""
    dependencies: Optional[Dict[str, str]] = None
    dev_dependencies: Optional[Dict[str, str]] = None
    peer_dependencies: Optional[Dict[str, str]] = None
    optional_dependencies: Optional[Dict[str, str]] = None

    @classmethod
    def from_dict(cls, data: Any, strict: bool = True) -> "Manifest":
        """Build a manifest from package.json-like data.

        Args:
            data: Mapping with optional name/version and dependency groups.
            strict: Raise ``InvalidManifestError`` on malformed input (root
                manifests). Lenient mode drops malformed groups and entries
                (registry release data).
        """
        if not isinstance(data, Mapping):
            if strict:
                raise InvalidManifestError(f"Manifest must be an object, got {type(data).__name__}")
            data = {}
        name = data.get("name") or ""
        version = data.get("version") or ""
        if strict and (not isinstance(name, str) or not isinstance(version, str)):
            raise InvalidManifestError("Manifest name and version must be strings")
        groups = {
            group.attr: _coerce_group(group, data.get(group.value), strict)
            for group in DependencyGroup
        }
        return cls(name=str(name), version=str(version), **groups)

    def group(self, group: DependencyGroup) -> Optional[Dict[str, str]]:
        """Entries of ``group`` or None when the group is absent."""
        return getattr(self, group.attr)

    def with_group(self, group: DependencyGroup, entries: Optional[Dict[str, str]]) -> "Manifest":
        """Copy of this manifest with ``group`` replaced."""
        clone = copy.deepcopy(self)
        setattr(clone, group.attr, entries)
        return clone

    def iter_dependencies(self, production: bool = False) -> Iterator[Tuple[DependencyGroup, str, str]]:
        """Yield (group, name, range) for every entry, skipping devDependencies in production."""
        for group in DependencyGroup:
            if production and group is DependencyGroup.DEV_DEPENDENCIES:
                continue
            for name, range_ in (self.group(group) or {}).items():
                yield group, name, range_

    def is_empty(self) -> bool:
        return not any(self.group(group) for group in DependencyGroup)


@dataclass
class Release:
    """One published release (or dist-tag alias) of a package."""
    name: str
    version: str
    tag: str = ""
    released: str = Constants.EPOCH
    license: str = Constants.NO_LICENSE
    shasum: str = ""
    author: Dict[str, Any] = field(default_factory=dict)
    latest: str = ""
    manifest: Manifest = field(default_factory=Manifest)


@dataclass
class ReleaseSet:
    """All releases of a package keyed by version and by dist-tag name."""
    name: str
    releases: Dict[str, Release] = field(default_factory=dict)
    versions: List[str] = field(default_factory=list)
    tags: Dict[str, str] = field(default_factory=dict)
    latest: str = ""

    def __contains__(self, key: str) -> bool:
        return key in self.releases

    def get(self, key: str) -> Optional[Release]:
        return self.releases.get(key)


@dataclass
class PackageSpec:
    """A requested lookup of ``name`` at ``range``.

    ``parents`` holds node ids (see ``resolver.tree``) of everything that
    asked for this exact name@range; the same key requested twice is merged
    into one spec.
    """
    name: str
    range: str
    parents: List[str] = field(default_factory=list)
    depth: int = 1

    @property
    def id(self) -> str:
        return package_key(self.name, self.range)

    def merge(self, parents: List[str]) -> List[str]:
        """Union ``parents`` into this spec; return the ones that were new."""
        added = []
        for parent in parents:
            if parent not in self.parents:
                self.parents.append(parent)
                added.append(parent)
        return added


def package_key(name: str, range_: str) -> str:
    """Stable lookup key for a name/range request."""
    return f"{name}@{range_}"


def private_key(key: str, holder_id: str) -> str:
    """Key of a copy of ``key`` nested privately under ``holder_id``."""
    return f"{key}>{holder_id}"
