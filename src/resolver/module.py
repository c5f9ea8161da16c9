"""The representation of a single resolved module in the dependency graph."""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from constants import Constants
from versioning import semver
from versioning.models import Release, package_key

# Id of the virtual root node; never a valid name@range key.
ROOT_ID = ""

if TYPE_CHECKING:  # pragma: no cover
    from resolver.tree import DependencyTree


class Module:
    """One resolved package version placed in a ``DependencyTree``.

    Release metadata (name, version, license, shasum, release date, author,
    latest known version) is fixed once resolved. Graph linkage is held as
    node ids into the tree's arena so modules never own each other:

    - ``dependents``: ids of the nodes that share this module.
    - ``dependencies``: dependency name -> id of the module placed under
      this node (the nesting written to the lockfile).
    - ``parent``: id of the node this module currently sits under.
    """

    def __init__(
        self,
        name: str,
        version: str,
        required: str,
        license: str = Constants.NO_LICENSE,  # pylint: disable=redefined-builtin
        shasum: str = "",
        released: str = Constants.EPOCH,
        latest: str = "",
        author: Optional[Dict[str, Any]] = None,
        depth: int = 0,
        id: Optional[str] = None,  # pylint: disable=redefined-builtin
    ):
        self.id = id if id is not None else package_key(name, required)
        self.name = name
        self.version = version
        self.required = required
        self.license = license
        self.shasum = shasum
        self.released = released
        self.latest = latest
        self.author = author or {}
        self.depth = depth
        self.parent: Optional[str] = None
        self.hoisted = False
        self.dependents: List[str] = []
        self.dependencies: Dict[str, str] = {}

    @classmethod
    def from_release(cls, release: Release, range_: str, depth: int = 0) -> "Module":
        """Build a module for ``release`` resolved from ``range_``."""
        return cls(
            name=release.name,
            version=release.version,
            required=range_,
            license=release.license,
            shasum=release.shasum,
            released=release.released,
            latest=release.latest,
            author=copy.deepcopy(release.author),
            depth=depth,
        )

    @classmethod
    def root(cls, name: str, version: str) -> "Module":
        """The virtual root node standing for the manifest being resolved."""
        return cls(name=name, version=version, required="", depth=0, id=ROOT_ID)

    @property
    def uptodate(self) -> bool:
        """Is this the newest known version of the package."""
        if semver.valid(self.version) and semver.valid(self.latest):
            return not semver.Version(self.version).lt(self.latest)
        return self.version == self.latest

    @property
    def pinned(self) -> bool:
        """Does the required range lock the version."""
        return semver.is_pinned(self.required)

    def clone(self, **overrides: Any) -> "Module":
        """Copy with the same release metadata and fresh graph linkage.

        Overrides are applied after the copy; unknown attributes raise
        ``AttributeError``.
        """
        module = Module(
            name=self.name,
            version=self.version,
            required=self.required,
            license=self.license,
            shasum=self.shasum,
            released=self.released,
            latest=self.latest,
            author=copy.deepcopy(self.author),
            depth=self.depth,
            id=self.id,
        )
        for attr, value in overrides.items():
            if not hasattr(module, attr):
                raise AttributeError(f"Module has no attribute {attr!r}")
            setattr(module, attr, value)
        return module

    def add_dependent(self, node_id: str) -> bool:
        """Record ``node_id`` as a dependent; False if already known or self."""
        if node_id == self.id or node_id in self.dependents:
            return False
        self.dependents.append(node_id)
        return True

    def to_json(self, tree: "DependencyTree") -> Dict[str, Any]:
        """Serializable view; dependents are flattened to ``name@version``."""
        parents = []
        for node_id in self.dependents:
            node = tree.node(node_id)
            if node is not None:
                parents.append(f"{node.name}@{node.version}")
        return {
            "name": self.name,
            "version": self.version,
            "required": self.required,
            "pinned": self.pinned,
            "uptodate": self.uptodate,
            "licenses": self.license,
            "author": self.author,
            "depth": self.depth,
            "id": self.id,
            "parents": parents,
        }

    def __repr__(self) -> str:
        return f"Module({self.id!r} -> {self.version!r}, depth={self.depth})"
