"""Dependency tree arena and lockfile serialization."""

from __future__ import annotations

import types
from collections.abc import Mapping
from typing import Any, Dict, Iterator, List, Optional

from resolver.module import ROOT_ID, Module


class DependencyTree(Mapping):
    """Modules of one resolution keyed by their spec id, plus the virtual root.

    Parent/child links between modules are ids into this mapping, so the
    tree is the only owner of every module. Once frozen the tree is a
    read-only snapshot.
    """

    def __init__(self, name: str = "", version: str = ""):
        self.root = Module.root(name, version)
        self._modules: Dict[str, Module] = {}
        self._frozen = False

    @property
    def name(self) -> str:
        return self.root.name

    @property
    def version(self) -> str:
        return self.root.version

    @property
    def modules(self) -> Mapping[str, Module]:
        if self._frozen:
            return types.MappingProxyType(self._modules)
        return self._modules

    @property
    def frozen(self) -> bool:
        return self._frozen

    def __getitem__(self, key: str) -> Module:
        return self._modules[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._modules)

    def __len__(self) -> int:
        return len(self._modules)

    def add(self, module: Module) -> Module:
        """Insert ``module`` under its id."""
        if self._frozen:
            raise RuntimeError("Dependency tree is frozen")
        self._modules[module.id] = module
        return module

    def freeze(self) -> None:
        self._frozen = True

    def node(self, node_id: Optional[str]) -> Optional[Module]:
        """The root or a module by id; None for unknown ids."""
        if node_id is None:
            return None
        if node_id == ROOT_ID:
            return self.root
        return self._modules.get(node_id)

    def ancestors(self, node_id: str) -> List[Module]:
        """Placement ancestors of ``node_id``, nearest first, ending at the root."""
        result: List[Module] = []
        seen = {node_id}
        node = self.node(node_id)
        while node is not None and node.parent is not None and node.parent not in seen:
            seen.add(node.parent)
            node = self.node(node.parent)
            if node is None:
                break
            result.append(node)
        return result

    def holder(self, node_id: str, name: str) -> Optional[Module]:
        """Module that code at ``node_id`` would load for ``name``.

        Looks in the node's own placed dependencies, then walks up through
        its ancestors, like node's module lookup does.
        """
        node = self.node(node_id)
        if node is None:
            return None
        for candidate in [node] + self.ancestors(node_id):
            module_id = candidate.dependencies.get(name)
            if module_id is not None:
                return self.node(module_id)
        return None

    def to_json(self) -> Dict[str, Any]:
        """Every module keyed by id, in sorted order."""
        return {key: self._modules[key].to_json(self) for key in sorted(self._modules)}

    def to_lockfile(self) -> Dict[str, Any]:
        """Nested shrinkwrap structure rooted at the virtual root.

        Shared modules are written once per placement. Empty
        ``dependencies`` maps are omitted and a module already on the
        current path is not expanded again.
        """
        data: Dict[str, Any] = {"name": self.root.name, "version": self.root.version}
        dependencies = self._lock_dependencies(self.root, (ROOT_ID,))
        if dependencies:
            data["dependencies"] = dependencies
        return data

    def _lock_dependencies(self, node: Module, trail: tuple) -> Dict[str, Any]:
        result: Dict[str, Any] = {}
        for name in sorted(node.dependencies):
            module = self.node(node.dependencies[name])
            if module is None or module.id in trail:
                continue
            entry: Dict[str, Any] = {
                "version": module.version,
                "shasum": module.shasum,
                "released": module.released,
            }
            children = self._lock_dependencies(module, trail + (module.id,))
            if children:
                entry["dependencies"] = children
            result[name] = entry
        return result
