"""Tree optimizer: hoist shared dependencies toward a common ancestor.

npm installs a dependency once at the highest directory every dependent
can reach it from, as long as no directory on the way up already holds a
different version of it. ``TreeOptimizer.optimize`` applies the same rule
to one module whenever it gains dependents:

1. For every dependent, walk from the dependent itself up through its
   placement ancestors while each one is *available* (holds no other
   version of the module and has no other request for that name still
   pending). The visited nodes are the dependent's candidate path.
2. Dependents with an empty path keep their own copy and stop sharing the
   module: they are dropped from ``module.dependents``.
3. The module moves once to the highest ancestor found on every remaining
   path, and the dependents stop holding it directly.
"""

from __future__ import annotations

import logging
from typing import Callable, Collection, List, Optional

from common.logging_utils import extra_context, is_debug_enabled
from resolver.module import Module
from resolver.tree import DependencyTree

logger = logging.getLogger(__name__)

Reserved = Callable[[str, str], Collection[str]]


def _nothing_reserved(node_id: str, name: str) -> Collection[str]:  # pylint: disable=unused-argument
    return ()


class TreeOptimizer:
    """Relocates modules of a ``DependencyTree`` to reduce duplication."""

    def __init__(self, tree: DependencyTree, reserved: Optional[Reserved] = None):
        """Initialize the optimizer.

        Args:
            tree: Tree whose placement is optimized in place.
            reserved: ``reserved(node_id, name)`` returns keys of requests
                for ``name`` made by ``node_id`` that are still queued or in
                flight. Such a node cannot take another module of that name.
        """
        self.tree = tree
        self.reserved = reserved or _nothing_reserved

    def available(self, node: Module, module: Module) -> bool:
        """Can ``node`` hold ``module`` without a version conflict."""
        holder_id = node.dependencies.get(module.name)
        if holder_id is not None and holder_id != module.id:
            holder = self.tree.node(holder_id)
            if holder is None or holder.version != module.version:
                return False
        pending = [key for key in self.reserved(node.id, module.name) if key != module.id]
        return not pending

    def candidate_path(self, module: Module, dependent_id: str) -> List[str]:
        """The dependent and its ancestors that could hold ``module``, nearest first."""
        path: List[str] = []
        dependent = self.tree.node(dependent_id)
        if dependent is None:
            return path
        for ancestor in [dependent] + self.tree.ancestors(dependent_id):
            if ancestor.id == module.id or not self.available(ancestor, module):
                break
            path.append(ancestor.id)
        return path

    @staticmethod
    def common_ancestor(paths: List[List[str]]) -> Optional[str]:
        """Highest node present on every path, None if they share nothing."""
        if not paths:
            return None
        common = set(paths[0]).intersection(*paths[1:])
        for node_id in reversed(paths[0]):
            if node_id in common:
                return node_id
        return None

    def optimize(self, module: Module) -> Optional[str]:
        """Hoist ``module`` as high as all its dependents allow.

        Returns:
            Id of the node the module was moved to, or None when the
            placement did not change.
        """
        paths: List[List[str]] = []
        sharing: List[str] = []
        for dependent_id in list(module.dependents):
            path = self.candidate_path(module, dependent_id)
            if not path:
                # Cannot move up without a conflict: this dependent keeps its own copy.
                module.dependents.remove(dependent_id)
                if is_debug_enabled(logger):
                    logger.debug(
                        "%s keeps a private copy of %s",
                        dependent_id or "<root>",
                        module.id,
                        extra=extra_context(event="optimize", component="optimizer", outcome="pruned", target=module.id),
                    )
                continue
            paths.append(path)
            sharing.append(dependent_id)

        target_id = self.common_ancestor(paths)
        if target_id is None:
            return None
        return self._relocate(module, target_id, sharing)

    def _is_within(self, node_id: str, module: Module) -> bool:
        """Is ``node_id`` the module itself or placed somewhere below it."""
        if node_id == module.id:
            return True
        return any(ancestor.id == module.id for ancestor in self.tree.ancestors(node_id))

    def _relocate(self, module: Module, target_id: str, sharing: List[str]) -> Optional[str]:
        target = self.tree.node(target_id)
        if target is None or self._is_within(target_id, module):
            return None
        occupant = target.dependencies.get(module.name)
        if occupant is not None and occupant != module.id:
            # Same version already placed there under another key.
            return None

        changed = occupant is None
        for dependent_id in sharing:
            dependent = self.tree.node(dependent_id)
            if dependent is not None and dependent.dependencies.get(module.name) == module.id:
                del dependent.dependencies[module.name]
                changed = True

        if module.hoisted and module.parent not in (None, target_id):
            previous = self.tree.node(module.parent)
            if previous is not None and previous.dependencies.get(module.name) == module.id:
                del previous.dependencies[module.name]
                changed = True

        if not changed and module.parent == target_id:
            return None

        target.dependencies[module.name] = module.id
        module.parent = target_id
        module.hoisted = True
        self._reseat(module, target.depth + 1)
        logger.debug(
            "Hoisted %s to %s",
            module.id,
            target_id or "<root>",
            extra=extra_context(event="optimize", component="optimizer", outcome="hoisted", target=module.id),
        )
        return target_id

    def _reseat(self, module: Module, depth: int) -> None:
        """Set ``module`` to ``depth`` and shift the modules placed under it."""
        stack = [(module, depth)]
        seen = set()
        while stack:
            node, node_depth = stack.pop()
            if node.id in seen:
                continue
            seen.add(node.id)
            node.depth = node_depth
            for child_id in node.dependencies.values():
                child = self.tree.node(child_id)
                if child is not None and child.parent == node.id:
                    stack.append((child, node_depth + 1))
