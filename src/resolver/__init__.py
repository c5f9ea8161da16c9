"""Dependency resolution package.

- queue.py: Shrinkwrap, the bounded worker queue building the tree
- tree.py: DependencyTree arena and lockfile serialization
- module.py: Module graph nodes
- optimizer.py: hoisting of shared modules
- dedupe.py: manifest deduplication
- cache.py: per-resolver release cache with fetch coalescing
- config.py: ResolverConfig
"""

from .cache import CacheEntry, ResolutionCache
from .config import ResolverConfig
from .dedupe import dedupe
from .module import Module
from .optimizer import TreeOptimizer
from .queue import Resolution, Shrinkwrap
from .tree import ROOT_ID, DependencyTree

__all__ = [
    "CacheEntry",
    "DependencyTree",
    "Module",
    "ROOT_ID",
    "Resolution",
    "ResolutionCache",
    "ResolverConfig",
    "Shrinkwrap",
    "TreeOptimizer",
    "dedupe",
]
