"""Manifest deduplication.

A package may list the same dependency as both a runtime and a development
dependency. When both declare the same constraint, the devDependencies entry
is dropped so the dependency is resolved once, as a runtime dependency.
"""

import logging

from versioning import semver
from versioning.models import DependencyGroup, Manifest

logger = logging.getLogger(__name__)


def dedupe(manifest: Manifest, production: bool = False) -> Manifest:
    """Drop devDependencies entries that exactly duplicate a dependencies entry.

    Ranges must denote equal constraints; overlapping ranges, or ranges
    that happen to select the same version, are kept. Unparseable ranges
    compare as different. The manifest is returned unchanged when either
    group is absent or in production mode (devDependencies are not resolved
    at all). The input is never mutated.
    """
    if manifest is None or production:
        return manifest
    dependencies = manifest.group(DependencyGroup.DEPENDENCIES)
    dev_dependencies = manifest.group(DependencyGroup.DEV_DEPENDENCIES)
    if not dependencies or not dev_dependencies:
        return manifest

    kept = dict(dev_dependencies)
    for name, range_ in dependencies.items():
        if name not in kept:
            continue
        try:
            if not semver.eq(kept[name], range_):
                continue
        except ValueError:
            continue
        logger.debug("Dropping devDependency %s@%s duplicated in dependencies", name, range_)
        del kept[name]

    if len(kept) == len(dev_dependencies):
        return manifest
    return manifest.with_group(DependencyGroup.DEV_DEPENDENCIES, kept)
