"""NPM registry package.

- client.py: HTTP interactions with the registry and release-set normalization
"""

from .client import RegistryClient, parse_releases, select_release  # noqa: F401

__all__ = [
    "RegistryClient",
    "parse_releases",
    "select_release",
]
