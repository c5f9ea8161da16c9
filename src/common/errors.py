"""Error taxonomy shared by the registry client and the resolver.

Registry errors describe why a single package document could not be turned
into a release set. The resolver tags every error it collects with the
``PackageSpec`` that failed (``error.spec``) so callers can report which
dependency was lost without re-deriving it from the message.
"""
from __future__ import annotations

from typing import Any, Optional


class ShrinkwrapError(Exception):
    """Base class for all errors raised or collected by the resolver."""

    def __init__(self, message: str, *, spec: Optional[Any] = None):
        super().__init__(message)
        self.spec = spec

    def for_spec(self, spec: Any) -> "ShrinkwrapError":
        """Copy of this error tagged with ``spec``, caused by this error.

        One registry failure can be shared by several requests (a single
        release-set fetch); each request gets its own copy.
        """
        error = self.__class__.__new__(self.__class__)
        error.__dict__.update(self.__dict__)
        error.args = self.args
        error.spec = spec
        error.__cause__ = self
        return error


class RegistryError(ShrinkwrapError):
    """A registry lookup for ``name`` failed."""

    def __init__(self, name: str, message: str):
        super().__init__(message)
        self.name = name


class NetworkError(RegistryError):
    """Transport failure (connection refused, DNS, reset...)."""


class RequestTimeoutError(NetworkError):
    """A request or a whole lookup exceeded its deadline."""


class HTTPStatusError(RegistryError):
    """The registry answered with anything but 200."""

    def __init__(self, name: str, status_code: int):
        super().__init__(
            name,
            f"Received an invalid status code for {name}: expected 200, got {status_code}",
        )
        self.status_code = status_code


class ParseError(RegistryError):
    """The response body was not valid JSON."""


class MalformedDataError(RegistryError):
    """The response parsed but lacks the expected shape (e.g. no ``versions``)."""


class UnsatisfiableRangeError(ShrinkwrapError):
    """No published version satisfies the requested range."""

    def __init__(self, name: str, range_: str, *, spec: Optional[Any] = None):
        super().__init__(f"No version of {name} satisfies {range_!r}", spec=spec)
        self.name = name
        self.range = range_


class InvalidManifestError(ShrinkwrapError):
    """The root manifest cannot be read or does not have the expected shape."""


class ResolutionCancelledError(ShrinkwrapError):
    """Resolution was cancelled before the queue drained."""


class ConfigError(ShrinkwrapError):
    """Configuration file or override could not be applied."""
