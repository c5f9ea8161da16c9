"""Resolver configuration."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, List, Mapping, Optional

from constants import Constants
from common.errors import ConfigError


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _as_list(value: Any) -> List[str]:
    """A list of URLs from a list or a comma separated string."""
    if isinstance(value, str):
        value = value.split(",")
    if not isinstance(value, (list, tuple)):
        raise TypeError(f"expected a list of URLs, got {value!r}")
    return [str(item).strip() for item in value if str(item).strip()]


@dataclass
class ResolverConfig:
    """Configuration for one ``Shrinkwrap`` resolver."""

    registry: str = Constants.REGISTRY_URL_NPM
    production: bool = False
    limit: int = Constants.DEFAULT_LIMIT
    optimize: bool = True
    timeout: int = Constants.REQUEST_TIMEOUT
    lookup_timeout: Optional[float] = None
    mirrors: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Check value ranges.

        Raises:
            ConfigError: a value is out of range.
        """
        if not isinstance(self.registry, str) or not self.registry.strip():
            raise ConfigError("registry must be a non-empty URL")
        if int(self.limit) < 1:
            raise ConfigError(f"limit must be at least 1, got {self.limit}")
        if int(self.timeout) <= 0:
            raise ConfigError(f"timeout must be positive, got {self.timeout}")
        if self.lookup_timeout is not None and float(self.lookup_timeout) <= 0:
            raise ConfigError(f"lookup_timeout must be positive, got {self.lookup_timeout}")

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], base: Optional["ResolverConfig"] = None) -> "ResolverConfig":
        """Apply known keys of ``data`` on top of ``base`` (or the defaults).

        Unknown keys are ignored.

        Raises:
            ConfigError: a value has the wrong type or range.
        """
        values = {f.name: getattr(base, f.name) for f in fields(cls)} if base is not None else {}
        try:
            for key, value in data.items():
                if value is None or key not in {f.name for f in fields(cls)}:
                    continue
                if key in ("production", "optimize"):
                    values[key] = _as_bool(value)
                elif key in ("limit", "timeout"):
                    values[key] = int(value)
                elif key == "lookup_timeout":
                    values[key] = float(value)
                elif key == "mirrors":
                    values[key] = _as_list(value)
                else:
                    values[key] = str(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid configuration value: {exc}") from exc
        return cls(**values)
