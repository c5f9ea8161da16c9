"""CLI configuration: config files, environment and command line overrides.

Builds the ``ResolverConfig`` handed to the resolver. Precedence, lowest to
highest: built-in defaults, environment, config file, CLI flags. The
resolver itself never reads the environment.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, Mapping, Optional

import yaml

from constants import Constants
from common.errors import ConfigError
from resolver.config import ResolverConfig

logger = logging.getLogger(__name__)


def load_config_file(path: str) -> Dict[str, Any]:
    """Load resolver settings from a YAML or JSON file.

    A ``shrinkwrap:`` section is used when present, otherwise the top level.

    Raises:
        ConfigError: the file cannot be read or parsed.
    """
    try:
        with open(path, "r", encoding="utf-8") as fh:
            if path.lower().endswith(".json"):
                data = json.load(fh)
            else:
                data = yaml.safe_load(fh)
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    except (ValueError, yaml.YAMLError) as exc:
        raise ConfigError(f"Cannot parse config file {path}: {exc}") from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    section = data.get(Constants.CONFIG_SECTION, data)
    if not isinstance(section, dict):
        raise ConfigError(f"'{Constants.CONFIG_SECTION}' section in {path} must be a mapping")
    return section


def find_default_config() -> Optional[str]:
    """First existing file among the default config locations."""
    for candidate in Constants.DEFAULT_CONFIG_PATHS:
        path = os.path.expanduser(candidate)
        if os.path.isfile(path):
            return path
    return None


def config_from_env(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Settings taken from environment variables."""
    values: Dict[str, Any] = {}
    if environ.get(Constants.ENV_REGISTRY):
        values["registry"] = environ[Constants.ENV_REGISTRY]
    if environ.get(Constants.ENV_LIMIT):
        values["limit"] = environ[Constants.ENV_LIMIT]
    if environ.get(Constants.ENV_MIRRORS):
        values["mirrors"] = environ[Constants.ENV_MIRRORS]
    if environ.get(Constants.ENV_NODE_ENV) == "production":
        values["production"] = True
    return values


def config_from_args(args: Any) -> Dict[str, Any]:
    """Settings given explicitly on the command line."""
    values: Dict[str, Any] = {
        "registry": getattr(args, "REGISTRY", None),
        "limit": getattr(args, "LIMIT", None),
        "lookup_timeout": getattr(args, "LOOKUP_TIMEOUT", None),
        "timeout": getattr(args, "TIMEOUT", None),
        "mirrors": getattr(args, "MIRRORS", None),
    }
    if getattr(args, "PRODUCTION", False):
        values["production"] = True
    if getattr(args, "NO_OPTIMIZE", False):
        values["optimize"] = False
    return {key: value for key, value in values.items() if value is not None}


def build_config(args: Any, environ: Optional[Mapping[str, str]] = None) -> ResolverConfig:
    """Assemble the resolver configuration for a CLI run.

    Raises:
        ConfigError: an explicit config file is unusable or a value is invalid.
    """
    environ = os.environ if environ is None else environ
    config = ResolverConfig.from_mapping(config_from_env(environ))

    path = getattr(args, "CONFIG", None)
    if path:
        config = ResolverConfig.from_mapping(load_config_file(path), base=config)
    else:
        default_path = find_default_config()
        if default_path:
            logger.debug("Using config file %s", default_path)
            config = ResolverConfig.from_mapping(load_config_file(default_path), base=config)

    return ResolverConfig.from_mapping(config_from_args(args), base=config)
