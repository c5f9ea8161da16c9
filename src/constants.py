"""Constants used in the project."""

from enum import Enum


class ExitCodes(Enum):
    """Exit codes for the program.

    Args:
        Enum (int): Exit codes for the program.
    """

    SUCCESS = 0
    FILE_ERROR = 1
    CONNECTION_ERROR = 2
    EXIT_WARNINGS = 3


class OutputFormats(Enum):
    """Output formats supported by the program.

    Args:
        Enum (string): Output formats supported by the program.
    """

    LOCKFILE = "lockfile"
    TREE = "tree"


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    """

    REGISTRY_URL_NPM = "https://registry.npmjs.org/"
    PACKAGE_JSON_FILE = "package.json"
    OUTPUT_FORMATS = [OutputFormats.LOCKFILE.value, OutputFormats.TREE.value]
    LOG_FORMAT = "[%(levelname)s] %(message)s"
    LOG_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all HTTP requests
    USER_AGENT = "shrinkwrap-resolver/0.1"

    # Resolver defaults
    DEFAULT_LIMIT = 10
    DEFAULT_RANGE = "latest"
    EPOCH = "1970-01-01T00:00:00.000Z"
    NO_LICENSE = "No license"

    # Retry tuning for registry requests
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3

    # Configuration sources
    ENV_LOG_LEVEL = "SHRINKWRAP_LOG_LEVEL"
    ENV_REGISTRY = "SHRINKWRAP_REGISTRY"
    ENV_LIMIT = "SHRINKWRAP_LIMIT"
    ENV_MIRRORS = "SHRINKWRAP_MIRRORS"
    ENV_NODE_ENV = "NODE_ENV"
    CONFIG_SECTION = "shrinkwrap"
    DEFAULT_CONFIG_PATHS = [
        "shrinkwrap.yml",
        "shrinkwrap.yaml",
        "~/.config/shrinkwrap/config.yml",
    ]
