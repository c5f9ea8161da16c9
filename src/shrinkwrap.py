"""shrinkwrap - resolve the full npm dependency tree of a package.

    Raises:
        SystemExit: always, with one of ``ExitCodes``

    Returns:
        int: Exit code
"""
import asyncio
import json
import logging
import os
import sys

from constants import Constants, ExitCodes, OutputFormats
from common.errors import (
    ConfigError,
    InvalidManifestError,
    RegistryError,
    UnsatisfiableRangeError,
)
from common.logging_utils import configure_logging, extra_context, is_debug_enabled
from args import parse_args
from cli_config import build_config
from resolver import Resolution, Shrinkwrap
from versioning.models import Manifest
from versioning.parser import parse_package_token

logger = logging.getLogger(__name__)


def setup_logging(args):
    """Configure logging based on CLI arguments.

    Args:
        args: Parsed CLI arguments.
    """
    configure_logging(getattr(args, "LOG_LEVEL", None))

    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(Constants.LOG_FILE_FORMAT))
        logging.getLogger().addHandler(file_handler)


def load_manifest(path):
    """Loads a root manifest from a package.json file or its directory.

    Args:
        path (str): File path, or a directory containing package.json.

    Raises:
        InvalidManifestError: The file is missing, not JSON, or malformed.

    Returns:
        Manifest: The validated root manifest.
    """
    if os.path.isdir(path):
        path = os.path.join(path, Constants.PACKAGE_JSON_FILE)
    try:
        with open(path, "r", encoding="utf-8") as file:
            data = json.load(file)
    except OSError as e:
        raise InvalidManifestError(f"Cannot read {path}: {e}") from e
    except ValueError as e:
        raise InvalidManifestError(f"{path} is not valid JSON: {e}") from e
    return Manifest.from_dict(data, strict=True)


def render(resolution, output_format):
    """Serializes a resolution in the requested output format.

    Args:
        resolution (Resolution): Result of a resolve call.
        output_format (str): One of ``Constants.OUTPUT_FORMATS``.

    Returns:
        str: Indented JSON text.
    """
    if output_format == OutputFormats.TREE.value:
        data = resolution.tree.to_json()
    else:
        data = resolution.tree.to_lockfile()
    return json.dumps(data, indent=2) + "\n"


def write_output(text, output=None):
    """Writes the rendered result to a file or stdout.

    Args:
        text (str): Rendered output.
        output (str, optional): Target path; stdout when omitted.
    """
    if not output:
        sys.stdout.write(text)
        return
    try:
        with open(output, "w", encoding="utf-8") as file:
            file.write(text)
        logging.info("Wrote %s", output)
    except OSError as e:
        logging.error("Error writing to %s: %s", output, e)
        sys.exit(ExitCodes.FILE_ERROR.value)


async def run(args, config) -> Resolution:
    """Resolve whatever the CLI arguments point at.

    Args:
        args: Parsed CLI arguments.
        config: ``ResolverConfig`` built from defaults, env, file and flags.
    """
    resolver = Shrinkwrap(config)
    try:
        if getattr(args, "FROM_SRC", None):
            manifest = load_manifest(args.FROM_SRC)
            return await resolver.resolve(manifest)
        name, range_ = parse_package_token(args.SINGLE)
        return await resolver.get(name, range_)
    finally:
        if resolver.client is not None:
            await resolver.client.close()
        resolver.destroy()


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    setup_logging(args)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI start",
            extra=extra_context(event="function_entry", component="cli", action="main")
        )

    try:
        config = build_config(args)
    except ConfigError as e:
        logging.error("Configuration error: %s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)

    logging.info("Resolving against %s", config.registry)

    try:
        resolution = asyncio.run(run(args, config))
    except InvalidManifestError as e:
        logging.error("Invalid manifest: %s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)
    except ValueError as e:
        logging.error("Invalid package: %s", e)
        sys.exit(ExitCodes.FILE_ERROR.value)
    except (RegistryError, UnsatisfiableRangeError) as e:
        logging.error("Unable to resolve the root package: %s", e)
        sys.exit(ExitCodes.CONNECTION_ERROR.value)

    write_output(render(resolution, args.OUTPUT_FORMAT), getattr(args, "OUTPUT", None))

    if resolution.errors:
        for error in resolution.errors:
            logging.warning("%s", error)
        logging.warning("%d dependencies could not be resolved.", len(resolution.errors))
        sys.exit(ExitCodes.EXIT_WARNINGS.value)

    if is_debug_enabled(logger):
        logger.debug(
            "CLI finished",
            extra=extra_context(event="function_exit", component="cli", action="main", outcome="success")
        )
    sys.exit(ExitCodes.SUCCESS.value)


if __name__ == "__main__":
    main()
