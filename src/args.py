"""Argument parsing functionality for shrinkwrap."""

import argparse
from constants import Constants, OutputFormats

def parse_args(argv=None):
    """Parses the arguments passed to the program."""
    parser = argparse.ArgumentParser(
        prog="shrinkwrap",
        description=(
            "shrinkwrap - resolve the full npm dependency tree of a package"
        ),
        add_help=True,
    )

    input_group = parser.add_mutually_exclusive_group(required=True)
    input_group.add_argument("-p", "--package",
                            dest="SINGLE",
                            help="Resolve a package from the registry, i.e: express or express@^4.0.0",
                            action="store", type=str)
    input_group.add_argument("-d", "--directory",
                    dest="FROM_SRC",
                    help="Resolve the package.json found in a directory (or the file itself)",
                    action="store",
                    type=str)

    parser.add_argument("-o", "--output",
                        dest="OUTPUT",
                        help="Path to output file (stdout when omitted)",
                        action="store",
                        type=str)
    parser.add_argument("-f", "--format",
                        dest="OUTPUT_FORMAT",
                        help="Output format: nested lockfile or flat module tree (default: lockfile)",
                        action="store",
                        type=str.lower,
                        default=OutputFormats.LOCKFILE.value,
                        choices=Constants.OUTPUT_FORMATS)

    parser.add_argument("-r", "--registry",
                        dest="REGISTRY",
                        help=f"Registry base URL (default: {Constants.REGISTRY_URL_NPM})",
                        action="store",
                        type=str)
    parser.add_argument("-m", "--mirror",
                        dest="MIRRORS",
                        help="Fallback registry URL, tried when the registry fails; repeatable",
                        action="append",
                        type=str)
    parser.add_argument("--production",
                        dest="PRODUCTION",
                        help="Skip devDependencies",
                        action="store_true")
    parser.add_argument("--limit",
                        dest="LIMIT",
                        help=f"Maximum concurrent registry lookups (default: {Constants.DEFAULT_LIMIT})",
                        action="store",
                        type=int)
    parser.add_argument("--no-optimize",
                        dest="NO_OPTIMIZE",
                        help="Keep every module under the package that requested it",
                        action="store_true")
    parser.add_argument("--timeout",
                        dest="TIMEOUT",
                        help=f"HTTP request timeout in seconds (default: {Constants.REQUEST_TIMEOUT})",
                        action="store",
                        type=int)
    parser.add_argument("--lookup-timeout",
                        dest="LOOKUP_TIMEOUT",
                        help="Deadline in seconds for resolving a single dependency",
                        action="store",
                        type=float)
    parser.add_argument("-c", "--config",
                        dest="CONFIG",
                        help="Path to a YAML or JSON config file",
                        action="store",
                        type=str)

    parser.add_argument("--loglevel",
                        dest="LOG_LEVEL",
                        help="Set the logging level",
                        action="store",
                        type=str,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'],
                        default='INFO')
    parser.add_argument("--logfile",
                        dest="LOG_FILE",
                        help="Log output file",
                        action="store",
                        type=str)

    return parser.parse_args(argv)
