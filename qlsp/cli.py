"""
qlsp.cli - Command-line entry point for the SQL hover language server

Editors start the server as a subprocess and talk to it over stdin/stdout:

    qlsp-sql                      Serve one editor over stdio
    qlsp-sql --log /tmp/qlsp.log  Also record every message to a file
"""

import argparse
import sys
import traceback
from typing import Optional

from qlsp import __version__
from qlsp.config import ServerConfig


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="qlsp-sql",
        description="Language server showing SQL query results on hover",
    )
    parser.add_argument(
        "--log",
        metavar="FILE",
        help="Append every JSON-RPC message exchanged to FILE "
        "(default: $QLSP_LOG)",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        default=None,
        help="Do not write diagnostics to stderr (default: $QLSP_QUIET)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point for qlsp-sql. Calls sys.exit with return code."""
    sys.exit(_main(argv))


def _main(argv: Optional[list[str]] = None) -> int:
    """Internal main that returns exit code."""
    args = create_parser().parse_args(argv)
    config = ServerConfig.load(
        log_path=args.log, quiet=args.quiet, version=__version__
    )

    from qlsp.server import serve
    from qlsp.sqlhover import SqlHoverServer

    try:
        return serve(SqlHoverServer(config), config=config)
    except OSError as e:
        print(f"Error starting language server: {e}", file=sys.stderr)
        traceback.print_exc(file=sys.stderr)
        return 1


if __name__ == "__main__":
    main()
