"""
=============================================================================
COMMAND LINE ENTRY POINT
=============================================================================

    python -m filebridge [options]
    filebridge [options]

Options override FILEBRIDGE_* environment variables, which override the
ServerConfig defaults.

=============================================================================
"""

import argparse
import sys
from typing import List, Optional

from . import __version__
from .config import ServerConfig
from .server import FileBridgeServer


def build_parser(defaults: ServerConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="filebridge",
        description="Remote file browser and command bridge over HTTP/1.0",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m filebridge                          # Serve the current directory on :8080
  python -m filebridge --port 80 --root /srv    # Serve /srv on port 80
  python -m filebridge --command-timeout 30     # Kill commands after 30s
        """
    )

    parser.add_argument(
        "--host", "-H",
        default=defaults.host,
        help=f"Address to bind to (default: {defaults.host})"
    )
    parser.add_argument(
        "--port", "-p",
        type=int,
        default=defaults.port,
        help=f"Port to listen on (default: {defaults.port})"
    )
    parser.add_argument(
        "--root", "-r",
        default=defaults.root_dir,
        help="Directory to serve (default: current directory)"
    )
    parser.add_argument(
        "--backlog",
        type=int,
        default=defaults.backlog,
        help=f"Listen backlog (default: {defaults.backlog})"
    )
    parser.add_argument(
        "--command-timeout", "-t",
        type=float,
        default=defaults.command_timeout,
        help="Seconds before a command is killed (default: no limit)"
    )
    parser.add_argument(
        "--capture-stderr",
        action="store_true",
        default=defaults.capture_stderr,
        help="Include command stderr in the captured output"
    )
    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=defaults.log_level.upper(),
        help=f"Logging level (default: {defaults.log_level})"
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"filebridge {__version__}"
    )
    return parser


def config_from_args(argv: Optional[List[str]] = None) -> ServerConfig:
    """Build a ServerConfig from the environment and command-line options."""
    config = ServerConfig.from_env()
    args = build_parser(config).parse_args(argv)

    config.host = args.host
    config.port = args.port
    config.root_dir = args.root
    config.backlog = args.backlog
    config.command_timeout = args.command_timeout
    config.capture_stderr = args.capture_stderr
    config.log_level = args.log_level
    return config


def main(argv: Optional[List[str]] = None):
    config = config_from_args(argv)

    try:
        server = FileBridgeServer(config)
        server.run()
    except (ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
