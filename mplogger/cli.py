#!/usr/bin/env python3
"""
mplogger CLI Tool

Runs the multi-process log server (with its terminal viewer or headless)
and a demo process that logs from many threads.
"""

import argparse
import logging
import sys

from . import __version__
from .commands.demo import DemoCommand
from .commands.serve import ServeCommand
from .config import load_config
from .utils.colors import Colors
from .utils.logging import setup_logging

EXIT_INTERRUPTED = 130


def create_parser():
    """Create the main argument parser."""
    parser = argparse.ArgumentParser(
        prog="mplogger",
        description="mplogger - aggregate logs from many processes and browse them in a terminal",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  mplogger serve                          # Server with the terminal viewer
  mplogger serve --headless               # Server only
  mplogger serve --socket ./a-local-socket
  mplogger demo --threads 10 --rounds 5   # Log from 10 threads
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"mplogger v{__version__}"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose output"
    )

    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Suppress output except errors"
    )

    parser.add_argument(
        "--config",
        help="YAML config file (default: MPLOG_CONFIG)"
    )

    parser.add_argument(
        "--log-file",
        help="Write the server's own log to this file"
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands",
        required=True
    )

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the log server"
    )
    ServeCommand.add_arguments(serve_parser)

    demo_parser = subparsers.add_parser(
        "demo",
        help="Emit sample logs from several threads"
    )
    DemoCommand.add_arguments(demo_parser)

    return parser


def main(argv=None):
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    if args.log_file:
        config.logging.log_file = args.log_file

    log_level = getattr(logging, config.logging.level, logging.INFO)
    if args.verbose:
        log_level = logging.DEBUG
    elif args.quiet:
        log_level = logging.ERROR

    setup_logging(log_level, config.logging.log_file)
    logger = logging.getLogger(__name__)

    try:
        if args.command == "serve":
            command = ServeCommand(args, config)
        elif args.command == "demo":
            command = DemoCommand(args, config)
        else:
            parser.print_help()
            return 1

        return command.run()

    except KeyboardInterrupt:
        print(f"\n{Colors.warning('Interrupted')}")
        return EXIT_INTERRUPTED
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
