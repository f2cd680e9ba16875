"""Command-line front-ends for the launcher and the terminator.

Usage:
    server-start <serverName> -d <baseDir> [-b] [-f] [-g] [-l <logDir>] [-s] [-t]
    server-stop [<pid>] -d <baseDir> [-n <serverName>]

Every validation failure prints the usage text and exits with status -1
before anything is spawned or written.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import NoReturn

from .config import Config
from .errors import (
    PidResolutionError,
    ServerCtlError,
    TerminationError,
    ValidationError,
)
from .launcher import Launcher
from .models import LaunchConfig
from .terminator import Terminator

log = logging.getLogger(__name__)

EXIT_FAILURE = -1


class CliParser(argparse.ArgumentParser):
    """ArgumentParser that shows full usage on stdout and exits with -1.

    Long options must be spelled out; a prefix such as ``--fore`` is an
    unknown flag, not ``--foreground``.
    """

    def __init__(self, *args, **kwargs) -> None:
        kwargs.setdefault("allow_abbrev", False)
        super().__init__(*args, **kwargs)

    def error(self, message: str) -> NoReturn:
        self.print_help(sys.stdout)
        self.exit(EXIT_FAILURE, f"{self.prog}: error: {message}\n")


def positive_int(raw: str) -> int:
    try:
        value = int(raw.strip(), 10)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid process ID {raw!r}") from None
    if value <= 0:
        raise argparse.ArgumentTypeError(f"invalid process ID {raw!r}")
    return value


def configure_logging(config: Config) -> None:
    logging.basicConfig(
        level=config.numeric_log_level,
        format="%(asctime)s [srvctl] %(levelname)s %(message)s",
    )


# ----------------------------------------------------------------------
# start
# ----------------------------------------------------------------------

def build_start_parser() -> CliParser:
    parser = CliParser(
        prog="server-start",
        usage="%(prog)s <server name> [options]",
        description="Start a named server, attached or as a daemon.",
    )
    parser.add_argument("name", nargs="?", help="server name (<basedir>/<name> entry point)")
    parser.add_argument("-d", "--basedir", help="base directory (required)")
    parser.add_argument("-b", "--build", action="store_true", help="run the build command before starting")
    parser.add_argument("-f", "--foreground", action="store_true", help="don't daemonize; stream output here")
    parser.add_argument("-g", "--debug", action="store_true", help="debug mode (implies foreground)")
    parser.add_argument("-l", "--logpath", help="directory for the log file (default: <basedir>/log)")
    parser.add_argument("-s", "--sudo", action="store_true", help="run the server under sudo")
    parser.add_argument("-t", "--trace-warns", action="store_true", help="add the runtime's warning trace flags")
    return parser


def start_main(argv: list[str] | None = None) -> int:
    config = Config.from_env()
    configure_logging(config)

    parser = build_start_parser()
    args = parser.parse_args(argv)

    if not args.name:
        log.error("ERROR: No serverName given, exiting")
        parser.print_help(sys.stdout)
        return EXIT_FAILURE

    if args.basedir is None:
        log.error("Must specify base directory (with -d flag)")
        parser.print_help(sys.stdout)
        return EXIT_FAILURE

    try:
        base_dir = config.resolve_dir(args.basedir, "base")
        log_dir = config.resolve_dir(args.logpath, "log") if args.logpath else None
        launch = LaunchConfig(
            name=args.name,
            base_dir=base_dir,
            log_dir=log_dir,
            foreground=args.foreground,
            debug=args.debug,
            trace_warnings=args.trace_warns,
            elevated=args.sudo,
            build=args.build,
            config=config,
        )
        return Launcher(launch).run()
    except ValidationError as exc:
        log.error("%s, exiting", exc)
        parser.print_help(sys.stdout)
        return EXIT_FAILURE
    except ServerCtlError as exc:
        log.error("%s", exc)
        return EXIT_FAILURE


# ----------------------------------------------------------------------
# stop
# ----------------------------------------------------------------------

def build_stop_parser(config: Config) -> CliParser:
    parser = CliParser(
        prog="server-stop",
        usage="[sudo] %(prog)s [<process ID>] [options]",
        description="Stop a server and every process it spawned.",
        epilog=(
            "If no process ID is given it is read from "
            f"<basedir>/{config.pid_dir + '/' if config.pid_dir else ''}<name>.pid, if available."
        ),
    )
    parser.add_argument("pid", nargs="?", type=positive_int, help="root process ID")
    parser.add_argument("-d", "--basedir", help="base directory (required)")
    parser.add_argument(
        "-n", "--name", default=config.default_name,
        help=f"server whose PID file to read (default: {config.default_name})",
    )
    return parser


def stop_main(argv: list[str] | None = None) -> int:
    config = Config.from_env()
    configure_logging(config)

    parser = build_stop_parser(config)
    args = parser.parse_args(argv)

    if args.basedir is None:
        log.error("Must specify base directory (with -d flag)")
        parser.print_help(sys.stdout)
        return EXIT_FAILURE

    try:
        base_dir = config.resolve_dir(args.basedir, "base")
        Terminator(base_dir, config, name=args.name).stop(args.pid)
    except ValidationError as exc:
        log.error("%s, exiting", exc)
        parser.print_help(sys.stdout)
        return EXIT_FAILURE
    except PidResolutionError as exc:
        log.error("%s", exc)
        parser.print_help(sys.stdout)
        return EXIT_FAILURE
    except TerminationError as exc:
        log.error("%s", exc)
        return exc.returncode if exc.returncode is not None else EXIT_FAILURE
    except ServerCtlError as exc:
        log.error("%s", exc)
        return EXIT_FAILURE
    return 0
