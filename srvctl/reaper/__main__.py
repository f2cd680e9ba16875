"""Signal a process tree and exit without waiting for it to die.

Usage:
    python -m srvctl.reaper <pid> [--signal TERM]

Exit status is 0 once every discovered process has been signalled (a root
that is already gone counts), 1 when the OS refuses a signal.
"""

import argparse
import logging
import signal

import psutil

from srvctl.cli import CliParser, configure_logging, positive_int
from srvctl.config import Config
from srvctl.reaper.tree import reap_tree

log = logging.getLogger(__name__)


def signal_number(raw: str) -> int:
    name = raw.upper()
    if not name.startswith("SIG"):
        name = f"SIG{name}"
    try:
        return signal.Signals[name].value
    except KeyError:
        raise argparse.ArgumentTypeError(f"unknown signal {raw!r}") from None


def main(argv: list[str] | None = None) -> int:
    parser = CliParser(
        prog="server-reaper",
        description="Send a signal to a process and all of its descendants.",
    )
    parser.add_argument("pid", type=positive_int, help="root process ID")
    parser.add_argument(
        "--signal", type=signal_number, default=signal.SIGTERM.value,
        help="signal name to send (default: TERM)",
    )
    args = parser.parse_args(argv)

    configure_logging(Config.from_env())

    try:
        reap_tree(args.pid, args.signal)
    except psutil.AccessDenied as exc:
        log.error("Permission denied signalling process %s", exc.pid)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
