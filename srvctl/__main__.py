"""Run ``python -m srvctl start ...`` or ``python -m srvctl stop ...``."""

import sys

from srvctl.cli import EXIT_FAILURE, start_main, stop_main

COMMANDS = {"start": start_main, "stop": stop_main}


def main() -> int:
    if len(sys.argv) < 2 or sys.argv[1] not in COMMANDS:
        print("Usage: python -m srvctl {start|stop} [options]")
        return EXIT_FAILURE
    return COMMANDS[sys.argv[1]](sys.argv[2:])


if __name__ == "__main__":
    sys.exit(main())
