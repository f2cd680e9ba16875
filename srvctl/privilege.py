"""Privilege escalation helpers.

Every privileged spawn or dispatch is preceded by a blocking no-op through
the wrapper (``sudo true`` by default) so any credential prompt shows up
before child output starts interleaving with the terminal.
"""

from __future__ import annotations

import asyncio
import logging
import os
import subprocess
import sys
from collections.abc import Sequence

from .config import Config
from .errors import PrivilegeError

log = logging.getLogger(__name__)


def is_root() -> bool:
    return hasattr(os, "geteuid") and os.geteuid() == 0


def elevate(cmd: Sequence[str], config: Config) -> list[str]:
    """Prefix ``cmd`` with the privilege wrapper unless we already are root."""
    if is_root() or not config.sudo:
        return list(cmd)
    return [*config.sudo, *cmd]


def reaper_command(pid: int, config: Config) -> list[str]:
    """Re-invoke the reaper with the interpreter running this process."""
    return elevate([sys.executable, "-m", "srvctl.reaper", str(pid)], config)


def ensure_privilege(config: Config) -> None:
    """Run the privileged no-op, blocking until any prompt is answered."""
    if is_root() or not config.sudo:
        return
    cmd = elevate(config.sudo_noop, config)
    log.debug("Checking privilege: %s", " ".join(cmd))
    try:
        subprocess.run(cmd, check=True)
    except (OSError, subprocess.CalledProcessError) as exc:
        raise PrivilegeError(f"Privilege check '{' '.join(cmd)}' failed: {exc}") from exc


async def ensure_privilege_async(config: Config) -> None:
    """Event-loop variant of :func:`ensure_privilege` for the interrupt path."""
    if is_root() or not config.sudo:
        return
    cmd = elevate(config.sudo_noop, config)
    try:
        proc = await asyncio.create_subprocess_exec(*cmd)
        code = await proc.wait()
    except OSError as exc:
        raise PrivilegeError(f"Privilege check '{' '.join(cmd)}' failed: {exc}") from exc
    if code != 0:
        raise PrivilegeError(f"Privilege check '{' '.join(cmd)}' exited with status {code}")
