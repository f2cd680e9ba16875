"""Terminator: resolves a server's PID and hands it to the privileged reaper."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from .config import Config
from .errors import TerminationError
from .pidfile import PidFile
from .privilege import ensure_privilege, reaper_command

log = logging.getLogger(__name__)


class Terminator:
    def __init__(
        self,
        base_dir: str | Path,
        config: Config | None = None,
        name: str | None = None,
    ) -> None:
        self.config = config or Config()
        self.name = name or self.config.default_name
        self.pid_file = PidFile(self.config.pid_path(base_dir, self.name))

    def resolve(self, pid: int | None = None) -> tuple[int, bool]:
        """Return ``(pid, from_file)``.

        An explicit pid wins; otherwise the PID file must hold one.  There
        is no fallback beyond that.
        """
        if pid is not None:
            return pid, False
        return self.pid_file.read(), True

    def dispatch(self, pid: int) -> None:
        """Run the reaper once, synchronously, under the privilege wrapper."""
        ensure_privilege(self.config)
        cmd = reaper_command(pid, self.config)
        log.debug("Executing: %s", " ".join(cmd))
        try:
            result = subprocess.run(cmd)
        except OSError as exc:
            raise TerminationError(f"Could not run reaper: {exc}") from exc
        if result.returncode != 0:
            raise TerminationError(
                f"Reaper for process {pid} exited with status {result.returncode}",
                result.returncode,
            )

    def stop(self, pid: int | None = None) -> int:
        pid, from_file = self.resolve(pid)

        log.info("Killing server process(es) rooted with process %d", pid)
        self.dispatch(pid)

        # Only a PID we read ourselves is cleaned up
        if from_file:
            self.pid_file.remove()
        return pid
