"""PID file: the single-field record handed from launcher to terminator.

The two tools never share an address space, so the record is a plain text
file holding one decimal process ID with no trailing structure.  Writers are
assumed to take turns; nothing here locks the file.
"""

from __future__ import annotations

import logging
from pathlib import Path

from .errors import PidFileInvalid, PidFileMissing

log = logging.getLogger(__name__)


class PidFile:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def __repr__(self) -> str:
        return f"PidFile({str(self.path)!r})"

    def write(self, pid: int) -> None:
        self.path.write_text(str(int(pid)))
        log.debug("Wrote pid %d to %s", pid, self.path)

    def read(self) -> int:
        """Return the recorded PID.

        Raises PidFileMissing when there is no regular file at the path and
        PidFileInvalid when its content is unreadable or not a positive
        integer.
        """
        if not self.path.is_file():
            raise PidFileMissing(f"ERROR: No PID given and no {self.path.name} file")

        try:
            raw = self.path.read_text()
            pid = int(raw.strip())
        except (OSError, UnicodeDecodeError, ValueError) as exc:
            raise PidFileInvalid(
                f"ERROR: Unable to determine a process ID; no valid PID in {self.path.name}"
            ) from exc

        if pid <= 0:
            raise PidFileInvalid(
                f"ERROR: Unable to determine a process ID; no valid PID in {self.path.name}"
            )
        return pid

    def remove(self) -> None:
        self.path.unlink(missing_ok=True)
