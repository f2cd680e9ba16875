from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from .config import Config
from .errors import ValidationError


class LaunchMode(enum.Enum):
    FOREGROUND = "foreground"  # attached, output streamed to the console
    DAEMON = "daemon"          # detached, output appended to the log file


@dataclass
class LaunchConfig:
    name: str
    base_dir: Path
    log_dir: Path | None = None
    foreground: bool = False
    debug: bool = False
    trace_warnings: bool = False
    elevated: bool = False
    build: bool = False
    config: Config = field(default_factory=Config)

    def __post_init__(self) -> None:
        self.base_dir = Path(self.base_dir)
        if self.log_dir is None:
            self.log_dir = self.base_dir / "log"
        self.log_dir = Path(self.log_dir)

    @property
    def mode(self) -> LaunchMode:
        if self.foreground or self.debug:
            return LaunchMode.FOREGROUND
        return LaunchMode.DAEMON

    @property
    def entry_point(self) -> Path:
        return self.base_dir / f"{self.name}{self.config.entry_suffix}"

    @property
    def log_path(self) -> Path:
        return self.log_dir / f"{self.name}.log"

    @property
    def pid_path(self) -> Path:
        return self.config.pid_path(self.base_dir, self.name)

    def validate(self) -> None:
        """Check every precondition of a launch before anything is written.

        The log and PID file directories only matter in daemon mode, the
        only mode that writes the log file and the PID record.
        """
        if not self.name:
            raise ValidationError("ERROR: No serverName given")
        self.base_dir = self.config.resolve_dir(self.base_dir, "base")
        if self.mode is LaunchMode.DAEMON:
            self.log_dir = self.config.resolve_dir(self.log_dir, "log")
            if not self.pid_path.parent.is_dir():
                raise ValidationError(f"Invalid PID file directory {self.pid_path.parent}")
        if not self.entry_point.is_file():
            raise ValidationError(f"Server {self.entry_point} not found")


def start_marker(name: str, now: datetime | None = None) -> str:
    """Blank-line delimited banner written on every launch.

    >>> start_marker("api", datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc))
    '\\n2024-01-02T03:04:05.000Z ========== Starting server api ==========\\n\\n'
    """
    now = now or datetime.now(timezone.utc)
    stamp = now.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    stamp = stamp.replace("+00:00", "Z")
    return f"\n{stamp} ========== Starting server {name} ==========\n\n"
