from __future__ import annotations

import logging
import os
import shlex
import sys
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .errors import ValidationError

DEFAULT_DEBUG_ARGS = "-m debugpy --listen 0.0.0.0:5678 --wait-for-client"
# SocketCluster-style inspection switches for workers and brokers
DEFAULT_DEBUG_SERVER_ARGS = "--inspect-workers --inspect-brokers"
DEFAULT_TRACE_ARGS = "-W always"


def _split(raw: str) -> tuple[str, ...]:
    return tuple(shlex.split(raw))


@dataclass(frozen=True)
class Config:
    runtime: str = sys.executable
    entry_suffix: str = ".py"
    debug_args: tuple[str, ...] = field(default_factory=lambda: _split(DEFAULT_DEBUG_ARGS))
    debug_server_args: tuple[str, ...] = field(
        default_factory=lambda: _split(DEFAULT_DEBUG_SERVER_ARGS)
    )
    trace_args: tuple[str, ...] = field(default_factory=lambda: _split(DEFAULT_TRACE_ARGS))
    sudo: tuple[str, ...] = ("sudo",)
    sudo_noop: tuple[str, ...] = ("true",)
    pid_dir: str = ""
    default_name: str = "server"
    build_command: tuple[str, ...] = ()
    log_level: str = "INFO"

    def resolve_dir(self, directory: str | Path, what: str = "base") -> Path:
        """Resolve a user-supplied directory, which must already exist.

        Raises ValidationError naming the kind of directory otherwise, e.g.
        ``Invalid log directory /var/log/missing``.
        """
        resolved = Path(directory).expanduser().resolve()
        if not resolved.is_dir():
            raise ValidationError(f"Invalid {what} directory {directory}")
        return resolved

    def pid_path(self, base_dir: str | Path, name: str) -> Path:
        """PID file location shared by the launcher and the terminator."""
        return Path(base_dir) / self.pid_dir / f"{name}.pid"

    @property
    def numeric_log_level(self) -> int:
        return getattr(logging, self.log_level.upper(), logging.INFO)

    @classmethod
    def from_env(cls, env_path: str | Path | None = None) -> Config:
        load_dotenv(env_path)

        return cls(
            runtime=os.getenv("SERVERCTL_RUNTIME", sys.executable),
            entry_suffix=os.getenv("SERVERCTL_ENTRY_SUFFIX", ".py"),
            debug_args=_split(os.getenv("SERVERCTL_DEBUG_ARGS", DEFAULT_DEBUG_ARGS)),
            debug_server_args=_split(
                os.getenv("SERVERCTL_DEBUG_SERVER_ARGS", DEFAULT_DEBUG_SERVER_ARGS)
            ),
            trace_args=_split(os.getenv("SERVERCTL_TRACE_ARGS", DEFAULT_TRACE_ARGS)),
            sudo=_split(os.getenv("SERVERCTL_SUDO", "sudo")),
            sudo_noop=_split(os.getenv("SERVERCTL_SUDO_NOOP", "true")),
            pid_dir=os.getenv("SERVERCTL_PID_DIR", ""),
            default_name=os.getenv("SERVERCTL_DEFAULT_NAME", "server"),
            build_command=_split(os.getenv("SERVERCTL_BUILD_COMMAND", "")),
            log_level=os.getenv("SERVERCTL_LOG_LEVEL", "INFO"),
        )
