"""Launcher: starts a named server attached to the console or as a daemon."""

from __future__ import annotations

import asyncio
import codecs
import logging
import signal
import subprocess
import sys
from typing import TextIO

from .errors import BuildError, PrivilegeError, SpawnError, TerminationError
from .models import LaunchConfig, LaunchMode, start_marker
from .pidfile import PidFile
from .privilege import elevate, ensure_privilege, ensure_privilege_async, reaper_command

log = logging.getLogger(__name__)


def manual_kill_hint(pid: int) -> str:
    # The child leads its own session, so its process group id equals its pid
    return f"To kill server:\n\n   sudo kill -TERM -{pid}\n\n"


def orphan(child: subprocess.Popen) -> int:
    """Give up ownership of a detached child and return its pid.

    Nothing waits on the child afterwards.  Once the launcher exits the
    child is re-parented to init and lives on its own.  The handle is
    marked as not ours, so dropping it neither warns that the child is
    still running nor queues it for reaping.
    """
    pid = child.pid
    # Popen.__del__ only tracks children it believes it created
    child._child_created = False
    return pid


class InterruptHandler:
    """SIGINT callback that asks the reaper to take down the foreground child.

    Safe to trigger repeatedly: once a dispatch has succeeded later
    interrupts are ignored, and while one is in flight a new one is not
    started.  A failed dispatch prints the manual kill command instead of
    raising.
    """

    def __init__(self, pid: int, launch: LaunchConfig, out: TextIO | None = None) -> None:
        self.pid = pid
        self.config = launch.config
        self.out = out or sys.stdout
        self.dispatched = False
        self._task: asyncio.Task[bool] | None = None

    def __call__(self) -> None:
        if self.dispatched:
            log.info("Termination of process %d already requested", self.pid)
            return
        if self._task is not None and not self._task.done():
            log.info("Termination of process %d in progress", self.pid)
            return
        self._task = asyncio.get_running_loop().create_task(
            self.terminate(), name=f"terminate-{self.pid}",
        )

    async def terminate(self) -> bool:
        try:
            # Be sure the credentials are still cached before dispatching
            await ensure_privilege_async(self.config)
            cmd = reaper_command(self.pid, self.config)
            log.info("Executing: %s", " ".join(cmd))
            proc = await asyncio.create_subprocess_exec(*cmd)
            code = await proc.wait()
            if code != 0:
                raise TerminationError(f"Reaper exited with status {code}", code)
        except (OSError, PrivilegeError, TerminationError) as exc:
            log.error("Could not stop process %d: %s", self.pid, exc)
            self.out.write(manual_kill_hint(self.pid))
            self.out.flush()
            return False

        self.dispatched = True
        return True

    async def wait(self) -> None:
        if self._task is not None:
            await self._task


class Launcher:
    def __init__(self, launch: LaunchConfig, out: TextIO | None = None) -> None:
        self.launch = launch
        self.config = launch.config
        self.out = out or sys.stdout
        self.child_pid: int | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def run(self) -> int:
        """Validate, optionally build, then start the server.

        Returns the exit status for the launcher process: 0 right after a
        daemon spawn, the child's status in foreground mode.
        """
        self.launch.validate()

        if self.launch.build:
            self.run_build()

        if self.launch.elevated:
            ensure_privilege(self.config)

        if self.launch.mode is LaunchMode.FOREGROUND:
            return asyncio.run(self.run_foreground())
        return self.run_daemon()

    def build_command(self) -> list[str]:
        launch = self.launch
        cmd = [self.config.runtime]

        if launch.mode is LaunchMode.FOREGROUND and launch.debug:
            cmd.extend(self.config.debug_args)
        if launch.trace_warnings:
            cmd.extend(self.config.trace_args)

        cmd.append(str(launch.entry_point))

        # These come *after* the entry point: they are the server's own args
        if launch.mode is LaunchMode.FOREGROUND and launch.debug:
            cmd.extend(self.config.debug_server_args)

        if launch.elevated:
            cmd = elevate(cmd, self.config)
        return cmd

    def run_build(self) -> None:
        build = self.config.build_command
        if not build:
            log.warning("No SERVERCTL_BUILD_COMMAND configured; skipping build")
            return

        log.info("Building: %s", " ".join(build))
        try:
            subprocess.run(list(build), cwd=self.launch.base_dir, check=True)
        except (OSError, subprocess.CalledProcessError) as exc:
            raise BuildError(f"Build failed: {exc}") from exc

    def run_daemon(self) -> int:
        launch = self.launch
        cmd = self.build_command()

        with open(launch.log_path, "a") as f:
            f.write(start_marker(launch.name))

        log.info("Executing: %s", " ".join(cmd))
        with open(launch.log_path, "ab") as logfile:
            try:
                child = subprocess.Popen(
                    cmd,
                    cwd=launch.base_dir,
                    stdin=subprocess.DEVNULL,
                    stdout=logfile,
                    stderr=subprocess.STDOUT,
                    # Own session: the daemon must not share our terminal's signals
                    start_new_session=True,
                )
            except OSError as exc:
                raise SpawnError(f"Failed to start server {launch.name}: {exc}") from exc

        self.child_pid = child.pid
        log.info("Started server %s with process ID %d", launch.name, child.pid)

        PidFile(launch.pid_path).write(child.pid)
        orphan(child)
        return 0

    async def run_foreground(self) -> int:
        launch = self.launch
        cmd = self.build_command()

        self.out.write(start_marker(launch.name))
        self.out.flush()

        log.info("Executing: %s", " ".join(cmd))
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=launch.base_dir,
                start_new_session=True,
            )
        except OSError as exc:
            raise SpawnError(f"Failed to start server {launch.name}: {exc}") from exc

        self.child_pid = process.pid
        log.info("Started server %s with process ID %d", launch.name, process.pid)

        handler = InterruptHandler(process.pid, launch, out=self.out)
        loop = asyncio.get_running_loop()
        loop.add_signal_handler(signal.SIGINT, handler)  # ctrl-c

        readers = [
            asyncio.create_task(
                self._echo(process.stdout),  # type: ignore[arg-type]
                name=f"{launch.name}-stdout",
            ),
            asyncio.create_task(
                self._echo(process.stderr),  # type: ignore[arg-type]
                name=f"{launch.name}-stderr",
            ),
        ]

        try:
            code = await process.wait()
            await asyncio.gather(*readers)
        finally:
            loop.remove_signal_handler(signal.SIGINT)
            await handler.wait()

        log.info("Server %s exited with status %d", launch.name, code)
        return code

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _echo(self, stream: asyncio.StreamReader) -> None:
        """Copy a child stream to our console as chunks arrive."""
        # Chunks may split a multi-byte character
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        while True:
            chunk = await stream.read(4096)
            if not chunk:
                break
            self.out.write(decoder.decode(chunk))
            self.out.flush()
        tail = decoder.decode(b"", final=True)
        if tail:
            self.out.write(tail)
            self.out.flush()
