"""Tests for command assembly, daemon launch, foreground streaming and ctrl-c handling."""

import asyncio
import gc
import io
import os
import signal
import subprocess
import sys
import time
import warnings
from unittest.mock import AsyncMock, patch

import psutil
import pytest

from srvctl.config import Config
from srvctl.errors import BuildError, PrivilegeError, SpawnError, ValidationError
from srvctl.launcher import InterruptHandler, Launcher, manual_kill_hint, orphan
from srvctl.models import LaunchConfig
from srvctl.pidfile import PidFile


def _launch(base_dir, config, **kwargs):
    return LaunchConfig(name="api", base_dir=base_dir, config=config, **kwargs)


def _wait_for_text(path, text, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if path.exists() and text in path.read_text():
            return True
        time.sleep(0.05)
    return False


# =============================================================================
# COMMAND ASSEMBLY
# =============================================================================


def test_daemon_command(base_dir, config):
    cmd = Launcher(_launch(base_dir, config)).build_command()

    assert cmd == [sys.executable, str(base_dir / "api.py")]


def test_debug_flags_surround_entry_point(base_dir):
    config = Config(
        runtime="node",
        entry_suffix=".js",
        debug_args=("--inspect-brk=0.0.0.0:9229",),
        debug_server_args=("--inspect-workers", "--inspect-brokers"),
        trace_args=("--trace-warnings",),
        sudo=(),
    )
    launch = _launch(base_dir, config, debug=True, trace_warnings=True)

    assert Launcher(launch).build_command() == [
        "node",
        "--inspect-brk=0.0.0.0:9229",
        "--trace-warnings",
        str(base_dir / "api.js"),
        "--inspect-workers",
        "--inspect-brokers",
    ]


def test_debug_flags_not_used_by_plain_foreground(base_dir, config):
    cmd = Launcher(_launch(base_dir, config, foreground=True)).build_command()

    assert cmd == [sys.executable, str(base_dir / "api.py")]


def test_elevated_command_is_wrapped(base_dir):
    config = Config(runtime="python3", sudo=("sudo",))

    with patch("srvctl.privilege.is_root", return_value=False):
        cmd = Launcher(_launch(base_dir, config, elevated=True)).build_command()

    assert cmd == ["sudo", "python3", str(base_dir / "api.py")]


# =============================================================================
# DAEMON MODE
# =============================================================================


def test_daemon_writes_pid_file_and_returns_immediately(base_dir, config, make_server):
    make_server(body="import time\nprint('booted', flush=True)\ntime.sleep(1)\n")
    launcher = Launcher(_launch(base_dir, config))

    started = time.monotonic()
    assert launcher.run() == 0
    assert time.monotonic() - started < 1.0

    pid = PidFile(base_dir / "api.pid").read()
    assert pid == launcher.child_pid
    assert pid > 0

    log_path = base_dir / "log" / "api.log"
    assert "========== Starting server api ==========" in log_path.read_text()
    assert _wait_for_text(log_path, "booted")


def test_daemon_log_is_append_only(base_dir, config, make_server):
    make_server(body="")
    log_path = base_dir / "log" / "api.log"
    log_path.write_text("previous run\n")

    with patch("srvctl.launcher.subprocess.Popen") as popen:
        popen.return_value.pid = 999
        Launcher(_launch(base_dir, config)).run()

    content = log_path.read_text()
    assert content.startswith("previous run\n\n")
    assert content.endswith(" ========== Starting server api ==========\n\n")


def test_daemon_spawn_options(base_dir, config, make_server):
    make_server()

    with patch("srvctl.launcher.subprocess.Popen") as popen:
        popen.return_value.pid = 999
        Launcher(_launch(base_dir, config)).run_daemon()

    kwargs = popen.call_args.kwargs
    assert kwargs["stdin"] is subprocess.DEVNULL
    assert kwargs["stderr"] is subprocess.STDOUT
    assert kwargs["start_new_session"] is True
    assert kwargs["cwd"] == base_dir


def test_missing_entry_point_spawns_nothing(base_dir, config):
    with patch("srvctl.launcher.subprocess.Popen") as popen:
        with pytest.raises(ValidationError):
            Launcher(_launch(base_dir, config)).run()

    popen.assert_not_called()
    assert not (base_dir / "api.pid").exists()
    assert not (base_dir / "log" / "api.log").exists()


def test_spawn_error_is_reported(base_dir, make_server):
    make_server()
    config = Config(runtime=str(base_dir / "no-such-runtime"), sudo=())

    with pytest.raises(SpawnError, match="Failed to start server api"):
        Launcher(_launch(base_dir, config)).run()

    assert not (base_dir / "api.pid").exists()


def test_privilege_checked_before_elevated_spawn(base_dir, config, make_server):
    make_server()

    with patch("srvctl.launcher.ensure_privilege", side_effect=PrivilegeError("denied")), \
            patch("srvctl.launcher.subprocess.Popen") as popen:
        with pytest.raises(PrivilegeError):
            Launcher(_launch(base_dir, config, elevated=True)).run()

    popen.assert_not_called()
    assert not (base_dir / "log" / "api.log").exists()


def test_orphan_releases_handle_without_warning():
    child = subprocess.Popen(
        [sys.executable, "-c", "import time; time.sleep(30)"],
        start_new_session=True,
    )
    pid = child.pid
    try:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            assert orphan(child) == pid
            del child
            gc.collect()

        assert not [w for w in caught if issubclass(w.category, ResourceWarning)]
        assert psutil.pid_exists(pid)
    finally:
        os.kill(pid, signal.SIGKILL)
        os.waitpid(pid, 0)


def test_missing_pid_dir_fails_before_any_side_effect(base_dir, make_server):
    make_server()
    config = Config(pid_dir="bin", sudo=())

    with patch("srvctl.launcher.subprocess.Popen") as popen:
        with pytest.raises(ValidationError, match="Invalid PID file directory"):
            Launcher(_launch(base_dir, config)).run()

    popen.assert_not_called()
    assert not (base_dir / "log" / "api.log").exists()


def test_existing_pid_dir_receives_pid_file(base_dir, make_server):
    make_server()
    (base_dir / "bin").mkdir()
    config = Config(pid_dir="bin", sudo=())

    with patch("srvctl.launcher.subprocess.Popen") as popen:
        popen.return_value.pid = 777
        assert Launcher(_launch(base_dir, config)).run() == 0

    assert PidFile(base_dir / "bin" / "api.pid").read() == 777


# =============================================================================
# BUILD STEP
# =============================================================================


def test_build_without_command_is_skipped(base_dir, config, make_server):
    make_server()

    with patch("srvctl.launcher.subprocess.run") as run:
        Launcher(_launch(base_dir, config, build=True)).run_build()

    run.assert_not_called()


def test_build_runs_in_base_dir(base_dir, make_server):
    config = Config(build_command=("make", "assets"), sudo=())

    with patch("srvctl.launcher.subprocess.run") as run:
        Launcher(_launch(base_dir, config, build=True)).run_build()

    run.assert_called_once_with(["make", "assets"], cwd=base_dir, check=True)


def test_build_failure_stops_launch(base_dir, make_server):
    make_server()
    config = Config(build_command=("false",), sudo=())
    error = subprocess.CalledProcessError(2, ["false"])

    with patch("srvctl.launcher.subprocess.run", side_effect=error), \
            patch("srvctl.launcher.subprocess.Popen") as popen:
        with pytest.raises(BuildError):
            Launcher(_launch(base_dir, config, build=True)).run()

    popen.assert_not_called()


# =============================================================================
# FOREGROUND MODE
# =============================================================================


async def test_foreground_streams_output_and_returns_status(base_dir, config, make_server):
    make_server(body="import sys\nprint('out line')\nprint('err line', file=sys.stderr)\nsys.exit(3)\n")
    out = io.StringIO()
    launcher = Launcher(_launch(base_dir, config, foreground=True), out=out)
    launcher.launch.validate()

    code = await launcher.run_foreground()

    assert code == 3
    text = out.getvalue()
    assert "========== Starting server api ==========" in text
    assert "out line\n" in text
    assert "err line\n" in text
    assert not (base_dir / "api.pid").exists()


async def test_foreground_streams_lines_longer_than_reader_limit(base_dir, config, make_server):
    make_server(body="import sys\nsys.stdout.write('x' * 200000 + '\\n')\n")
    out = io.StringIO()
    launcher = Launcher(_launch(base_dir, config, foreground=True), out=out)
    launcher.launch.validate()

    code = await launcher.run_foreground()

    assert code == 0
    assert "x" * 200000 + "\n" in out.getvalue()


async def test_foreground_keeps_multibyte_characters_intact(base_dir, config, make_server):
    # A one-byte prefix puts a character boundary across every 4096-byte read
    make_server(body="import sys\nsys.stdout.buffer.write(b'a' + '\\u00e9'.encode() * 5000)\n")
    out = io.StringIO()
    launcher = Launcher(_launch(base_dir, config, foreground=True), out=out)
    launcher.launch.validate()

    assert await launcher.run_foreground() == 0

    assert "\u00e9" * 5000 in out.getvalue()
    assert "\ufffd" not in out.getvalue()


async def test_sigint_reaps_foreground_child_and_returns(base_dir, config, make_server):
    make_server(body="import time\nprint('ready', flush=True)\ntime.sleep(60)\n")
    out = io.StringIO()
    launcher = Launcher(_launch(base_dir, config, foreground=True), out=out)
    launcher.launch.validate()

    run = asyncio.create_task(launcher.run_foreground())
    # Output only starts flowing once the SIGINT handler is installed
    for _ in range(200):
        if "ready" in out.getvalue():
            break
        await asyncio.sleep(0.05)
    else:
        run.cancel()
        pytest.fail("foreground server never started")

    child_pid = launcher.child_pid
    os.kill(os.getpid(), signal.SIGINT)

    code = await asyncio.wait_for(run, timeout=30)

    assert code == -signal.SIGTERM
    assert not psutil.pid_exists(child_pid)
    assert "To kill server" not in out.getvalue()
    assert not (base_dir / "api.pid").exists()


# =============================================================================
# INTERRUPT HANDLING
# =============================================================================


def _reaper_proc(returncode=0):
    proc = AsyncMock()
    proc.wait.return_value = returncode
    return proc


async def test_interrupt_dispatches_reaper(base_dir, config):
    out = io.StringIO()
    handler = InterruptHandler(4242, _launch(base_dir, config), out=out)
    spawn = AsyncMock(return_value=_reaper_proc())

    with patch("srvctl.launcher.ensure_privilege_async", AsyncMock()) as ensure, \
            patch("srvctl.launcher.asyncio.create_subprocess_exec", spawn):
        handler()
        await handler.wait()

    ensure.assert_awaited_once_with(config)
    assert spawn.call_args.args == (sys.executable, "-m", "srvctl.reaper", "4242")
    assert handler.dispatched
    assert out.getvalue() == ""


async def test_repeated_interrupt_dispatches_once(base_dir, config):
    handler = InterruptHandler(4242, _launch(base_dir, config), out=io.StringIO())
    spawn = AsyncMock(return_value=_reaper_proc())

    with patch("srvctl.launcher.ensure_privilege_async", AsyncMock()), \
            patch("srvctl.launcher.asyncio.create_subprocess_exec", spawn):
        handler()
        handler()
        await handler.wait()
        handler()
        await handler.wait()

    assert spawn.await_count == 1


async def test_reauth_failure_prints_manual_instruction(base_dir, config):
    out = io.StringIO()
    handler = InterruptHandler(4242, _launch(base_dir, config), out=out)
    spawn = AsyncMock()

    with patch("srvctl.launcher.ensure_privilege_async", AsyncMock(side_effect=PrivilegeError("no"))), \
            patch("srvctl.launcher.asyncio.create_subprocess_exec", spawn):
        handler()
        await handler.wait()

    spawn.assert_not_called()
    assert not handler.dispatched
    assert out.getvalue() == "To kill server:\n\n   sudo kill -TERM -4242\n\n"


async def test_failed_dispatch_can_be_retried(base_dir, config):
    handler = InterruptHandler(4242, _launch(base_dir, config), out=io.StringIO())
    spawn = AsyncMock(side_effect=[_reaper_proc(1), _reaper_proc(0)])

    with patch("srvctl.launcher.ensure_privilege_async", AsyncMock()), \
            patch("srvctl.launcher.asyncio.create_subprocess_exec", spawn):
        assert await handler.terminate() is False
        assert await handler.terminate() is True

    assert handler.dispatched


def test_manual_kill_hint_targets_process_group():
    assert "sudo kill -TERM -17" in manual_kill_hint(17)
