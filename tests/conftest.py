"""Shared fixtures: a throwaway server layout and a sudo-free config."""

import sys

import pytest

from srvctl.config import Config


@pytest.fixture
def config():
    return Config(runtime=sys.executable, entry_suffix=".py", sudo=(), sudo_noop=("true",))


@pytest.fixture
def base_dir(tmp_path):
    (tmp_path / "log").mkdir()
    return tmp_path


@pytest.fixture
def make_server(base_dir):
    """Write ``<base_dir>/<name>.py`` with the given body and return its path."""

    def _make(name="api", body="print('hello from server')\n"):
        path = base_dir / f"{name}.py"
        path.write_text(body)
        return path

    return _make


@pytest.fixture(autouse=True)
def no_sudo_env(monkeypatch):
    monkeypatch.setenv("SERVERCTL_SUDO", "")
    monkeypatch.delenv("SERVERCTL_PID_DIR", raising=False)
    monkeypatch.delenv("SERVERCTL_BUILD_COMMAND", raising=False)
