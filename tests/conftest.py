import os

import pytest
from unittest.mock import MagicMock

from qemuctl.config import load_config
from qemuctl.process_locator import ProcessLocator
from qemuctl.record_store import RecordStore
from qemuctl.vm_lifecycle import VMManager


@pytest.fixture
def home(tmp_path, monkeypatch):
    """Points HOME at a temporary directory."""
    home_dir = tmp_path / "home"
    home_dir.mkdir()
    monkeypatch.setenv("HOME", str(home_dir))
    return home_dir


@pytest.fixture
def config(home):
    """Default configuration, untouched by the caller's environment."""
    return load_config({})


@pytest.fixture
def config_path(tmp_path):
    return str(tmp_path / "config" / "qemuctl" / "config.json")


@pytest.fixture
def store(config_path):
    return RecordStore(path=config_path)


@pytest.fixture
def locator():
    """A ProcessLocator double that reports nothing running."""
    mock = MagicMock(spec=ProcessLocator)
    mock.find_pids.return_value = []
    mock.is_running.return_value = False
    mock.list_running.return_value = []
    mock.terminate_by_pattern.return_value = True
    mock.kill_pids.return_value = 0
    return mock


class FakeImageRunner:
    """Stands in for run_command_live when creating disk images."""

    def __init__(self, succeed=True):
        self.succeed = succeed
        self.calls = []

    def __call__(self, cmd, check=True, quiet=False):
        self.calls.append(cmd)
        if not self.succeed:
            return None
        # qemu-img create -f qcow2 <path> <size>
        with open(cmd[4], "wb") as f:
            f.write(b"QFI\xfb")
        return ""


class FakeLauncher:
    """Stands in for launch_detached; records every command."""

    def __init__(self, pid=4242, error=None):
        self.pid = pid
        self.error = error
        self.calls = []

    def __call__(self, cmd):
        self.calls.append(cmd)
        if self.error is not None:
            raise self.error
        return self.pid


@pytest.fixture
def image_runner():
    return FakeImageRunner()


@pytest.fixture
def launcher():
    return FakeLauncher()


@pytest.fixture
def manager(store, locator, config, image_runner, launcher):
    return VMManager(
        store=store,
        locator=locator,
        config=config,
        image_runner=image_runner,
        launcher=launcher,
        quiet=True,
    )


@pytest.fixture
def vms_dir(home):
    return os.path.join(str(home), "vms")
