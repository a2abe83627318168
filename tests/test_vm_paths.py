import os
from pathlib import Path

import pytest

from qemuctl import vm_paths


def test_expand_replaces_leading_tilde(home):
    assert vm_paths.expand("~/vms") == os.path.join(str(home), "vms")


def test_expand_replaces_only_first_tilde(home):
    assert vm_paths.expand("~/a~b") == f"{home}/a~b"


@pytest.mark.parametrize("path", ["/abs/path", "rel/path", "a/~/b", ""])
def test_expand_leaves_other_paths_alone(home, path):
    assert vm_paths.expand(path) == path


def test_expand_degrades_without_home(monkeypatch):
    def no_home():
        raise RuntimeError("Could not determine home directory.")

    monkeypatch.setattr(Path, "home", staticmethod(no_home))

    assert vm_paths.expand("~/vms") == "~/vms"


def test_vm_folder_is_created(home):
    folder = vm_paths.vm_folder()

    assert folder == os.path.join(str(home), "vms")
    assert os.path.isdir(folder)


def test_vm_folder_accepts_override(tmp_path):
    target = tmp_path / "elsewhere" / "vms"

    assert vm_paths.vm_folder(str(target)) == str(target)
    assert target.is_dir()


def test_get_vm_paths(home):
    paths = vm_paths.get_vm_paths("web")

    vm_dir = os.path.join(str(home), "vms", "web")
    assert paths == {
        "dir": vm_dir,
        "disk": os.path.join(vm_dir, "web.qcow2"),
        "pid_file": os.path.join(vm_dir, "qemu.pid"),
    }


def test_get_vm_paths_follows_given_config(home, tmp_path):
    config = dict(vm_paths.CONFIG, VMS_DIR=str(tmp_path / "images"), DISK_FORMAT="raw")

    paths = vm_paths.get_vm_paths("web", config=config)

    assert paths["dir"] == str(tmp_path / "images" / "web")
    assert paths["disk"] == str(tmp_path / "images" / "web" / "web.raw")
