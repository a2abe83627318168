import pytest
from click.testing import CliRunner

from qemuctl import __version__
from qemuctl.main import EXIT_FAILURE, EXIT_PERSIST_FAILED, cli
from qemuctl.record_store import RecordStore

runner = CliRunner()


@pytest.fixture
def invoke(manager, config):
    def _invoke(*args, **kwargs):
        return runner.invoke(cli, list(args), obj={"manager": manager, "config": config}, **kwargs)
    return _invoke


def test_version() -> None:
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert f"qemuctl, version {__version__}" in result.output


def test_help() -> None:
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "QEMU VM Management CLI" in result.output
    for command in ("create", "start", "stop", "delete", "list"):
        assert command in result.output


def test_create(invoke, manager, launcher, config_path):
    result = invoke("create", "vm1", "-m", "4G", "-t", "4", "-s", "8G")

    assert result.exit_code == 0, result.output
    assert "created and saved" in result.output
    record = RecordStore.load(config_path).get("vm1")
    assert (record.memory, record.threads, record.cpu) == ("4G", "4", "host")
    assert launcher.calls == []


def test_create_headless_boot(invoke, launcher):
    result = invoke("create", "vm2", "-i", "/iso/x.iso", "--headless")

    assert result.exit_code == 0, result.output
    assert "-display" in launcher.calls[0]
    assert "launched" in result.output


def test_create_no_launch_only_registers(invoke, launcher, config_path):
    result = invoke("create", "vm2", "-i", "/iso/x.iso", "--headless", "--no-launch")

    assert result.exit_code == 0, result.output
    assert launcher.calls == []
    assert RecordStore.load(config_path).get("vm2").iso == "/iso/x.iso"


def test_start_unknown_vm_fails(invoke, launcher):
    result = invoke("start", "ghost")

    assert result.exit_code == EXIT_FAILURE
    assert launcher.calls == []


def test_start_and_stop(invoke, manager, launcher, locator):
    manager.create("vm1")

    started = invoke("start", "vm1", "--headless")
    stopped = invoke("stop", "vm1")

    assert started.exit_code == 0, started.output
    assert "-display" in launcher.calls[-1]
    assert stopped.exit_code == 0, stopped.output
    locator.terminate_by_pattern.assert_called_once_with("vm1")


def test_stop_failure_exit_code(invoke, manager, locator):
    manager.create("vm1")
    locator.terminate_by_pattern.return_value = False

    result = invoke("stop", "vm1")

    assert result.exit_code == EXIT_FAILURE
    assert "could not be stopped cleanly" in result.output
    assert "force-killed" not in result.output
    locator.kill_pids.assert_not_called()


def test_delete_with_confirmation_flag(invoke, manager, config_path):
    manager.create("vm1")

    result = invoke("delete", "vm1", "--yes")

    assert result.exit_code == 0, result.output
    assert RecordStore.load(config_path).get("vm1") is None


def test_delete_aborted_at_prompt(invoke, manager):
    manager.create("vm1")

    result = invoke("delete", "vm1", input="n\n")

    assert result.exit_code != 0
    assert manager.store.get("vm1") is not None


def test_delete_unknown_vm(invoke):
    assert invoke("delete", "ghost", "--yes").exit_code == EXIT_FAILURE


def test_list(invoke, manager):
    manager.create("alpha", memory="3G")

    result = invoke("list")

    assert result.exit_code == 0, result.output
    assert "alpha" in result.output
    assert "No running VMs" in result.output


def test_persist_failure_exit_code(invoke, manager, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("")
    manager.store.path = str(blocker / "config.json")

    result = invoke("create", "vm1")

    assert result.exit_code == EXIT_PERSIST_FAILED


def test_menu_lists_then_exits(manager):
    from unittest.mock import MagicMock, patch
    from qemuctl.main import EXIT_CHOICE, vm_menu

    manager.create("alpha")
    prompt = MagicMock()
    prompt.ask.side_effect = ["5. List VMs", EXIT_CHOICE]

    with patch("qemuctl.main.questionary.select", return_value=prompt), \
            patch("qemuctl.main.render_vm_list") as render, \
            patch("qemuctl.main.wait_for_enter"):
        vm_menu(manager)

    records, running = render.call_args[0]
    assert [r.name for r in records] == ["alpha"]
    assert prompt.ask.call_count == 2
