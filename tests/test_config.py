import logging

from qemuctl.config import CONFIG, config_file_path, load_config, setup_logging


def test_defaults_without_environment():
    config = load_config({})

    assert config == CONFIG
    assert config is not CONFIG


def test_environment_overrides():
    config = load_config({
        "QEMUCTL_VMS_DIR": "/srv/vms",
        "QEMUCTL_QEMU_BINARY": "qemu-system-aarch64",
        "QEMUCTL_ENABLE_KVM": "yes",
        "QEMUCTL_LOG_LEVEL": "",
    })

    assert config["VMS_DIR"] == "/srv/vms"
    assert config["QEMU_BINARY"] == "qemu-system-aarch64"
    assert config["ENABLE_KVM"] is True
    assert config["LOG_LEVEL"] == CONFIG["LOG_LEVEL"]


def test_boolean_override_false():
    assert load_config({"QEMUCTL_ENABLE_KVM": "0"})["ENABLE_KVM"] is False


def test_config_file_path_explicit(tmp_path):
    explicit = str(tmp_path / "mine.json")

    assert config_file_path({"QEMUCTL_CONFIG": explicit}) == explicit


def test_config_file_path_xdg(tmp_path):
    assert config_file_path({"XDG_CONFIG_HOME": str(tmp_path)}) == str(tmp_path / "qemuctl" / "config.json")


def test_config_file_path_home(home):
    assert config_file_path({}) == str(home / ".config" / "qemuctl" / "config.json")


def test_setup_logging_levels():
    logger = setup_logging(verbose=True)
    assert logger.level == logging.DEBUG

    logger = setup_logging(verbose=False, level="error")
    assert logger.level == logging.ERROR
