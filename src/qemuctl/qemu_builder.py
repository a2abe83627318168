"""
QEMU Command Builder Module

Provides QEMU command construction functions for VM records.
"""

from typing import Dict, List, Optional, Any

from .config import CONFIG


def build_qemu_img_command(disk_path: str, size: str, config: Optional[Dict[str, Any]] = None) -> List[str]:
    """Builds the `qemu-img create` command that allocates a disk image."""
    config = config or CONFIG
    return [config['QEMU_IMG_BINARY'], "create", "-f", config['DISK_FORMAT'], disk_path, size]


def build_qemu_command(record, headless: bool = False, boot_from_iso: bool = False,
                       config: Optional[Dict[str, Any]] = None) -> List[str]:
    """
    Builds the hypervisor command line for a VM record.

    The ISO, if the record has one, is attached with -cdrom; boot_from_iso
    additionally makes it the first boot device. headless suppresses the
    graphical display.
    """
    config = config or CONFIG

    qemu_cmd = [config['QEMU_BINARY']]
    if config.get('ENABLE_KVM'):
        qemu_cmd.append("-enable-kvm")

    qemu_cmd.extend([
        "-name", record.name,
        "-m", record.memory,
        "-cpu", record.cpu,
        "-smp", record.threads,
        "-drive", f"file={record.disk},format={config['DISK_FORMAT']}",
    ])

    if record.iso:
        qemu_cmd.extend(["-cdrom", record.iso])
        if boot_from_iso:
            qemu_cmd.extend(["-boot", "d"])

    if headless:
        qemu_cmd.extend(["-display", "none"])

    return qemu_cmd
