"""
VM Lifecycle Operations Module

This module provides VM lifecycle management on top of the record store:
- create: allocate a disk image, register the VM, optionally boot its ISO
- start: launch a registered VM detached from this process
- stop: terminate the VM's hypervisor process
- delete: stop, remove disk and folder, unregister
- list: registered VMs plus a live snapshot of hypervisor processes
"""

import os
import logging
import subprocess
from enum import Enum
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple, Any

from .config import CONFIG
from .core_utils import format_command, remove_dir, remove_file, run_command_live
from .error_handling import (
    ExternalCommandFailedError, QemuctlError, ValidationError,
    VMAlreadyRunningError, VMNotFoundError
)
from .process_locator import ProcessLocator, RunningVM
from .qemu_builder import build_qemu_command, build_qemu_img_command
from .record_store import RecordStore, VMRecord
from .vm_paths import expand, get_vm_paths

logger = logging.getLogger(__name__)


class LaunchMode(Enum):
    """How a freshly created VM with an ISO is booted"""
    GUI = "gui"
    HEADLESS = "headless"


@dataclass
class CreateResult:
    record: VMRecord
    image_created: bool
    pid: Optional[int] = None
    launch_error: Optional[str] = None


@dataclass
class DeleteResult:
    record: VMRecord
    stopped: bool = False
    warnings: List[str] = field(default_factory=list)


def launch_detached(cmd: List[str]) -> int:
    """
    Spawns cmd in its own session with all standard streams on the null
    device and returns its PID without waiting for it.

    Raises:
        ExternalCommandFailedError: if the process cannot be spawned
    """
    logger.debug(f"Launching detached: {format_command(cmd)}")
    try:
        process = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            preexec_fn=os.setsid
        )
    except (OSError, ValueError) as e:
        raise ExternalCommandFailedError(
            f"Could not launch '{cmd[0]}': {e}",
            command=cmd,
            original_exception=e,
        ) from e
    return process.pid


def validate_vm_name(name: Optional[str]) -> str:
    """Returns the name unchanged, or raises ValidationError."""
    if not name or not name.strip():
        raise ValidationError("VM name must not be empty")
    if name != name.strip():
        raise ValidationError(
            f"Invalid VM name '{name}'",
            suggestions=["Remove leading and trailing whitespace from the name"],
        )
    if name in ('.', '..') or '/' in name or '\0' in name:
        raise ValidationError(
            f"Invalid VM name '{name}'",
            suggestions=["The name is used as a folder name; avoid '/' and '.'/'..'"],
        )
    return name


class VMManager:
    """
    Coordinates VM lifecycle operations against the record store and the
    live process table.
    """

    def __init__(self,
                 store: Optional[RecordStore] = None,
                 locator: Optional[ProcessLocator] = None,
                 config: Optional[Dict[str, Any]] = None,
                 image_runner: Callable[..., Optional[str]] = run_command_live,
                 launcher: Callable[[List[str]], int] = launch_detached,
                 quiet: bool = False):
        self.config = config or CONFIG
        self.store = store if store is not None else RecordStore.load()
        self.locator = locator or ProcessLocator(self.config)
        self.image_runner = image_runner
        self.launcher = launcher
        self.quiet = quiet

    def _require(self, vm_name: str) -> VMRecord:
        record = self.store.get(vm_name)
        if record is None:
            raise VMNotFoundError(vm_name)
        return record

    def _launch(self, record: VMRecord, headless: bool, boot_from_iso: bool) -> int:
        cmd = build_qemu_command(record, headless=headless, boot_from_iso=boot_from_iso, config=self.config)
        pid = self.launcher(cmd)
        if os.path.isdir(os.path.dirname(record.disk)):
            self.locator.write_pid_file(record.name, pid)
        logger.info(f"Launched VM '{record.name}' (PID: {pid})")
        return pid

    def create(self, name: str, memory: Optional[str] = None, disk_size: Optional[str] = None,
               threads: Optional[str] = None, iso: Optional[str] = "", cpu: Optional[str] = None,
               launch: Optional[str] = None) -> CreateResult:
        """
        Allocate the disk image, then register and persist the VM.

        Refuses with VMAlreadyRunningError while the VM is running, before
        its disk image is touched. A failed image creation is reported
        through the result but the record is still saved. When the VM has an ISO and a launch mode
        ("gui" or "headless") is given, the VM is booted from the ISO.
        """
        name = validate_vm_name(name)
        try:
            mode = LaunchMode(launch) if launch else None
        except ValueError:
            raise ValidationError(f"Unknown launch mode '{launch}'", suggestions=["Use 'gui' or 'headless'"])

        pids = self.locator.find_pids(name)
        if pids:
            raise VMAlreadyRunningError(name, pids)

        memory = memory or self.config['DEFAULT_MEMORY']
        disk_size = disk_size or self.config['DEFAULT_DISK_SIZE']
        threads = threads or self.config['DEFAULT_THREADS']
        cpu = cpu or self.config['DEFAULT_CPU']
        iso_path = os.path.abspath(expand(iso)) if iso else ""

        paths = get_vm_paths(name, config=self.config)
        image_created = False
        try:
            os.makedirs(paths['dir'], exist_ok=True)
            output = self.image_runner(
                build_qemu_img_command(paths['disk'], disk_size, self.config),
                check=True, quiet=self.quiet
            )
            image_created = output is not None
        except OSError as e:
            logger.warning(f"Could not prepare folder for VM '{name}': {e}")

        if not image_created:
            logger.warning(f"Disk image for VM '{name}' was not created; registering it anyway")

        record = VMRecord(
            name=name,
            memory=str(memory),
            cpu=str(cpu),
            threads=str(threads),
            disk=paths['disk'],
            iso=iso_path,
        )
        self.store.insert(record)
        self.store.save()
        result = CreateResult(record=record, image_created=image_created)

        if record.iso and mode is not None:
            try:
                result.pid = self._launch(record, headless=mode is LaunchMode.HEADLESS, boot_from_iso=True)
            except ExternalCommandFailedError as e:
                logger.warning(f"VM '{name}' registered but could not be launched: {e}")
                result.launch_error = str(e)

        return result

    def start(self, name: str, headless: bool = False) -> int:
        """
        Launch a registered VM. Only one instance per name may run.

        Raises:
            VMNotFoundError, VMAlreadyRunningError, ExternalCommandFailedError
        """
        record = self._require(name)
        pids = self.locator.find_pids(name)
        if pids:
            raise VMAlreadyRunningError(name, pids)
        return self._launch(record, headless=headless, boot_from_iso=False)

    def stop(self, name: str) -> bool:
        """
        Terminate the VM's hypervisor process.

        SIGTERM via pkill first; if pkill cannot be run at all, each
        matching PID is force-killed. Returns True only when the pkill
        path succeeded.
        """
        self._require(name)
        try:
            stopped = self.locator.terminate_by_pattern(name)
        except ExternalCommandFailedError as e:
            logger.warning(f"{e}; force-killing matching processes instead")
            pids = self.locator.find_pids(name)
            killed = self.locator.kill_pids(pids)
            logger.info(f"Force-killed {killed} of {len(pids)} process(es) for VM '{name}'")
            stopped = False

        self.locator.remove_pid_file(name)
        return stopped

    def delete(self, name: str) -> DeleteResult:
        """
        Stop the VM if it is alive, remove its disk and folder, then
        unregister it. Removal failures end up in the result's warnings.
        """
        record = self._require(name)
        result = DeleteResult(record=record)

        if self.locator.is_running(name):
            try:
                result.stopped = self.stop(name)
            except QemuctlError as e:
                result.warnings.append(f"Could not stop VM '{name}': {e}")

        if os.path.lexists(record.disk) and not remove_file(record.disk, quiet=True):
            result.warnings.append(f"Could not remove disk image {record.disk}")

        vm_dir = get_vm_paths(name, config=self.config)['dir']
        if os.path.isdir(vm_dir) and not remove_dir(vm_dir, quiet=True):
            result.warnings.append(f"Could not remove VM folder {vm_dir}")

        for warning in result.warnings:
            logger.warning(warning)

        self.store.remove(name)
        self.store.save()
        return result

    def list(self) -> Tuple[List[VMRecord], List[RunningVM]]:
        """Registered VMs and, independently, the live hypervisor processes."""
        return self.store.records(), self.locator.list_running()

    def is_running(self, name: str) -> bool:
        return self.locator.is_running(name)
