"""
Process Locator Module

Finds hypervisor processes belonging to a VM name. A process belongs to a
VM when its command line carries ``-name <vm_name>`` with the name as an
exact token, so 'web' never matches a process launched as 'web2'.

Every launch also records its PID in the VM's ``qemu.pid`` side index. The
side index is consulted first; the process table scan catches VMs started
by other means. Query failures are logged and reported as "not running".
"""

import os
import logging
import subprocess
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple, Any

import psutil

from .config import CONFIG
from .error_handling import ExternalCommandFailedError
from .vm_paths import get_vm_paths

logger = logging.getLogger(__name__)

_ERE_SPECIAL = set('\\.[]{}()*+?^$|')


def ere_escape(text: str) -> str:
    """Escapes text for use in a POSIX extended regular expression (pkill)."""
    return ''.join('\\' + c if c in _ERE_SPECIAL else c for c in text)


def display_name(cmdline: List[str]) -> Optional[str]:
    """Returns the value of the first ``-name`` argument, if any."""
    for i, arg in enumerate(cmdline[:-1]):
        if arg == '-name':
            return cmdline[i + 1]
    return None


@dataclass
class RunningVM:
    """Snapshot of one live hypervisor process"""
    pid: int
    name: Optional[str]
    command_line: str


class ProcessLocator:
    """
    Queries the OS process table for hypervisor processes.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or CONFIG
        self.binary = self.config['QEMU_BINARY']

    # --- matching ---

    def is_hypervisor(self, cmdline: List[str]) -> bool:
        if not cmdline:
            return False
        exe = os.path.basename(cmdline[0])
        return exe == os.path.basename(self.binary) or exe.startswith('qemu-system')

    def matches(self, cmdline: List[str], vm_name: str) -> bool:
        return self.is_hypervisor(cmdline) and display_name(cmdline) == vm_name

    def pkill_pattern(self, vm_name: str) -> str:
        """pkill -f pattern matching the launch command line of vm_name."""
        exe = ere_escape(os.path.basename(self.binary))
        return f"{exe}.* -name {ere_escape(vm_name)}( |$)"

    # --- process table ---

    def _iter_hypervisors(self) -> Iterator[Tuple[int, List[str]]]:
        for proc in psutil.process_iter(['pid', 'cmdline']):
            cmdline = proc.info.get('cmdline') or []
            if self.is_hypervisor(cmdline):
                yield proc.info['pid'], cmdline

    def _process_matches(self, pid: int, vm_name: str) -> bool:
        try:
            proc = psutil.Process(pid)
            if proc.status() == psutil.STATUS_ZOMBIE:
                return False
            return self.matches(proc.cmdline(), vm_name)
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            return False

    def find_pids(self, vm_name: str) -> List[int]:
        """Returns the PIDs of all live hypervisor processes for vm_name."""
        pids = []
        try:
            recorded = self.read_pid_file(vm_name)
            if recorded is not None:
                if self._process_matches(recorded, vm_name):
                    pids.append(recorded)
                else:
                    logger.debug(f"Stale pidfile for VM '{vm_name}' (PID {recorded})")
                    self.remove_pid_file(vm_name)

            for pid, cmdline in self._iter_hypervisors():
                if pid not in pids and display_name(cmdline) == vm_name:
                    pids.append(pid)
        except (psutil.Error, OSError) as e:
            logger.warning(f"Process query for VM '{vm_name}' failed: {e}")
            return []
        return pids

    def is_running(self, vm_name: str) -> bool:
        return bool(self.find_pids(vm_name))

    def list_running(self) -> List[RunningVM]:
        """Live snapshot of every hypervisor process, named or not."""
        try:
            return [
                RunningVM(pid=pid, name=display_name(cmdline), command_line=' '.join(cmdline))
                for pid, cmdline in self._iter_hypervisors()
            ]
        except (psutil.Error, OSError) as e:
            logger.warning(f"Listing hypervisor processes failed: {e}")
            return []

    # --- termination ---

    def terminate_by_pattern(self, vm_name: str) -> bool:
        """
        Sends SIGTERM through ``pkill -f`` to every process matching vm_name.

        Returns True when pkill ran cleanly, whether or not anything matched.

        Raises:
            ExternalCommandFailedError: if pkill cannot be invoked
        """
        cmd = [self.config.get('PKILL_BINARY', 'pkill'), '-f', self.pkill_pattern(vm_name)]
        logger.debug(f"Executing: {cmd}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise ExternalCommandFailedError(
                f"Could not invoke '{cmd[0]}': {e}",
                command=cmd,
                original_exception=e,
            ) from e

        # pkill: 0 = signalled, 1 = nothing matched, >1 = error
        if result.returncode > 1:
            logger.warning(f"pkill exited with {result.returncode}: {result.stderr.strip()}")
            return False
        if result.returncode == 1:
            logger.info(f"No process matched VM '{vm_name}'")
        return True

    def kill_pids(self, pids: List[int]) -> int:
        """Force-kills each PID. Returns how many were killed."""
        killed = 0
        for pid in pids:
            try:
                psutil.Process(pid).kill()
                killed += 1
                logger.info(f"Sent SIGKILL to PID {pid}")
            except psutil.NoSuchProcess:
                logger.debug(f"PID {pid} already gone")
            except psutil.AccessDenied as e:
                logger.warning(f"Not allowed to kill PID {pid}: {e}")
        return killed

    # --- pidfile side index ---

    def _pid_file(self, vm_name: str) -> str:
        return get_vm_paths(vm_name, config=self.config)['pid_file']

    def read_pid_file(self, vm_name: str) -> Optional[int]:
        pid_file = self._pid_file(vm_name)
        try:
            with open(pid_file, 'r', encoding='utf-8') as f:
                return int(f.read().strip())
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable pidfile {pid_file}: {e}")
            return None

    def write_pid_file(self, vm_name: str, pid: int) -> bool:
        pid_file = self._pid_file(vm_name)
        try:
            with open(pid_file, 'w', encoding='utf-8') as f:
                f.write(f"{pid}\n")
            return True
        except OSError as e:
            logger.warning(f"Could not record PID {pid} in {pid_file}: {e}")
            return False

    def remove_pid_file(self, vm_name: str) -> None:
        try:
            os.remove(self._pid_file(vm_name))
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove pidfile for VM '{vm_name}': {e}")
