"""
VM Path Utilities Module

Provides home-relative path expansion and the per-VM folder layout.
"""

import os
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from .config import CONFIG

logger = logging.getLogger(__name__)


def home_dir() -> Optional[str]:
    """Returns the user's home directory, or None if it cannot be determined."""
    try:
        return str(Path.home())
    except (RuntimeError, KeyError, OSError) as e:
        logger.warning(f"Could not determine home directory: {e}")
        return None


def expand(path: str) -> str:
    """
    Replaces a leading '~' with the home directory.

    Only the first occurrence is replaced, and only when the path starts
    with it. If the home directory is unknown the input comes back as is.
    """
    if not path or not path.startswith('~'):
        return path
    home = home_dir()
    if home is None:
        return path
    return path.replace('~', home, 1)


def vm_folder(base: Optional[str] = None) -> str:
    """
    Returns the directory holding one sub-directory per VM, creating it
    if it does not exist yet.
    """
    folder = os.path.abspath(expand(base or CONFIG['VMS_DIR']))
    os.makedirs(folder, exist_ok=True)
    return folder


def get_vm_paths(vm_name: str, base: Optional[str] = None,
                 config: Optional[Dict[str, Any]] = None) -> Dict[str, str]:
    """
    Returns a dictionary of paths for a given VM name.

    The VM folder and disk format come from config (the global CONFIG by
    default); base overrides the VM folder.
    """
    config = config or CONFIG
    vm_dir = os.path.join(vm_folder(base or config['VMS_DIR']), vm_name)
    return {
        "dir": vm_dir,
        "disk": os.path.join(vm_dir, f"{vm_name}.{config['DISK_FORMAT']}"),
        "pid_file": os.path.join(vm_dir, "qemu.pid"),
    }
