"""
Configuration module for qemuctl

This module provides configuration settings for the application.
"""

import os
import logging
from typing import Dict, Any, Optional

from rich.logging import RichHandler

logger = logging.getLogger(__name__)

# Default configuration
CONFIG = {
    'APP_NAME': 'qemuctl',
    'CONFIG_FILE_NAME': 'config.json',
    'VMS_DIR': '~/vms',
    'LOG_LEVEL': 'WARNING',
    'QEMU_BINARY': 'qemu-system-x86_64',
    'QEMU_IMG_BINARY': 'qemu-img',
    'PKILL_BINARY': 'pkill',
    'DISK_FORMAT': 'qcow2',
    'DEFAULT_MEMORY': '2G',
    'DEFAULT_CPU': 'host',
    'DEFAULT_THREADS': '2',
    'DEFAULT_DISK_SIZE': '20G',
    'ENABLE_KVM': False,
}

# Environment variables that override a CONFIG key
ENV_OVERRIDES = {
    'QEMUCTL_VMS_DIR': 'VMS_DIR',
    'QEMUCTL_QEMU_BINARY': 'QEMU_BINARY',
    'QEMUCTL_QEMU_IMG_BINARY': 'QEMU_IMG_BINARY',
    'QEMUCTL_ENABLE_KVM': 'ENABLE_KVM',
    'QEMUCTL_LOG_LEVEL': 'LOG_LEVEL',
}

_TRUE_VALUES = ('1', 'true', 'yes', 'on')


def load_config(environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """
    Returns a copy of CONFIG overlaid with QEMUCTL_* environment variables.

    Boolean keys accept 1/true/yes/on (case-insensitive), anything else
    is treated as false.
    """
    environ = os.environ if environ is None else environ
    config = dict(CONFIG)
    for env_name, key in ENV_OVERRIDES.items():
        value = environ.get(env_name)
        if value is None or value == '':
            continue
        if isinstance(CONFIG[key], bool):
            config[key] = value.strip().lower() in _TRUE_VALUES
        else:
            config[key] = value
        logger.debug(f"Config override {key}={config[key]!r} from {env_name}")
    return config


def config_file_path(environ: Optional[Dict[str, str]] = None) -> str:
    """
    Resolves the location of the persisted VM document.

    QEMUCTL_CONFIG wins, then $XDG_CONFIG_HOME/qemuctl/config.json,
    then ~/.config/qemuctl/config.json.
    """
    environ = os.environ if environ is None else environ
    explicit = environ.get('QEMUCTL_CONFIG')
    if explicit:
        return os.path.abspath(os.path.expanduser(explicit))

    base = environ.get('XDG_CONFIG_HOME') or os.path.join(os.path.expanduser('~'), '.config')
    return os.path.join(base, CONFIG['APP_NAME'], CONFIG['CONFIG_FILE_NAME'])


def setup_logging(verbose: bool = False, level: Optional[str] = None) -> logging.Logger:
    """Set up logging for the qemuctl package"""
    app_logger = logging.getLogger(CONFIG['APP_NAME'])

    if verbose:
        resolved = logging.DEBUG
    else:
        resolved = getattr(logging, (level or CONFIG['LOG_LEVEL']).upper(), logging.WARNING)
    app_logger.setLevel(resolved)

    if not app_logger.handlers:
        console_handler = RichHandler(show_path=False, rich_tracebacks=True)
        app_logger.addHandler(console_handler)

        log_dir = os.environ.get('QEMUCTL_LOG_DIR')
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.FileHandler(
                os.path.join(log_dir, 'qemuctl.log'),
                encoding='utf-8'
            )
            file_handler.setLevel(logging.DEBUG)
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            file_handler.setFormatter(formatter)
            app_logger.addHandler(file_handler)

    for handler in app_logger.handlers:
        if isinstance(handler, RichHandler):
            handler.setLevel(resolved)

    return app_logger
