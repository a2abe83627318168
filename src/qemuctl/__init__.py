"""
qemuctl - a small QEMU VM manager

Stores VM definitions in a per-user JSON registry and drives qemu-img and
qemu-system-x86_64 to create, start, stop and delete them.
"""

__version__ = "0.1.0"
