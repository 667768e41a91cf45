"""archimage: bootable Arch Linux disk image builder.

Core design goals:
- One linear pipeline: device, partitions, filesystems, pacstrap, boot, setup
- Every loop device, mount and directory released on every exit path
- Declarative YAML config, never executed
- Centralized logging of every command run
"""

__all__ = []
