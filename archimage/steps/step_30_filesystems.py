from __future__ import annotations

import logging
import os
from typing import Any, Dict

from ..lib.block import ResolvedPartitionDevices
from ..lib.mounts import (
    MountContext,
    format_efi,
    format_root,
    make_mount_root,
    mount,
    remove_mount_root,
    umount_recursive,
)
from ..pipeline import BuildCtx

logger = logging.getLogger(__name__)


class FilesystemsStep:
    step_id = "30_filesystems"

    def run(self, ctx: BuildCtx, state: Dict[str, Any]) -> Dict[str, Any]:
        parts = state.get("partitions")
        if not isinstance(parts, ResolvedPartitionDevices):
            raise RuntimeError("Missing partitions; run partition step first")

        format_efi(parts.efi_device_path)
        format_root(parts.root_device_path)

        mount_root = make_mount_root()
        # Registered before mounting so a failed mount still removes it.
        ctx.cleanup.push(f"remove mount directory {mount_root}", remove_mount_root, mount_root)

        mounts = MountContext(mount_root=mount_root)
        mount(parts.root_device_path, mount_root)
        # One recursive unmount covers the ESP below, which must go first.
        ctx.cleanup.push(f"unmount {mount_root} recursively", umount_recursive, mount_root)

        os.makedirs(mounts.efi_submount, exist_ok=True)
        mount(parts.efi_device_path, mounts.efi_submount)

        logger.info("Mounted root=%s efi=%s", mount_root, mounts.efi_submount)
        state["mounts"] = mounts
        return state
