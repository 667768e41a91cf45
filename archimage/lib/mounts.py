from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass

from .command import run_cmd

logger = logging.getLogger(__name__)

MOUNT_DIR_PREFIX = "archimage-"


@dataclass(frozen=True)
class MountContext:
    mount_root: str

    @property
    def efi_submount(self) -> str:
        return os.path.join(self.mount_root, "boot")


def format_efi(device: str) -> None:
    run_cmd(["mkfs.fat", "-F", "32", device])


def format_root(device: str, *, label: str = "root") -> None:
    run_cmd(["mkfs.ext4", "-F", "-L", label, device])


def make_mount_root() -> str:
    path = tempfile.mkdtemp(prefix=MOUNT_DIR_PREFIX)
    logger.info("Created mount directory %s", path)
    return path


def remove_mount_root(path: str) -> None:
    os.rmdir(path)


def mount(device: str, mountpoint: str) -> None:
    run_cmd(["mount", device, mountpoint])


def umount_recursive(mountpoint: str) -> None:
    run_cmd(["umount", "--recursive", mountpoint])
