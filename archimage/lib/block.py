from __future__ import annotations

import enum
import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..errors import DeviceResolutionError
from . import env
from .command import run_cmd

logger = logging.getLogger(__name__)


class TargetKind(enum.Enum):
    BLOCK_DEVICE = "block_device"
    IMAGE_FILE = "image_file"


@dataclass(frozen=True)
class DiskTarget:
    path: str
    kind: TargetKind


@dataclass(frozen=True)
class LogicalDisk:
    """The device every partition operation addresses.

    ``backing`` is the image file when ``device_path`` is a loop device.
    """

    device_path: str
    backing: Optional[str] = None


class DeviceNamingScheme(enum.Enum):
    # sda -> sda1
    PLAIN = ""
    # loop0 -> loop0p1, nvme0n1 -> nvme0n1p1
    P_SEPARATED = "p"

    def partition_path(self, device_path: str, number: int) -> str:
        return f"{device_path}{self.value}{number}"


@dataclass(frozen=True)
class ResolvedPartitionDevices:
    efi_device_path: str
    root_device_path: str
    scheme: DeviceNamingScheme


def classify_target(path: str) -> DiskTarget:
    """Decide whether the output path is a block device or an image file."""

    try:
        st = os.stat(path)
    except FileNotFoundError:
        return DiskTarget(path=path, kind=TargetKind.IMAGE_FILE)
    except OSError as e:
        raise DeviceResolutionError(f"Unable to inspect output path {path}: {e}") from e

    if stat.S_ISBLK(st.st_mode):
        return DiskTarget(path=path, kind=TargetKind.BLOCK_DEVICE)
    if stat.S_ISREG(st.st_mode):
        return DiskTarget(path=path, kind=TargetKind.IMAGE_FILE)
    raise DeviceResolutionError(f"Output path is neither a block device nor a regular file: {path}")


def zap_partition_table(device: str) -> None:
    """Destroy GPT and MBR structures on a device. Irrecoverable."""

    run_cmd(["sgdisk", "--zap-all", device])


def create_image_file(path: str, size_bytes: int) -> None:
    p = Path(path)
    if p.is_file():
        logger.info("Removing existing image %s", path)
        p.unlink()
    # Sparse: blocks are only allocated when written.
    run_cmd(["truncate", "--size", str(size_bytes), path])


def attach_loop(path: str) -> str:
    """Attach an image to the first free loop device, with partition scanning."""

    r = run_cmd(["losetup", "--partscan", "--find", "--show", path])
    loop = r.stdout.strip()
    if not loop:
        raise DeviceResolutionError(f"losetup did not report a loop device for {path}")
    return loop


def detach_loop(loop: str) -> None:
    run_cmd(["losetup", "--detach", loop])


def udev_settle() -> None:
    run_cmd(["udevadm", "settle"], check=False)


def probe_naming_scheme(device_path: str) -> DeviceNamingScheme:
    """Find out how the kernel named the partitions of ``device_path``.

    Looks for the first partition under /sys/class/block/<base>/, trying
    ``<base>1`` before ``<base>p1``.
    """

    base = os.path.basename(device_path)
    sys_dir = Path(env.PATHS.sys_class_block) / base
    for scheme in (DeviceNamingScheme.PLAIN, DeviceNamingScheme.P_SEPARATED):
        candidate = sys_dir / f"{base}{scheme.value}1"
        if candidate.exists():
            logger.info("Partition naming for %s: %s", device_path, candidate.name)
            return scheme
    raise DeviceResolutionError(f"Unable to find device partitions of {device_path} under {sys_dir}")


def resolve_partitions(disk: LogicalDisk, *, efi_number: int, root_number: int) -> ResolvedPartitionDevices:
    scheme = probe_naming_scheme(disk.device_path)
    return ResolvedPartitionDevices(
        efi_device_path=scheme.partition_path(disk.device_path, efi_number),
        root_device_path=scheme.partition_path(disk.device_path, root_number),
        scheme=scheme,
    )
