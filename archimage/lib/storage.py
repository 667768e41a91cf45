from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import List

from .command import run_cmd

logger = logging.getLogger(__name__)

EFI_SYSTEM_TYPECODE = "ef00"
LINUX_FS_TYPECODE = "8300"


@dataclass(frozen=True)
class PartitionSpec:
    number: int
    size: str  # sgdisk end sector spec, "0" is the rest of the disk
    typecode: str
    partuuid: str


@dataclass(frozen=True)
class PartitionPlan:
    efi: PartitionSpec
    root: PartitionSpec

    @classmethod
    def generate(cls, *, efi_size: str = "+100M") -> "PartitionPlan":
        """Fresh plan with PARTUUIDs chosen up front.

        Knowing the identifiers before sgdisk runs means fstab can be written
        without reading the table back.
        """

        return cls(
            efi=PartitionSpec(number=1, size=efi_size, typecode=EFI_SYSTEM_TYPECODE, partuuid=str(uuid.uuid4())),
            root=PartitionSpec(number=2, size="0", typecode=LINUX_FS_TYPECODE, partuuid=str(uuid.uuid4())),
        )

    @property
    def partitions(self) -> List[PartitionSpec]:
        return [self.efi, self.root]


def sgdisk_argv(disk: str, plan: PartitionPlan) -> List[str]:
    argv = ["sgdisk"]
    for part in plan.partitions:
        n = part.number
        argv += [
            f"--new={n}:0:{part.size}",
            f"--typecode={n}:{part.typecode}",
            f"--partition-guid={n}:{part.partuuid}",
        ]
    argv.append(disk)
    return argv


def create_partitions(disk: str, plan: PartitionPlan) -> None:
    """Create every partition of the plan in one sgdisk invocation."""

    logger.info(
        "Partitioning disk=%s efi_partuuid=%s root_partuuid=%s",
        disk,
        plan.efi.partuuid,
        plan.root.partuuid,
    )
    run_cmd(sgdisk_argv(disk, plan))
