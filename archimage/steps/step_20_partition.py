from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.block import LogicalDisk, resolve_partitions, udev_settle
from ..lib.storage import PartitionPlan, create_partitions
from ..pipeline import BuildCtx

logger = logging.getLogger(__name__)


class PartitionStep:
    step_id = "20_partition"

    def run(self, ctx: BuildCtx, state: Dict[str, Any]) -> Dict[str, Any]:
        disk = state.get("disk")
        if not isinstance(disk, LogicalDisk):
            raise RuntimeError("Missing disk; run resolve_device step first")

        plan = PartitionPlan.generate()
        create_partitions(disk.device_path, plan)
        udev_settle()

        partitions = resolve_partitions(disk, efi_number=plan.efi.number, root_number=plan.root.number)
        logger.info(
            "Partitions efi=%s root=%s (scheme=%s)",
            partitions.efi_device_path,
            partitions.root_device_path,
            partitions.scheme.name,
        )

        state["plan"] = plan
        state["partitions"] = partitions
        return state
