from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.block import (
    LogicalDisk,
    TargetKind,
    attach_loop,
    classify_target,
    create_image_file,
    detach_loop,
    zap_partition_table,
)
from ..pipeline import BuildCtx

logger = logging.getLogger(__name__)


class ResolveDeviceStep:
    step_id = "10_resolve_device"

    def run(self, ctx: BuildCtx, state: Dict[str, Any]) -> Dict[str, Any]:
        target = classify_target(ctx.image_path)
        state["target"] = target

        if target.kind is TargetKind.BLOCK_DEVICE:
            # The caller owns the device; nothing to release afterwards.
            logger.info("Ignoring image_size because %s is a block device", target.path)
            zap_partition_table(target.path)
            disk = LogicalDisk(device_path=target.path)
        else:
            create_image_file(target.path, ctx.cfg.image_size)
            loop = attach_loop(target.path)
            ctx.cleanup.push(f"detach loop device {loop}", detach_loop, loop)
            disk = LogicalDisk(device_path=loop, backing=target.path)

        logger.info("Disk device: %s", disk.device_path)
        state["disk"] = disk
        return state
