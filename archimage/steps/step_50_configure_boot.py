from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict

from ..lib.bootloader import (
    append_grub_defaults,
    generate_grub_config,
    install_grub_removable,
    regenerate_initramfs,
    set_timezone,
    write_hostname,
)
from ..lib.fstab import render_fstab, root_entry
from ..lib.mounts import MountContext
from ..lib.storage import PartitionPlan
from ..pipeline import BuildCtx

logger = logging.getLogger(__name__)


class ConfigureBootStep:
    step_id = "50_configure_boot"

    def run(self, ctx: BuildCtx, state: Dict[str, Any]) -> Dict[str, Any]:
        mounts = state.get("mounts")
        plan = state.get("plan")
        if not isinstance(mounts, MountContext) or not isinstance(plan, PartitionPlan):
            raise RuntimeError("Missing mounts/plan; run partition and filesystems steps first")

        target_root = mounts.mount_root

        fstab_path = Path(target_root) / "etc/fstab"
        fstab_path.parent.mkdir(parents=True, exist_ok=True)
        fstab_path.write_text(render_fstab([root_entry(plan.root.partuuid)]), encoding="utf-8")
        logger.info("Wrote fstab (root_partuuid=%s)", plan.root.partuuid)

        if ctx.cfg.regenerate_initramfs:
            regenerate_initramfs(target_root=target_root)

        set_timezone(target_root=target_root, zone=ctx.cfg.timezone)
        write_hostname(target_root=target_root, hostname=ctx.cfg.hostname)

        install_grub_removable(target_root=target_root)
        append_grub_defaults(target_root=target_root)
        generate_grub_config(target_root=target_root)

        logger.info("Boot configured (hostname=%s timezone=%s)", ctx.cfg.hostname, ctx.cfg.timezone)
        return state
