from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.assets import SETUP_SCRIPT_NAME, remove_staged, stage_setup_dir, stage_setup_script
from ..lib.chroot import chroot_cmd
from ..lib.mounts import MountContext
from ..pipeline import BuildCtx

logger = logging.getLogger(__name__)


class RunSetupStep:
    """Stage /setup and /setup.sh, run the script in the chroot, remove both.

    The script sees installed packages and whatever was staged in /setup.
    /tmp is a tmpfs on the booted image, so nothing written there survives.
    """

    step_id = "60_run_setup"

    def run(self, ctx: BuildCtx, state: Dict[str, Any]) -> Dict[str, Any]:
        mounts = state.get("mounts")
        if not isinstance(mounts, MountContext):
            raise RuntimeError("Missing mounts; run filesystems step first")

        cfg = ctx.cfg
        target_root = mounts.mount_root

        setup_dir = None
        if cfg.setup_dir is not None:
            setup_dir = stage_setup_dir(cfg.setup_dir, target_root, exclude_from=cfg.setup_exclude)

        if cfg.setup_script is not None:
            script = stage_setup_script(cfg.setup_script, target_root)
            try:
                chroot_cmd(target_root, [f"/{SETUP_SCRIPT_NAME}"], interactive=True)
            finally:
                remove_staged(script)

        if ctx.inspect:
            logger.info("Starting inspection shell in %s", target_root)
            r = chroot_cmd(target_root, ["bash"], check=False, interactive=True)
            logger.info("Inspection shell exited with %d", r.returncode)

        if setup_dir is not None:
            remove_staged(setup_dir)

        return state
