from __future__ import annotations

import logging
from typing import Any, Dict

from ..lib.mounts import MountContext
from ..lib.pkg import pacstrap, package_set
from ..pipeline import BuildCtx

logger = logging.getLogger(__name__)


class InstallSystemStep:
    step_id = "40_install_system"

    def run(self, ctx: BuildCtx, state: Dict[str, Any]) -> Dict[str, Any]:
        mounts = state.get("mounts")
        if not isinstance(mounts, MountContext):
            raise RuntimeError("Missing mounts; run filesystems step first")

        packages = package_set(ctx.cfg.packages)
        logger.info("Installing packages: %s", " ".join(packages))
        pacstrap(mounts.mount_root, packages)
        return state
