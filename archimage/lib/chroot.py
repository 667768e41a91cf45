from __future__ import annotations

import logging
from typing import Sequence

from .command import CmdResult, run_cmd

logger = logging.getLogger(__name__)


def chroot_cmd(
    target_root: str,
    argv: Sequence[str],
    *,
    check: bool = True,
    interactive: bool = False,
) -> CmdResult:
    """Run a command inside target root.

    arch-chroot bind mounts /dev, /proc, /sys and friends itself and
    unmounts them again when the command exits.
    """

    return run_cmd(["arch-chroot", target_root, *argv], check=check, capture=not interactive)
