from __future__ import annotations

import logging
from typing import List, Sequence

from .command import run_cmd

logger = logging.getLogger(__name__)

# Kernel, firmware and bootloader; everything else comes from the config.
BASE_PACKAGES = ("base", "linux", "linux-firmware", "grub")


def package_set(extra: Sequence[str]) -> List[str]:
    return list(dict.fromkeys([*BASE_PACKAGES, *extra]))


def pacstrap(target_root: str, packages: Sequence[str]) -> None:
    """Install packages into target_root.

    -c uses the host's package cache instead of one inside the target, so
    packages the host already has are not downloaded again and the cache
    does not end up in the image.
    """

    run_cmd(["pacstrap", "-c", target_root, *packages], capture=False)
    logger.info("Installed %d packages into %s", len(packages), target_root)
