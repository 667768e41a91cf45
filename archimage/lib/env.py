from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Paths:
    sys_class_block: str = "/sys/class/block"
    lock_dir: str = "/run/lock"
    log_default: str = "/var/log/archimage-build.log"


PATHS = Paths()

# Leave loop devices, mounts and the mount directory in place for debugging.
NO_CLEANUP = "NO_CLEANUP"
# Drop into a shell inside the image after the setup script.
INSPECT = "INSPECT"


def env_flag(name: str) -> bool:
    return bool(os.environ.get(name))
