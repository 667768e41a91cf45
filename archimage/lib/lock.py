from __future__ import annotations

import fcntl
import hashlib
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from ..errors import TargetBusyError
from . import env

logger = logging.getLogger(__name__)


def lock_path_for(target: str) -> Path:
    digest = hashlib.sha256(os.path.realpath(target).encode("utf-8")).hexdigest()[:16]
    return Path(env.PATHS.lock_dir) / f"archimage-{digest}.lock"


@contextmanager
def target_lock(target: str) -> Iterator[Path]:
    """Hold an exclusive lock on the output target for the whole build."""

    path = lock_path_for(target)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        try:
            fcntl.flock(f, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            raise TargetBusyError(f"Another build is using {target} (lockfile: {path})") from e
        logger.debug("Locked %s via %s", target, path)
        try:
            yield path
        finally:
            fcntl.flock(f, fcntl.LOCK_UN)
