from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Optional

from .command import run_cmd

logger = logging.getLogger(__name__)

SETUP_DIR_NAME = "setup"
SETUP_SCRIPT_NAME = "setup.sh"


def stage_setup_dir(src: Path, target_root: str, *, exclude_from: Optional[Path] = None) -> Path:
    """Copy src into <target_root>/setup with rsync.

    exclude_from is an rsync --exclude-from pattern file.
    """

    dst = Path(target_root) / SETUP_DIR_NAME
    dst.mkdir()
    argv = ["rsync", "-a"]
    if exclude_from is not None:
        argv += ["--exclude-from", str(exclude_from)]
    # Trailing slash: copy the contents, not the directory itself.
    argv += [f"{src}/", str(dst)]
    run_cmd(argv)
    return dst


def stage_setup_script(src: Path, target_root: str) -> Path:
    dst = Path(target_root) / SETUP_SCRIPT_NAME
    shutil.copyfile(src, dst)
    os.chmod(dst, 0o755)
    return dst


def remove_staged(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()
    logger.info("Removed %s", path)
