from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from .lib.env import PATHS

DEFAULT_LOG_PATH = PATHS.log_default
FALLBACK_LOG_NAME = "archimage-build.log"

_FORMAT = logging.Formatter(
    fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S%z",
)


def _open_log_file(path: str) -> Optional[logging.Handler]:
    try:
        Path(os.path.dirname(path) or ".").mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(path)
    except OSError:
        return None


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = True,
) -> Optional[str]:
    """Send build logs to a file and to stderr.

    The file always gets DEBUG, so captured command output ends up there
    even when the console only shows INFO.  If ``log_path`` cannot be
    opened, ``./archimage-build.log`` is tried; if that fails as well the
    build runs with console logging only.

    Returns the log file in use, or None.
    """

    root = logging.getLogger()

    if getattr(root, "_archimage_configured", False):
        return getattr(root, "_archimage_log_path", None)

    root.setLevel(logging.DEBUG)
    log = logging.getLogger(__name__)

    chosen_path: Optional[str] = None
    for candidate in (log_path, str(Path.cwd() / FALLBACK_LOG_NAME)):
        file_handler = _open_log_file(candidate)
        if file_handler is not None:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(_FORMAT)
            root.addHandler(file_handler)
            chosen_path = candidate
            break

    if also_console:
        console = logging.StreamHandler()
        console.setLevel(level)
        console.setFormatter(_FORMAT)
        root.addHandler(console)

    setattr(root, "_archimage_configured", True)
    setattr(root, "_archimage_log_path", chosen_path)

    if chosen_path is None:
        log.warning("No writable log file (tried %s and ./%s)", log_path, FALLBACK_LOG_NAME)
    elif chosen_path != log_path:
        log.warning("Cannot write %s, logging to %s", log_path, chosen_path)
    else:
        log.info("Logging to %s", chosen_path)
    return chosen_path
