from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Any, Dict, NoReturn, Optional

from .build_config import load_build_config
from .cleanup import CleanupStack
from .errors import BuildError, BuildInterrupted, CommandError
from .lib.env import INSPECT, NO_CLEANUP, env_flag
from .lib.lock import target_lock
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .pipeline import BuildCtx, run_pipeline
from .steps import (
    ConfigureBootStep,
    FilesystemsStep,
    InstallSystemStep,
    PartitionStep,
    ResolveDeviceStep,
    RunSetupStep,
)

logger = logging.getLogger(__name__)

COMPLETION_MESSAGE = "Completed successfully."


def build_steps():
    return [
        ResolveDeviceStep(),
        PartitionStep(),
        FilesystemsStep(),
        InstallSystemStep(),
        ConfigureBootStep(),
        RunSetupStep(),
    ]


def run(
    *,
    image_path: str,
    config_path: str,
    no_cleanup: bool = False,
    inspect: bool = False,
) -> Dict[str, Any]:
    """Build one image. Everything acquired is released before returning."""

    cfg = load_build_config(config_path)
    logger.info(
        "Building %s (size=%d bytes, hostname=%s, packages=%s)",
        image_path,
        cfg.image_size,
        cfg.hostname,
        " ".join(cfg.packages) or "-",
    )

    state: Dict[str, Any] = {}
    try:
        with target_lock(image_path), CleanupStack(suppressed=no_cleanup) as cleanup:
            ctx = BuildCtx(cfg=cfg, image_path=image_path, cleanup=cleanup, inspect=inspect)
            result = run_pipeline(ctx=ctx, steps=build_steps(), state=state)
    except (Exception, KeyboardInterrupt):
        if state.get("current_step"):
            logger.error("Build failed in step %s", state["current_step"])
        raise

    logger.info("Ran steps: %s", ", ".join(result.ran_steps))
    return result.state


class _ArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def _exit_code(e: BaseException) -> int:
    if isinstance(e, CommandError):
        if e.returncode > 0:
            return e.returncode
        if e.returncode < 0:
            # Killed by a signal.
            return 128 - e.returncode
        return 1
    if isinstance(e, BuildInterrupted):
        return 128 + e.signum
    if isinstance(e, KeyboardInterrupt):
        return 130
    return 1


def main(argv: Optional[list[str]] = None) -> int:
    p = _ArgumentParser(prog="archimage-build", description="Build a bootable Arch Linux disk image")
    p.add_argument("image", help="Output image file, or a block device to overwrite")
    p.add_argument("config", help="YAML build config")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to build log")
    p.add_argument(
        "--no-cleanup",
        action="store_true",
        help=f"Leave loop device and mounts in place (same as {NO_CLEANUP}=1)",
    )
    p.add_argument(
        "--inspect",
        action="store_true",
        help=f"Open a shell inside the image after setup (same as {INSPECT}=1)",
    )
    p.add_argument("-v", "--verbose", action="store_true", help="Show command output on the console")

    args = p.parse_args(argv)

    configure_logging(log_path=args.log, level=logging.DEBUG if args.verbose else logging.INFO)

    if os.geteuid() != 0:
        logger.error("archimage-build must be run as root")
        return 1

    try:
        state = run(
            image_path=args.image,
            config_path=args.config,
            no_cleanup=args.no_cleanup or env_flag(NO_CLEANUP),
            inspect=args.inspect or env_flag(INSPECT),
        )
    except (BuildError, KeyboardInterrupt) as e:
        if isinstance(e, KeyboardInterrupt):
            logger.error("Build interrupted")
        else:
            logger.error("Build failed: %s", e)
        return _exit_code(e)
    except Exception:
        logger.exception("Build failed")
        raise

    target = state["target"]
    logger.info("Image written to %s (%s)", target.path, target.kind.value)
    print(COMPLETION_MESSAGE)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
