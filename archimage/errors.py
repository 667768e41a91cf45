from __future__ import annotations

from typing import Sequence


class BuildError(RuntimeError):
    """Base class for failures that abort an image build."""


class ConfigError(BuildError, ValueError):
    pass


class DeviceResolutionError(BuildError):
    """The output target or its partition devices could not be determined."""


class TargetBusyError(BuildError):
    pass


class CommandError(BuildError):
    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = "") -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr
        msg = f"Command failed ({returncode}): {' '.join(self.argv)}"
        if stderr:
            msg += f"\n{stderr.rstrip()}"
        super().__init__(msg)


class BuildInterrupted(BuildError):
    """Raised from a signal handler so the cleanup stack can unwind."""

    def __init__(self, signum: int) -> None:
        self.signum = signum
        super().__init__(f"Interrupted by signal {signum}")
