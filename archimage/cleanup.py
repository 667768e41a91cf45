"""Release obligations for resources acquired during a build.

Every step that acquires a loop device, a directory or a mount pushes exactly
one release action.  The stack is unwound in reverse order when the build
leaves the ``with`` block, whichever way it leaves it.
"""

from __future__ import annotations

import enum
import logging
import signal
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .errors import BuildError, BuildInterrupted

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM, signal.SIGHUP)


class CleanupState(enum.Enum):
    EMPTY = "empty"
    ACCUMULATING = "accumulating"
    UNWINDING = "unwinding"
    DONE = "done"


@dataclass(frozen=True)
class CleanupAction:
    description: str
    fn: Callable[..., Any]
    args: Tuple[Any, ...] = ()

    def __call__(self) -> None:
        self.fn(*self.args)


@dataclass
class CleanupStack:
    suppressed: bool = False
    state: CleanupState = CleanupState.EMPTY
    _actions: List[CleanupAction] = field(default_factory=list)
    _saved_handlers: Dict[int, Any] = field(default_factory=dict)

    @property
    def actions(self) -> List[CleanupAction]:
        return list(self._actions)

    def push(self, description: str, fn: Callable[..., Any], *args: Any) -> None:
        if self.state not in (CleanupState.EMPTY, CleanupState.ACCUMULATING):
            raise BuildError(f"Cannot register cleanup '{description}' while {self.state.value}")
        self._actions.append(CleanupAction(description=description, fn=fn, args=args))
        self.state = CleanupState.ACCUMULATING
        logger.debug("Registered cleanup: %s", description)

    @property
    def unwinding(self) -> bool:
        return self.state in (CleanupState.UNWINDING, CleanupState.DONE)

    def unwind(self) -> None:
        """Run every registered action, newest first, exactly once."""

        if self.unwinding:
            return
        # From here on the installed handlers drop signals instead of raising.
        self.state = CleanupState.UNWINDING
        saved = self._ignore_signals()
        try:
            if self.suppressed:
                for action in reversed(self._actions):
                    logger.warning("Cleanup disabled, leaving in place: %s", action.description)
                return
            while self._actions:
                action = self._actions.pop()
                logger.info("Cleanup: %s", action.description)
                try:
                    action()
                except Exception:
                    logger.warning("Cleanup action failed: %s", action.description, exc_info=True)
        finally:
            _restore_handlers(saved)
            self.state = CleanupState.DONE

    def install_signal_handlers(self) -> None:
        """Turn termination signals into an exception so ``__exit__`` runs.

        SIGINT keeps raising ``KeyboardInterrupt``; SIGTERM and SIGHUP raise
        ``BuildInterrupted``.  Once unwinding has started all three are
        logged and dropped.
        """

        for signum in HANDLED_SIGNALS:
            self._saved_handlers[signum] = signal.signal(signum, self._on_signal)

    def restore_signal_handlers(self) -> None:
        _restore_handlers(self._saved_handlers)
        self._saved_handlers = {}

    def _on_signal(self, signum: int, frame: Any) -> None:
        if self.unwinding:
            logger.warning("Ignoring signal %d during cleanup", signum)
            return
        if signum == signal.SIGINT:
            raise KeyboardInterrupt
        raise BuildInterrupted(signum)

    def _ignore_signals(self) -> Dict[int, Any]:
        saved: Dict[int, Any] = {}
        for signum in HANDLED_SIGNALS:
            try:
                saved[signum] = signal.signal(signum, signal.SIG_IGN)
            except ValueError:
                # Not on the main thread; nothing to protect.
                break
        return saved

    def __enter__(self) -> "CleanupStack":
        self.install_signal_handlers()
        return self

    def __exit__(self, exc_type: Optional[type], exc: Optional[BaseException], tb: Any) -> None:
        try:
            self.unwind()
        finally:
            self.restore_signal_handlers()


def _restore_handlers(saved: Dict[int, Any]) -> None:
    for signum, handler in saved.items():
        signal.signal(signum, handler if handler is not None else signal.SIG_DFL)
