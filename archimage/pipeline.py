from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Protocol, Sequence

from .build_config import BuildConfig
from .cleanup import CleanupStack

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BuildCtx:
    cfg: BuildConfig
    image_path: str
    cleanup: CleanupStack
    inspect: bool = False


class Step(Protocol):
    """One stage of the build. Acquired resources go on ctx.cleanup."""

    step_id: str

    def run(self, ctx: BuildCtx, state: Dict[str, Any]) -> Dict[str, Any]:
        ...


@dataclass(frozen=True)
class PipelineResult:
    state: Dict[str, Any]
    ran_steps: List[str]


def run_pipeline(*, ctx: BuildCtx, steps: Sequence[Step], state: Dict[str, Any] | None = None) -> PipelineResult:
    """Run steps strictly in order, stopping at the first failure."""

    state = {} if state is None else state
    ran: List[str] = []

    for step in steps:
        logger.info("Running step %s", step.step_id)
        # Left set on failure so the caller can name the failing step.
        state["current_step"] = step.step_id
        state = step.run(ctx, state)
        ran.append(step.step_id)

    state["current_step"] = None
    return PipelineResult(state=state, ran_steps=ran)
