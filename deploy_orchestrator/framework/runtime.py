from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from stagekit.engine import CancellationToken

from deploy_orchestrator.framework.config import RunConfiguration


@dataclass
class RunContext:
    """Mutable scratch state for one run.

    Stages write derived values (revision, artifact path, image reference, ...)
    into ``outputs``; later stages read them. ``deadline`` is a monotonic
    timestamp maintained by the sequencer for the stage in flight.
    """

    run_id: str
    cfg: RunConfiguration
    logger: logging.Logger
    created_at: str
    cancel: CancellationToken = field(default_factory=CancellationToken)

    outputs: dict[str, Any] = field(default_factory=dict)
    steps: list[dict[str, Any]] = field(default_factory=list)
    deadline: float | None = None
    clock: Callable[[], float] = time.monotonic

    def timeout_for(self, requested_s: float) -> float:
        """Clamp a call timeout to whatever is left of the current deadline."""
        if self.deadline is None:
            return requested_s
        remaining = self.deadline - self.clock()
        return max(0.0, min(requested_s, remaining))

    def require_output(self, key: str) -> Any:
        value = self.outputs.get(key)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise KeyError(f"Run context is missing required output: {key}")
        return value
