from __future__ import annotations

from functools import lru_cache

from stagekit.stage_registry import StageRegistry
from stagekit.stage_types import Stage

from deploy_orchestrator.collaborators import Collaborators
from deploy_orchestrator.framework.config import RunConfiguration

# Execution order of a deployment run.
DEFAULT_SEQUENCE: tuple[str, ...] = (
    "Checkout",
    "Build",
    "ContainerBuild",
    "Publish",
    "Deploy",
    "SmokeTest",
)


@lru_cache(maxsize=1)
def get_stage_registry() -> StageRegistry:
    from deploy_orchestrator import stages  # noqa: PLC0415

    return StageRegistry.from_refs(stages.__all_stages__)


def build_pipeline_stages(
    cfg: RunConfiguration,
    collaborators: Collaborators,
    *,
    sequence: tuple[str, ...] = DEFAULT_SEQUENCE,
) -> list[Stage]:
    return get_stage_registry().build_all(sequence, cfg, collaborators)
