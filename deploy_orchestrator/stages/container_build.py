from __future__ import annotations

from stagekit.stage_registry import StageRef
from stagekit.stage_types import Stage
from stagekit.verdict import Success, Verdict

from deploy_orchestrator.collaborators import Collaborators
from deploy_orchestrator.framework.config import RunConfiguration
from deploy_orchestrator.framework.runtime import RunContext
from deploy_orchestrator.stages._shared import make_cleanup_hook

KIND_ID = "ContainerBuild"

REVISION_LABEL = "org.opencontainers.image.revision"
BUILD_NUMBER_LABEL = "build.number"


def provenance_labels(cfg: RunConfiguration, revision: str) -> dict[str, str]:
    return {
        REVISION_LABEL: revision,
        BUILD_NUMBER_LABEL: str(cfg.run_number),
        "org.opencontainers.image.title": cfg.app_name,
    }


def _build(cfg: RunConfiguration, collaborators: Collaborators) -> Stage:
    def _action(cfg: RunConfiguration, ctx: RunContext) -> Verdict:
        revision = str(ctx.require_output("revision"))
        tags = [cfg.image_ref, cfg.latest_ref]

        # Recorded before the build so cleanup also covers partially tagged images.
        ctx.outputs["local_images"] = list(tags)
        collaborators.images.build(
            context_dir=cfg.workspace,
            dockerfile=cfg.container.dockerfile,
            tags=tags,
            build_args={"APP_VERSION": str(cfg.run_number)},
            labels=provenance_labels(cfg, revision),
            timeout_s=ctx.timeout_for(cfg.container.timeout_s),
        )
        ctx.outputs["image_ref"] = cfg.image_ref
        ctx.outputs["latest_ref"] = cfg.latest_ref
        ctx.logger.info("Built image %s (also tagged %s)", cfg.image_ref, cfg.latest_ref)
        return Success()

    return Stage(
        name=KIND_ID,
        action=_action,
        hooks=(make_cleanup_hook(collaborators.images, when="on_failure"),),
        meta={"failure_reason": "container_build"},
    )


STAGE = StageRef(
    id=KIND_ID,
    builder=_build,
    doc="Package the artifact into a container image tagged with the run number and latest.",
    tags=("image",),
)
