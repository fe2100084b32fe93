from __future__ import annotations

from stagekit.stage_registry import StageRef
from stagekit.stage_types import Stage
from stagekit.verdict import Success, Verdict

from deploy_orchestrator.collaborators import Collaborators
from deploy_orchestrator.framework.config import RunConfiguration
from deploy_orchestrator.framework.runtime import RunContext
from deploy_orchestrator.stages._shared import make_cleanup_hook

KIND_ID = "Publish"


def _build(cfg: RunConfiguration, collaborators: Collaborators) -> Stage:
    def _action(cfg: RunConfiguration, ctx: RunContext) -> Verdict:
        image_ref = str(ctx.require_output("image_ref"))
        latest_ref = str(ctx.require_output("latest_ref"))

        collaborators.registry.login(
            registry_host=cfg.registry_host,
            region=cfg.region,
            timeout_s=ctx.timeout_for(cfg.registry_timeout_s),
        )
        ctx.logger.info("Authenticated to registry %s", cfg.registry_host)

        pushed: list[str] = []
        for ref in (image_ref, latest_ref):
            collaborators.registry.push(ref, timeout_s=ctx.timeout_for(cfg.registry_timeout_s))
            pushed.append(ref)
            ctx.logger.info("Pushed %s", ref)
        ctx.outputs["pushed_images"] = pushed
        return Success()

    return Stage(
        name=KIND_ID,
        action=_action,
        hooks=(make_cleanup_hook(collaborators.images),),
        meta={"failure_reason": "publish"},
    )


STAGE = StageRef(
    id=KIND_ID,
    builder=_build,
    doc="Authenticate to the image registry and push both tags; always remove local images.",
    tags=("image", "registry"),
)
