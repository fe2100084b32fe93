from __future__ import annotations

from stagekit.errors import StageActionError
from stagekit.stage_registry import StageRef
from stagekit.stage_types import Stage
from stagekit.verdict import Success, Verdict

from deploy_orchestrator.collaborators import Collaborators
from deploy_orchestrator.framework.config import RunConfiguration
from deploy_orchestrator.framework.runtime import RunContext

KIND_ID = "Checkout"


def _build(cfg: RunConfiguration, collaborators: Collaborators) -> Stage:
    def _action(cfg: RunConfiguration, ctx: RunContext) -> Verdict:
        revision = collaborators.source.checkout(
            workspace=cfg.workspace,
            repo_url=cfg.source.repo_url,
            branch=cfg.source.branch,
            timeout_s=ctx.timeout_for(cfg.source.timeout_s),
        )
        revision = (revision or "").strip()
        if not revision:
            raise StageActionError("Checkout did not resolve a source revision")
        ctx.outputs["revision"] = revision
        ctx.logger.info("Checked out revision %s", revision)
        return Success()

    return Stage(name=KIND_ID, action=_action, meta={"failure_reason": "checkout"})


STAGE = StageRef(
    id=KIND_ID,
    builder=_build,
    doc="Retrieve the source revision and record its short id.",
    tags=("source",),
)
