from __future__ import annotations

import glob
import os
import shutil

from stagekit.errors import StageActionError
from stagekit.stage_registry import StageRef
from stagekit.stage_types import Hook, Stage
from stagekit.verdict import Success, Verdict

from deploy_orchestrator.collaborators import Collaborators
from deploy_orchestrator.foundation.logging_utils import write_text_log
from deploy_orchestrator.framework.config import RunConfiguration
from deploy_orchestrator.framework.runtime import RunContext

KIND_ID = "Build"


def find_artifact(workspace: str, pattern: str) -> str | None:
    """Pick the packaged jar, ignoring Spring Boot's ``*.jar.original`` and ``*-plain.jar``."""

    candidates = sorted(
        path
        for path in glob.glob(os.path.join(workspace, pattern))
        if os.path.isfile(path) and not path.endswith("-plain.jar")
    )
    return candidates[0] if candidates else None


def archive_build_outputs(cfg: RunConfiguration, ctx: RunContext, _verdict: Verdict) -> None:
    target_dir = cfg.run_artifacts_dir
    os.makedirs(target_dir, exist_ok=True)

    build_log = ctx.outputs.get("build_log")
    if isinstance(build_log, str) and build_log:
        log_path = os.path.join(target_dir, "build.log")
        write_text_log(log_path, build_log)
        ctx.outputs["build_log_path"] = log_path
        ctx.logger.info("Archived build log to %s", log_path)

    artifact = ctx.outputs.get("artifact")
    if isinstance(artifact, str) and os.path.isfile(artifact):
        archived = os.path.join(target_dir, os.path.basename(artifact))
        shutil.copy2(artifact, archived)
        ctx.outputs["archived_artifact"] = archived
        ctx.logger.info("Archived build artifact to %s", archived)


def _build(cfg: RunConfiguration, collaborators: Collaborators) -> Stage:
    def _action(cfg: RunConfiguration, ctx: RunContext) -> Verdict:
        if cfg.skip_tests:
            ctx.logger.info("run.skip_tests=true; tests will not run during the build")
        try:
            result = collaborators.build_tool.build(
                workspace=cfg.workspace,
                skip_tests=cfg.skip_tests,
                version=str(cfg.run_number),
                timeout_s=ctx.timeout_for(cfg.build.timeout_s),
            )
        except StageActionError as exc:
            if exc.output:
                ctx.outputs["build_log"] = exc.output
            raise
        ctx.outputs["build_log"] = result.output

        artifact = find_artifact(cfg.workspace, cfg.build.jar_glob)
        if artifact is None:
            raise StageActionError(
                f"Build produced no artifact matching {cfg.build.jar_glob}", reason="build"
            )
        ctx.outputs["artifact"] = artifact
        ctx.logger.info("Build artifact: %s", artifact)
        return Success()

    return Stage(
        name=KIND_ID,
        action=_action,
        hooks=(Hook("archive_build_outputs", archive_build_outputs, when="always"),),
        meta={"failure_reason": "build"},
    )


STAGE = StageRef(
    id=KIND_ID,
    builder=_build,
    doc="Package the application with the build tool and archive its outputs.",
    tags=("build",),
)
