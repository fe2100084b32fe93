from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from stagekit.engine import CancellationToken, SequenceResult, StageSequencer, utc_now_iso8601
from stagekit.verdict import Aborted, Failure, Success, Unstable, Verdict, describe_verdict

from deploy_orchestrator.collaborators import Collaborators, default_collaborators
from deploy_orchestrator.foundation.logging_utils import close_logger, setup_operational_logger
from deploy_orchestrator.framework.artifacts import generate_run_id, write_run_summary
from deploy_orchestrator.framework.config import RunConfiguration
from deploy_orchestrator.framework.runtime import RunContext
from deploy_orchestrator.notify import (
    NotificationChannel,
    Notifier,
    RunReport,
    build_run_report,
    default_channels,
)
from deploy_orchestrator.stages._shared import remove_local_images
from deploy_orchestrator.stages.registry import DEFAULT_SEQUENCE, build_pipeline_stages

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2
EXIT_UNSTABLE = 3
EXIT_ABORTED = 130


def exit_code_for(verdict: Verdict) -> int:
    if isinstance(verdict, Success):
        return EXIT_SUCCESS
    if isinstance(verdict, Unstable):
        return EXIT_UNSTABLE
    if isinstance(verdict, Aborted):
        return EXIT_ABORTED
    if isinstance(verdict, Failure):
        return EXIT_FAILURE
    raise TypeError(f"Unknown verdict type: {type(verdict).__name__}")


@dataclass(frozen=True)
class PipelineOutcome:
    verdict: Verdict
    report: RunReport
    result: SequenceResult
    ctx: RunContext
    log_path: str
    summary_path: str
    notified: tuple[str, ...] = ()

    @property
    def exit_code(self) -> int:
        return exit_code_for(self.verdict)


def _log_config_source(logger: logging.Logger, config_meta: Mapping[str, Any] | None) -> None:
    if not config_meta:
        return
    mode = config_meta.get("mode")
    paths = config_meta.get("paths") or []
    env_var = config_meta.get("env_var") or "DEPLOY_ORCHESTRATOR_CONFIG"
    if mode in {"env", "explicit"} and paths:
        label = f"env {env_var}" if mode == "env" else "explicit path"
        logger.info("Loaded config from %s=%s", label, paths[0])
    elif paths:
        base = paths[0]
        local = paths[1] if len(paths) > 1 else None
        if local:
            logger.info("Loaded config base=%s local=%s", base, local)
        else:
            logger.info("Loaded config base=%s", base)


def run_pipeline(
    cfg_dict: Mapping[str, Any],
    *,
    collaborators: Collaborators | None = None,
    channels: Sequence[NotificationChannel] | None = None,
    run_id: str | None = None,
    cancel: CancellationToken | None = None,
    config_meta: Mapping[str, Any] | None = None,
    sequence: Sequence[str] = DEFAULT_SEQUENCE,
) -> PipelineOutcome:
    """
    Resolve parameters, run the stage sequence, report the outcome.

    Raises:
        ConfigurationError: before any stage runs or any collaborator is
            contacted, when the parameters do not resolve.
    """

    cfg, cfg_warnings = RunConfiguration.from_dict(cfg_dict)

    run_id = run_id or generate_run_id()
    logger, log_path = setup_operational_logger(cfg.log_dir, run_id)
    try:
        _log_config_source(logger, config_meta)
        for warning in cfg_warnings:
            logger.warning("%s", warning)
        logger.info(
            "Run started: job=%s run=%d image=%s cluster=%s namespace=%s",
            cfg.job_name,
            cfg.run_number,
            cfg.image_ref,
            cfg.cluster_name,
            cfg.namespace,
        )

        ctx = RunContext(
            run_id=run_id,
            cfg=cfg,
            logger=logger,
            created_at=utc_now_iso8601(),
            cancel=cancel or CancellationToken(),
        )

        if collaborators is None:
            collaborators = default_collaborators(logger)
        stages = build_pipeline_stages(cfg, collaborators, sequence=sequence)

        sequencer = StageSequencer(budget_s=cfg.run_timeout_s)
        result = sequencer.run(cfg, ctx, stages, cancel=ctx.cancel)

        # Publish's cleanup hook never runs when the run stops before Publish.
        ctx.deadline = None
        leftover = remove_local_images(collaborators.images, ctx)
        if leftover:
            logger.info("Removed %d local image(s) left behind by skipped stages", len(leftover))

        logger.info(
            "Run finished: %s in %.1fs (failed_stage=%s completed=%s skipped=%s)",
            describe_verdict(result.verdict),
            result.duration_s,
            result.failed_stage,
            list(result.completed),
            list(result.skipped),
        )

        report = build_run_report(cfg, ctx, result)
        if channels is None:
            channels = default_channels(cfg, logger)
        notified = Notifier(channels, logger=logger).notify(report)

        summary_path = os.path.join(cfg.log_dir, f"{run_id}_summary.json")
        write_run_summary(
            summary_path, ctx, result, report=report.to_dict(), notified=notified
        )
        logger.info("Run summary written to %s", summary_path)
        logger.info("Operational log stored at %s", log_path)

        return PipelineOutcome(
            verdict=result.verdict,
            report=report,
            result=result,
            ctx=ctx,
            log_path=log_path,
            summary_path=summary_path,
            notified=tuple(notified),
        )
    finally:
        close_logger(logger)
