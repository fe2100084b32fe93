from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from stagekit.engine import SequenceResult
from stagekit.verdict import Failure, Verdict, verdict_reason

from deploy_orchestrator.framework.config import RunConfiguration
from deploy_orchestrator.framework.runtime import RunContext


@dataclass(frozen=True)
class RunReport:
    job_name: str
    run_number: int
    verdict: Verdict
    duration_s: float
    revision: str | None = None
    image_ref: str | None = None
    failed_stage: str | None = None
    completed_stages: tuple[str, ...] = ()
    skipped_stages: tuple[str, ...] = ()
    stage_statuses: tuple[tuple[str, str], ...] = ()
    channel: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def status(self) -> str:
        return self.verdict.status

    @property
    def reason(self) -> str | None:
        return verdict_reason(self.verdict)

    @property
    def detail(self) -> str | None:
        if isinstance(self.verdict, Failure):
            return self.verdict.detail
        return None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "job_name": self.job_name,
            "run_number": self.run_number,
            "status": self.status,
            "reason": self.reason,
            "revision": self.revision,
            "image_ref": self.image_ref,
            "duration_s": round(self.duration_s, 3),
            "failed_stage": self.failed_stage,
            "completed_stages": list(self.completed_stages),
            "skipped_stages": list(self.skipped_stages),
            "stages": [{"name": name, "status": status} for name, status in self.stage_statuses],
        }
        if self.detail:
            payload["detail"] = self.detail
        if self.meta:
            payload["meta"] = dict(self.meta)
        return payload


def build_run_report(cfg: RunConfiguration, ctx: RunContext, result: SequenceResult) -> RunReport:
    revision = ctx.outputs.get("revision")
    image_ref = ctx.outputs.get("image_ref")
    return RunReport(
        job_name=cfg.job_name,
        run_number=cfg.run_number,
        verdict=result.verdict,
        duration_s=result.duration_s,
        revision=revision if isinstance(revision, str) else None,
        image_ref=image_ref if isinstance(image_ref, str) else cfg.image_ref,
        failed_stage=result.failed_stage,
        completed_stages=result.completed,
        skipped_stages=result.skipped,
        stage_statuses=tuple((record.name, record.status) for record in result.records),
        channel=cfg.notification_channel,
        meta={"run_id": ctx.run_id},
    )
