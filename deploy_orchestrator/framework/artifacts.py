from __future__ import annotations

import json
import os
import uuid
from datetime import datetime
from typing import Any, Mapping

from stagekit.engine import SequenceResult

from deploy_orchestrator.framework.runtime import RunContext


def generate_run_id() -> str:
    unique_id = uuid.uuid4()
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"{timestamp}_{unique_id}"


def write_run_summary(
    path: str,
    ctx: RunContext,
    result: SequenceResult,
    *,
    report: Mapping[str, Any] | None = None,
    notified: list[str] | None = None,
) -> None:
    """Write the per-run JSON summary (stage records plus the outcome report)."""

    payload: dict[str, Any] = {
        "run_id": ctx.run_id,
        "created_at": ctx.created_at,
        "status": result.verdict.status,
        "failed_stage": result.failed_stage,
        "duration_s": round(result.duration_s, 3),
        "steps": list(ctx.steps),
    }
    outputs = {
        key: value
        for key, value in ctx.outputs.items()
        if isinstance(value, (str, int, float, bool, list)) and key != "build_log"
    }
    if outputs:
        payload["outputs"] = outputs
    if report is not None:
        payload["report"] = dict(report)
    if notified is not None:
        payload["notified"] = list(notified)

    os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    with open(path, "w", encoding="utf-8") as file:
        json.dump(payload, file, ensure_ascii=False, indent=2)
        file.write("\n")
