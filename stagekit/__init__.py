"""Reusable stage kernel (verdicts, stages with hooks, sequential executor).

This package is intentionally independent of `deploy_orchestrator.*`. Anything
tied to a concrete toolchain (git, Maven, Docker, kubectl, Slack) must live in
the consuming application.
"""

from stagekit.engine.sequencer import (
    CancellationToken,
    DefaultStageRecorder,
    NullStageRecorder,
    SequenceContext,
    SequenceResult,
    StageRecord,
    StageRecorder,
    StageSequencer,
    utc_now_iso8601,
)
from stagekit.errors import StageActionError, StageCancelledError, StageTimeoutError
from stagekit.stage_registry import StageRef, StageRegistry
from stagekit.stage_types import ALLOWED_HOOK_CONDITIONS, Hook, HookCondition, Stage
from stagekit.verdict import (
    Aborted,
    Failure,
    Success,
    Unstable,
    Verdict,
    describe_verdict,
    is_verdict,
    verdict_reason,
)

__all__ = [
    "ALLOWED_HOOK_CONDITIONS",
    "Aborted",
    "CancellationToken",
    "DefaultStageRecorder",
    "Failure",
    "Hook",
    "HookCondition",
    "NullStageRecorder",
    "SequenceContext",
    "SequenceResult",
    "Stage",
    "StageActionError",
    "StageCancelledError",
    "StageRecord",
    "StageRecorder",
    "StageRef",
    "StageRegistry",
    "StageSequencer",
    "StageTimeoutError",
    "Success",
    "Unstable",
    "Verdict",
    "describe_verdict",
    "is_verdict",
    "utc_now_iso8601",
    "verdict_reason",
]
