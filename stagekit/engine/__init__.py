"""Engine primitives for running ordered Stage lists."""

from stagekit.engine.sequencer import (
    CancellationToken,
    DefaultStageRecorder,
    NullStageRecorder,
    SequenceContext,
    SequenceResult,
    StageRecord,
    StageRecorder,
    StageSequencer,
    default_failure_reason,
    utc_now_iso8601,
)

__all__ = [
    "CancellationToken",
    "DefaultStageRecorder",
    "NullStageRecorder",
    "SequenceContext",
    "SequenceResult",
    "StageRecord",
    "StageRecorder",
    "StageSequencer",
    "default_failure_reason",
    "utc_now_iso8601",
]
