from __future__ import annotations


class StageActionError(RuntimeError):
    """A stage's external call failed or returned a non-success result.

    ``reason`` is the short classification surfaced as ``Failure.reason``; when
    omitted the sequencer falls back to the stage name. ``output`` carries any
    captured tool output (e.g. a build log) for hooks to persist.
    """

    default_reason: str | None = None

    def __init__(
        self,
        message: str,
        *,
        reason: str | None = None,
        detail: str | None = None,
        output: str | None = None,
    ) -> None:
        super().__init__(message)
        self.reason = reason or self.default_reason
        self.detail = detail or message
        self.output = output


class StageTimeoutError(StageActionError, TimeoutError):
    default_reason = "timeout"


class StageCancelledError(StageActionError):
    default_reason = "cancelled"
