"""Sequential executor for Stage lists.

This module is intentionally app-agnostic and must not import `deploy_orchestrator.*`.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Literal, Protocol, TypeAlias

from stagekit.errors import StageActionError, StageCancelledError, StageTimeoutError
from stagekit.stage_types import HookCondition, Stage
from stagekit.verdict import Aborted, Failure, Success, Unstable, Verdict, is_verdict

StageStatus: TypeAlias = Literal["success", "failure", "unstable", "skipped"]
Interrupt: TypeAlias = Literal["timeout", "cancelled"]


def utc_now_iso8601() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


class SequenceContext(Protocol):
    logger: logging.Logger
    outputs: dict[str, Any]
    steps: list[dict[str, Any]]
    deadline: float | None


class CancellationToken:
    """Thread-safe flag used to abort a run from outside the sequencer."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason = "cancelled"

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self._reason = (reason or "cancelled").strip() or "cancelled"
        self._event.set()

    def wait(self, timeout_s: float) -> bool:
        """Block up to ``timeout_s``; returns True if the run was cancelled meanwhile."""
        return self._event.wait(timeout=max(0.0, timeout_s))


@dataclass
class StageRecord:
    name: str
    ordinal: int
    status: StageStatus
    best_effort: bool = False
    reason: str | None = None
    detail: str | None = None
    started_at: str | None = None
    duration_s: float = 0.0
    hook_errors: list[dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": "stage",
            "name": self.name,
            "ordinal": self.ordinal,
            "status": self.status,
            "best_effort": self.best_effort,
            "duration_s": round(self.duration_s, 3),
        }
        if self.started_at:
            payload["started_at"] = self.started_at
        if self.reason:
            payload["reason"] = self.reason
        if self.detail:
            payload["detail"] = self.detail
        if self.hook_errors:
            payload["hook_errors"] = [dict(item) for item in self.hook_errors]
        return payload


@dataclass(frozen=True)
class SequenceResult:
    verdict: Verdict
    records: tuple[StageRecord, ...]
    duration_s: float
    failed_stage: str | None = None

    @property
    def completed(self) -> tuple[str, ...]:
        return tuple(r.name for r in self.records if r.status in ("success", "unstable"))

    @property
    def skipped(self) -> tuple[str, ...]:
        return tuple(r.name for r in self.records if r.status == "skipped")

    @property
    def executed(self) -> tuple[str, ...]:
        return tuple(r.name for r in self.records if r.status != "skipped")

    def record(self, name: str) -> StageRecord:
        for record in self.records:
            if record.name == name:
                return record
        raise KeyError(name)


class StageRecorder(Protocol):
    def on_stage_start(
        self,
        ctx: SequenceContext,
        stage: Stage,
        *,
        ordinal: int,
        total: int,
    ) -> None:
        ...

    def on_stage_end(self, ctx: SequenceContext, record: dict[str, Any]) -> None:
        ...

    def on_stage_error(self, ctx: SequenceContext, stage_name: str, exc: BaseException) -> None:
        ...


class DefaultStageRecorder:
    def on_stage_start(
        self,
        ctx: SequenceContext,
        stage: Stage,
        *,
        ordinal: int,
        total: int,
    ) -> None:
        tokens: list[str] = [f"{ordinal}/{total}"]
        if stage.best_effort:
            tokens.append("best_effort=true")
        if stage.timeout_s is not None:
            tokens.append(f"timeout_s={stage.timeout_s:g}")
        if stage.doc:
            tokens.append(f"doc={stage.doc.strip()!r}")
        ctx.logger.info("Stage: %s (%s)", stage.name, ", ".join(tokens))

    def on_stage_end(self, ctx: SequenceContext, record: dict[str, Any]) -> None:
        ctx.steps.append(record)
        name = record.get("name", "<unknown>")
        status = record.get("status", "<unknown>")
        duration = float(record.get("duration_s", 0.0) or 0.0)
        reason = record.get("reason")
        if status == "skipped":
            ctx.logger.info("Skipped stage %s", name)
            return
        if reason:
            ctx.logger.info(
                "Completed stage %s (status=%s, reason=%s, duration_s=%.2f)",
                name,
                status,
                reason,
                duration,
            )
        else:
            ctx.logger.info("Completed stage %s (status=%s, duration_s=%.2f)", name, status, duration)

    def on_stage_error(self, ctx: SequenceContext, stage_name: str, exc: BaseException) -> None:
        ctx.logger.error("Stage failed: %s (%s)", stage_name, exc)


class NullStageRecorder:
    def on_stage_start(
        self,
        ctx: SequenceContext,
        stage: Stage,
        *,
        ordinal: int,
        total: int,
    ) -> None:
        return

    def on_stage_end(self, ctx: SequenceContext, record: dict[str, Any]) -> None:
        return

    def on_stage_error(self, ctx: SequenceContext, stage_name: str, exc: BaseException) -> None:
        return


_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")


def default_failure_reason(stage: Stage) -> str:
    explicit = stage.meta.get("failure_reason")
    if isinstance(explicit, str) and explicit.strip():
        return explicit.strip()
    snake = _CAMEL_BOUNDARY.sub("_", stage.name)
    return re.sub(r"[^a-z0-9]+", "_", snake.lower()).strip("_") or "stage"


def _earliest(*deadlines: float | None) -> float | None:
    present = [value for value in deadlines if value is not None]
    return min(present) if present else None


class StageSequencer:
    """Runs stages strictly in order and aggregates one pipeline verdict.

    The first failure of a non-best-effort stage is authoritative: that stage's
    hooks run, every later stage is skipped. ``always`` hooks run for every
    executed stage whatever its verdict. A timeout (run budget, stage budget or
    ``StageTimeoutError``) or a tripped cancellation token is fatal even for a
    best-effort stage and ends the run.
    """

    def __init__(
        self,
        *,
        budget_s: float | None = None,
        recorder: StageRecorder | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if budget_s is not None and budget_s <= 0:
            raise ValueError(f"budget_s must be > 0 (got {budget_s})")
        self._budget_s = budget_s
        self._recorder = recorder or DefaultStageRecorder()
        self._clock = clock
        self._validate_recorder(self._recorder)

    def run(
        self,
        config: Any,
        ctx: SequenceContext,
        stages: Iterable[Stage],
        *,
        cancel: CancellationToken | None = None,
    ) -> SequenceResult:
        stage_list = list(stages)
        self._validate_stage_names(stage_list)
        cancel = cancel or CancellationToken()

        started = self._clock()
        run_deadline = started + self._budget_s if self._budget_s is not None else None
        total = len(stage_list)

        records: list[StageRecord] = []
        fatal: Failure | None = None
        aborted: Aborted | None = None
        unstable: Unstable | None = None
        failed_stage: str | None = None

        for ordinal, stage in enumerate(stage_list, start=1):
            if fatal is None and aborted is None:
                if cancel.cancelled:
                    ctx.logger.warning("Run cancelled before stage %s; skipping remaining stages", stage.name)
                    aborted = Aborted(cancel.reason)
                elif run_deadline is not None and self._clock() >= run_deadline:
                    ctx.logger.error(
                        "Run budget of %.0fs exhausted before stage %s; skipping remaining stages",
                        self._budget_s,
                        stage.name,
                    )
                    fatal = Failure(
                        "timeout",
                        stage=stage.name,
                        detail=f"run budget of {self._budget_s:g}s exhausted",
                    )
                    failed_stage = stage.name

            if fatal is not None or aborted is not None:
                record = StageRecord(
                    name=stage.name,
                    ordinal=ordinal,
                    status="skipped",
                    best_effort=stage.best_effort,
                )
                records.append(record)
                self._recorder.on_stage_end(ctx, record.to_dict())
                continue

            record, verdict, interrupt = self._run_stage(
                config,
                ctx,
                stage,
                ordinal=ordinal,
                total=total,
                run_deadline=run_deadline,
                cancel=cancel,
            )
            records.append(record)

            if isinstance(verdict, Failure):
                if interrupt == "cancelled":
                    aborted = Aborted(cancel.reason)
                    failed_stage = stage.name
                elif stage.best_effort and interrupt is None:
                    ctx.logger.warning(
                        "Best-effort stage %s failed (%s); continuing", stage.name, verdict.reason
                    )
                else:
                    fatal = verdict
                    failed_stage = stage.name
            elif isinstance(verdict, Unstable) and unstable is None:
                unstable = verdict

        final: Verdict
        if aborted is not None:
            final = aborted
        elif fatal is not None:
            final = fatal
        elif unstable is not None:
            final = unstable
        else:
            final = Success()

        duration = self._clock() - started
        return SequenceResult(
            verdict=final,
            records=tuple(records),
            duration_s=duration,
            failed_stage=failed_stage,
        )

    def _run_stage(
        self,
        config: Any,
        ctx: SequenceContext,
        stage: Stage,
        *,
        ordinal: int,
        total: int,
        run_deadline: float | None,
        cancel: CancellationToken,
    ) -> tuple[StageRecord, Verdict, Interrupt | None]:
        started_at = utc_now_iso8601()
        start = self._clock()
        stage_deadline = start + stage.timeout_s if stage.timeout_s is not None else None
        ctx.deadline = _earliest(run_deadline, stage_deadline)

        self._recorder.on_stage_start(ctx, stage, ordinal=ordinal, total=total)

        interrupt: Interrupt | None = None
        verdict: Verdict
        try:
            result = stage.action(config, ctx)
            if not is_verdict(result):
                raise TypeError(
                    f"Stage {stage.name} action returned non-Verdict (type={type(result).__name__})"
                )
            verdict = result
            if isinstance(verdict, Aborted):
                cancel.cancel(verdict.reason)
                verdict = Failure("cancelled", stage=stage.name, detail=verdict.reason)
                interrupt = "cancelled"
            elif isinstance(verdict, Failure) and verdict.stage is None:
                verdict = replace(verdict, stage=stage.name)
        except StageActionError as exc:
            self._notify_error(ctx, stage.name, exc)
            verdict = Failure(
                exc.reason or default_failure_reason(stage),
                stage=stage.name,
                detail=exc.detail,
            )
            if isinstance(exc, StageCancelledError):
                cancel.cancel(verdict.reason)
                interrupt = "cancelled"
            elif isinstance(exc, StageTimeoutError):
                interrupt = "timeout"
        except KeyboardInterrupt as exc:
            self._notify_error(ctx, stage.name, exc)
            cancel.cancel("cancelled")
            verdict = Failure("cancelled", stage=stage.name, detail="interrupted by operator")
            interrupt = "cancelled"
        except Exception as exc:  # noqa: BLE001
            ctx.logger.exception("Stage %s raised an unexpected error", stage.name)
            self._notify_error(ctx, stage.name, exc)
            verdict = Failure(
                default_failure_reason(stage),
                stage=stage.name,
                detail=f"{type(exc).__name__}: {exc}",
            )

        now = self._clock()
        if interrupt is None and cancel.cancelled:
            verdict = Failure("cancelled", stage=stage.name, detail=f"run cancelled ({cancel.reason})")
            interrupt = "cancelled"
        elif interrupt is None and run_deadline is not None and now > run_deadline:
            verdict = Failure(
                "timeout",
                stage=stage.name,
                detail=f"run budget of {self._budget_s:g}s exceeded",
            )
            interrupt = "timeout"
        elif interrupt is None and stage_deadline is not None and now > stage_deadline:
            verdict = Failure(
                "timeout",
                stage=stage.name,
                detail=f"stage budget of {stage.timeout_s:g}s exceeded",
            )
            interrupt = "timeout"

        # Timeouts are fatal even for best-effort stages.
        if interrupt is None and isinstance(verdict, Failure) and verdict.reason == "timeout":
            interrupt = "timeout"

        # Cleanup must not inherit an exhausted deadline.
        ctx.deadline = None
        fatal = isinstance(verdict, Failure) and (not stage.best_effort or interrupt is not None)
        hook_errors = self._run_hooks(config, ctx, stage, verdict, fatal=fatal)
        ctx.deadline = run_deadline

        record = StageRecord(
            name=stage.name,
            ordinal=ordinal,
            status=self._status_for(verdict),
            best_effort=stage.best_effort,
            reason=None if isinstance(verdict, Success) else verdict.reason,
            detail=verdict.detail if isinstance(verdict, Failure) else None,
            started_at=started_at,
            duration_s=self._clock() - start,
            hook_errors=hook_errors,
        )
        self._recorder.on_stage_end(ctx, record.to_dict())
        return record, verdict, interrupt

    def _run_hooks(
        self,
        config: Any,
        ctx: SequenceContext,
        stage: Stage,
        verdict: Verdict,
        *,
        fatal: bool,
    ) -> list[dict[str, str]]:
        conditions: list[HookCondition] = ["always"]
        if isinstance(verdict, Success):
            conditions.append("on_success")
        elif isinstance(verdict, Unstable):
            conditions.append("on_unstable")
        elif isinstance(verdict, Failure) and fatal:
            conditions.append("on_failure")

        errors: list[dict[str, str]] = []
        for condition in conditions:
            for hook in stage.hooks_for(condition):
                try:
                    hook.fn(config, ctx, verdict)
                except Exception as exc:  # noqa: BLE001
                    ctx.logger.warning(
                        "Hook %s/%s (%s) failed: %s", stage.name, hook.name, condition, exc
                    )
                    errors.append(
                        {"hook": hook.name, "when": condition, "error": f"{type(exc).__name__}: {exc}"}
                    )
        return errors

    def _notify_error(self, ctx: SequenceContext, stage_name: str, exc: BaseException) -> None:
        try:
            self._recorder.on_stage_error(ctx, stage_name, exc)
        except Exception:
            ctx.logger.exception("Stage recorder failed during error handling for %s", stage_name)

    def _status_for(self, verdict: Verdict) -> StageStatus:
        if isinstance(verdict, Success):
            return "success"
        if isinstance(verdict, Unstable):
            return "unstable"
        return "failure"

    def _validate_recorder(self, recorder: StageRecorder) -> None:
        required = ("on_stage_start", "on_stage_end", "on_stage_error")
        for name in required:
            method = getattr(recorder, name, None)
            if method is None or not callable(method):
                raise TypeError(f"Stage recorder missing required method: {name}")

    def _validate_stage_names(self, stages: list[Stage]) -> None:
        seen: set[str] = set()
        duplicates: set[str] = set()
        for stage in stages:
            if not isinstance(stage, Stage):
                raise TypeError(f"Sequencer expects Stage instances (type={type(stage).__name__})")
            if stage.name in seen:
                duplicates.add(stage.name)
            seen.add(stage.name)
        if duplicates:
            raise ValueError(f"Duplicate stage name(s): {', '.join(sorted(duplicates))}")
