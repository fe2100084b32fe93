from __future__ import annotations

from dataclasses import dataclass

from stagekit.verdict import Aborted, Failure, Success, Unstable

from deploy_orchestrator.notify.report import RunReport


@dataclass(frozen=True)
class NotificationMessage:
    status: str
    title: str
    text: str
    color: str


def format_duration(seconds: float) -> str:
    total = max(0, int(round(seconds)))
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {secs:02d}s"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


def _common_lines(report: RunReport) -> list[str]:
    return [
        f"Revision: {report.revision or 'unknown'}",
        f"Image: {report.image_ref or 'n/a'}",
        f"Duration: {format_duration(report.duration_s)}",
    ]


def _stage_line(report: RunReport) -> str:
    if not report.stage_statuses:
        return "Stages: none"
    return "Stages: " + ", ".join(f"{name}={status}" for name, status in report.stage_statuses)


def render_message(report: RunReport) -> NotificationMessage | None:
    """Pick the template for the run verdict. Aborted runs produce no message."""

    heading = f"{report.job_name} #{report.run_number}"
    verdict = report.verdict

    if isinstance(verdict, Success):
        lines = [f"Deployment succeeded: {heading}", *_common_lines(report), _stage_line(report)]
        return NotificationMessage(
            status="success", title=f"SUCCESS: {heading}", text="\n".join(lines), color="good"
        )

    if isinstance(verdict, Failure):
        lines = [
            f"Deployment failed: {heading}",
            f"Failed stage: {report.failed_stage or 'n/a'}",
            f"Reason: {verdict.reason}",
        ]
        if verdict.detail:
            lines.append(f"Detail: {verdict.detail}")
        lines.extend(_common_lines(report))
        lines.append(_stage_line(report))
        return NotificationMessage(
            status="failure", title=f"FAILURE: {heading}", text="\n".join(lines), color="danger"
        )

    if isinstance(verdict, Unstable):
        lines = [
            f"Deployment unstable: {heading}",
            f"Reason: {verdict.reason}",
            *_common_lines(report),
            _stage_line(report),
        ]
        return NotificationMessage(
            status="unstable", title=f"UNSTABLE: {heading}", text="\n".join(lines), color="warning"
        )

    if isinstance(verdict, Aborted):
        return None

    raise TypeError(f"Unknown verdict type: {type(verdict).__name__}")
