from __future__ import annotations

import logging
import shlex
import subprocess
import time
from dataclasses import dataclass
from typing import Mapping, Protocol, Sequence

from stagekit.errors import StageActionError, StageTimeoutError

_TAIL_CHARS = 2000


@dataclass(frozen=True)
class CommandResult:
    argv: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    duration_s: float

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        if self.stderr and self.stdout:
            return self.stdout.rstrip("\n") + "\n" + self.stderr
        return self.stdout or self.stderr


class CommandRunner(Protocol):
    def __call__(
        self,
        argv: Sequence[str],
        *,
        timeout_s: float,
        logger: logging.Logger | None = None,
        cwd: str | None = None,
        input_text: str | None = None,
        env: Mapping[str, str] | None = None,
        check: bool = True,
    ) -> CommandResult:
        ...


def _tail(text: str | bytes | None) -> str:
    if text is None:
        return ""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    return text.strip()[-_TAIL_CHARS:]


def format_argv(argv: Sequence[str]) -> str:
    return " ".join(shlex.quote(str(part)) for part in argv)


def run_command(
    argv: Sequence[str],
    *,
    timeout_s: float,
    logger: logging.Logger | None = None,
    cwd: str | None = None,
    input_text: str | None = None,
    env: Mapping[str, str] | None = None,
    check: bool = True,
) -> CommandResult:
    """
    Run one external tool as a blocking call bounded by ``timeout_s``.

    Raises:
        StageTimeoutError: the process did not finish in time (it is killed).
        StageActionError: the executable is missing, or ``check`` is set and the
            exit status is non-zero. Captured output is attached as ``output``.
    """

    cmd = [str(part) for part in argv]
    if not cmd:
        raise ValueError("argv must not be empty")
    if timeout_s is None or timeout_s <= 0:
        raise StageTimeoutError(
            f"No time left to run {cmd[0]}", detail=f"timeout budget exhausted before {cmd[0]}"
        )

    label = format_argv(cmd)
    if logger:
        logger.info("Running: %s (timeout_s=%.0f)", label, timeout_s)

    start = time.monotonic()
    try:
        proc = subprocess.run(
            cmd,
            check=False,
            capture_output=True,
            text=True,
            timeout=timeout_s,
            cwd=cwd,
            input=input_text,
            env=dict(env) if env is not None else None,
        )
    except FileNotFoundError as exc:
        if logger:
            logger.error("Command not found: %s (%s)", cmd[0], exc)
        raise StageActionError(f"Command not found: {cmd[0]}", detail=str(exc)) from exc
    except subprocess.TimeoutExpired as exc:
        output = _tail(exc.stdout) + ("\n" + _tail(exc.stderr) if exc.stderr else "")
        if logger:
            logger.error("Command timed out after %.0fs: %s", timeout_s, label)
        raise StageTimeoutError(
            f"{cmd[0]} timed out after {timeout_s:.0f}s",
            detail=f"{label} timed out after {timeout_s:.0f}s",
            output=output or None,
        ) from exc

    result = CommandResult(
        argv=tuple(cmd),
        returncode=proc.returncode,
        stdout=proc.stdout or "",
        stderr=proc.stderr or "",
        duration_s=time.monotonic() - start,
    )
    if logger:
        logger.debug(
            "Finished: %s (exit=%s, duration_s=%.2f)", cmd[0], result.returncode, result.duration_s
        )

    if check and not result.ok:
        if logger:
            logger.error("Command failed (exit=%s): %s", result.returncode, label)
        raise StageActionError(
            f"{cmd[0]} exited with status {result.returncode}",
            detail=(
                f"{label} exited with status {result.returncode}. "
                f"stderr={_tail(result.stderr)!r}"
            ),
            output=result.output,
        )
    return result
