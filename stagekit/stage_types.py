from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Literal, TypeAlias

from stagekit.verdict import Verdict

HookCondition: TypeAlias = Literal["always", "on_success", "on_failure", "on_unstable"]
ALLOWED_HOOK_CONDITIONS: tuple[str, ...] = ("always", "on_success", "on_failure", "on_unstable")

StageAction: TypeAlias = Callable[[Any, Any], Verdict]
HookFn: TypeAlias = Callable[[Any, Any, Verdict], None]


@dataclass(frozen=True)
class Hook:
    """Post-action callback bound to a stage, selected by the stage verdict."""

    name: str
    fn: HookFn
    when: HookCondition = "always"

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise TypeError("Hook.name must be a non-empty string")
        object.__setattr__(self, "name", self.name.strip())
        if not callable(self.fn):
            raise TypeError(f"Hook fn must be callable (type={type(self.fn).__name__})")
        if self.when not in ALLOWED_HOOK_CONDITIONS:
            raise ValueError(f"Invalid hook condition: {self.when}")


@dataclass(frozen=True)
class Stage:
    name: str
    action: StageAction
    hooks: tuple[Hook, ...] = ()
    best_effort: bool = False
    timeout_s: float | None = None
    doc: str | None = None
    meta: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.name, str):
            raise TypeError(f"Stage name must be a string (type={type(self.name).__name__})")
        name = self.name.strip()
        if not name:
            raise ValueError("Stage name cannot be empty")
        object.__setattr__(self, "name", name)

        if not callable(self.action):
            raise TypeError(f"Stage action must be callable (type={type(self.action).__name__})")

        hooks = tuple(self.hooks)
        for hook in hooks:
            if not isinstance(hook, Hook):
                raise TypeError(
                    f"Stage {name} hooks must be Hook instances (type={type(hook).__name__})"
                )
        seen: set[str] = set()
        for hook in hooks:
            if hook.name in seen:
                raise ValueError(f"Duplicate hook name in stage {name}: {hook.name}")
            seen.add(hook.name)
        object.__setattr__(self, "hooks", hooks)

        if not isinstance(self.best_effort, bool):
            raise TypeError("Stage best_effort must be a bool")

        if self.timeout_s is not None:
            if isinstance(self.timeout_s, bool) or not isinstance(self.timeout_s, (int, float)):
                raise TypeError("Stage timeout_s must be a number or None")
            if self.timeout_s <= 0:
                raise ValueError(f"Stage {name} timeout_s must be > 0 (got {self.timeout_s})")

        if self.doc is not None and (not isinstance(self.doc, str) or not self.doc.strip()):
            raise TypeError("Stage doc must be a non-empty string or None")
        if not isinstance(self.meta, dict):
            raise TypeError(f"Stage meta must be a dict (type={type(self.meta).__name__})")

    def hooks_for(self, when: HookCondition) -> tuple[Hook, ...]:
        return tuple(hook for hook in self.hooks if hook.when == when)

    def with_hooks(self, *hooks: Hook) -> "Stage":
        return Stage(
            name=self.name,
            action=self.action,
            hooks=(*self.hooks, *hooks),
            best_effort=self.best_effort,
            timeout_s=self.timeout_s,
            doc=self.doc,
            meta=dict(self.meta),
        )
