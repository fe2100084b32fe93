from __future__ import annotations

import difflib
from dataclasses import dataclass, field
from typing import Any, Iterable, Protocol

from stagekit.stage_types import Stage


class StageBuilder(Protocol):
    def __call__(self, config: Any, collaborators: Any) -> Stage:
        ...


@dataclass(frozen=True)
class StageRef:
    id: str
    builder: StageBuilder
    doc: str | None = None
    tags: tuple[str, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise TypeError("StageRef.id must be a non-empty string")
        object.__setattr__(self, "id", self.id.strip())
        if not callable(self.builder):
            raise TypeError(f"StageRef.builder must be callable (stage={self.id})")
        if self.doc is not None and (not isinstance(self.doc, str) or not self.doc.strip()):
            raise TypeError("StageRef.doc must be a non-empty string or None")
        if self.tags:
            object.__setattr__(
                self, "tags", tuple(str(tag).strip() for tag in self.tags if str(tag).strip())
            )

    def build(self, config: Any, collaborators: Any) -> Stage:
        stage = self.builder(config, collaborators)
        if not isinstance(stage, Stage):
            raise TypeError(
                f"Stage builder returned non-Stage (stage={self.id}, type={type(stage).__name__})"
            )
        if stage.name != self.id:
            raise ValueError(
                f"Stage builder returned mismatched Stage.name: expected={self.id} got={stage.name}"
            )
        if stage.doc is None and self.doc:
            return Stage(
                name=stage.name,
                action=stage.action,
                hooks=stage.hooks,
                best_effort=stage.best_effort,
                timeout_s=stage.timeout_s,
                doc=self.doc,
                meta=dict(stage.meta),
            )
        return stage


@dataclass(frozen=True)
class StageRegistry:
    _by_id: dict[str, StageRef]

    @classmethod
    def from_refs(cls, refs: Iterable[StageRef]) -> "StageRegistry":
        entries: dict[str, StageRef] = {}
        for ref in refs:
            if ref.id in entries:
                raise ValueError(f"Duplicate stage id: {ref.id}")
            entries[ref.id] = ref
        return cls(_by_id=entries)

    def available(self) -> tuple[str, ...]:
        return tuple(self._by_id.keys())

    def describe(self) -> tuple[dict[str, Any], ...]:
        return tuple(
            {"stage_id": ref.id, "doc": ref.doc, "tags": list(ref.tags)}
            for ref in self._by_id.values()
        )

    def get(self, stage_id: str) -> StageRef:
        if not isinstance(stage_id, str) or not stage_id.strip():
            raise ValueError("stage_id must be a non-empty string")
        ref = self._by_id.get(stage_id.strip())
        if ref is None:
            message = f"Unknown stage id: {stage_id}"
            suggestions = self.suggest(stage_id)
            if suggestions:
                message += f" (did you mean: {', '.join(suggestions)})"
            raise ValueError(message)
        return ref

    def suggest(self, stage_id: str, *, limit: int = 3) -> tuple[str, ...]:
        key = (stage_id or "").strip()
        if not key or not self._by_id:
            return ()
        lowered = {name.lower(): name for name in self._by_id}
        matches = difflib.get_close_matches(key.lower(), list(lowered.keys()), n=limit)
        return tuple(lowered[match] for match in matches)

    def build_all(self, stage_ids: Iterable[str], config: Any, collaborators: Any) -> list[Stage]:
        return [self.get(stage_id).build(config, collaborators) for stage_id in stage_ids]
