from __future__ import annotations

from stagekit.stage_types import Hook, HookCondition
from stagekit.verdict import Verdict

from deploy_orchestrator.collaborators import ImageBuilder
from deploy_orchestrator.framework.config import RunConfiguration
from deploy_orchestrator.framework.runtime import RunContext

CLEANUP_TIMEOUT_S = 60.0


def remove_local_images(images: ImageBuilder, ctx: RunContext) -> list[str]:
    """Remove every image listed in ``local_images`` not yet removed; returns the refs removed now.

    Failures are logged per image and never raised, so calling this repeatedly
    is safe.
    """

    removed: list[str] = list(ctx.outputs.get("removed_images") or [])
    newly_removed: list[str] = []
    for ref in ctx.outputs.get("local_images") or []:
        if ref in removed:
            continue
        try:
            if images.remove(ref, timeout_s=CLEANUP_TIMEOUT_S):
                ctx.logger.info("Removed local image %s", ref)
            else:
                ctx.logger.debug("Local image already absent: %s", ref)
        except Exception as exc:  # noqa: BLE001
            ctx.logger.warning("Could not remove local image %s: %s", ref, exc)
            continue
        removed.append(ref)
        newly_removed.append(ref)
    ctx.outputs["removed_images"] = removed
    return newly_removed


def make_cleanup_hook(images: ImageBuilder, *, when: HookCondition = "always") -> Hook:
    """Hook form of :func:`remove_local_images`; the run verdict is unaffected."""

    def _remove_local_images(cfg: RunConfiguration, ctx: RunContext, _verdict: Verdict) -> None:
        remove_local_images(images, ctx)

    return Hook("remove_local_images", _remove_local_images, when=when)
