import pytest

from deploy_orchestrator.framework.config import RunConfiguration
from deploy_orchestrator.framework.runtime import RunContext
from pipeline_fakes import config_dict, make_logger


class FakeClock:
    def __init__(self, now: float):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _ctx(tmp_path, clock) -> RunContext:
    cfg, _ = RunConfiguration.from_dict(config_dict(tmp_path))
    return RunContext(
        run_id="ctx",
        cfg=cfg,
        logger=make_logger("test.run_context"),
        created_at="2025-01-01T00:00:00Z",
        clock=clock,
    )


def test_timeout_for_clamps_to_remaining_deadline(tmp_path):
    clock = FakeClock(100.0)
    ctx = _ctx(tmp_path, clock)

    assert ctx.timeout_for(300) == 300

    ctx.deadline = 160.0
    assert ctx.timeout_for(300) == 60.0
    assert ctx.timeout_for(10) == 10

    clock.now = 200.0
    assert ctx.timeout_for(300) == 0.0


def test_require_output(tmp_path):
    ctx = _ctx(tmp_path, FakeClock(0.0))
    ctx.outputs["image_ref"] = "repo:1"
    ctx.outputs["revision"] = "  "

    assert ctx.require_output("image_ref") == "repo:1"
    with pytest.raises(KeyError, match="revision"):
        ctx.require_output("revision")
    with pytest.raises(KeyError, match="latest_ref"):
        ctx.require_output("latest_ref")
