from __future__ import annotations

from deploy_orchestrator.stages.build import STAGE as BUILD
from deploy_orchestrator.stages.checkout import STAGE as CHECKOUT
from deploy_orchestrator.stages.container_build import STAGE as CONTAINER_BUILD
from deploy_orchestrator.stages.deploy import STAGE as DEPLOY
from deploy_orchestrator.stages.publish import STAGE as PUBLISH
from deploy_orchestrator.stages.smoke_test import STAGE as SMOKE_TEST

__all_stages__ = [
    CHECKOUT,
    BUILD,
    CONTAINER_BUILD,
    PUBLISH,
    DEPLOY,
    SMOKE_TEST,
]
