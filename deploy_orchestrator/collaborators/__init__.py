"""External collaborators reached by stages (source control, build, images, cluster)."""

from __future__ import annotations

import logging

from deploy_orchestrator.collaborators.base import (
    BuildTool,
    ClusterClient,
    Collaborators,
    HealthProbe,
    ImageBuilder,
    ProbeResponse,
    RegistryClient,
    SourceControl,
)
from deploy_orchestrator.collaborators.cli_tools import (
    DockerImageBuilder,
    EcrRegistryClient,
    GitSource,
    KubectlClusterClient,
    MavenBuildTool,
)
from deploy_orchestrator.collaborators.http_probe import HttpHealthProbe
from deploy_orchestrator.foundation.process import CommandRunner, run_command


def default_collaborators(
    logger: logging.Logger | None = None, *, runner: CommandRunner = run_command
) -> Collaborators:
    return Collaborators(
        source=GitSource(runner=runner, logger=logger),
        build_tool=MavenBuildTool(runner=runner, logger=logger),
        images=DockerImageBuilder(runner=runner, logger=logger),
        registry=EcrRegistryClient(runner=runner, logger=logger),
        cluster=KubectlClusterClient(runner=runner, logger=logger),
        probe=HttpHealthProbe(logger=logger),
    )


__all__ = [
    "BuildTool",
    "ClusterClient",
    "Collaborators",
    "DockerImageBuilder",
    "EcrRegistryClient",
    "GitSource",
    "HealthProbe",
    "HttpHealthProbe",
    "ImageBuilder",
    "KubectlClusterClient",
    "MavenBuildTool",
    "ProbeResponse",
    "RegistryClient",
    "SourceControl",
    "default_collaborators",
]
