from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Protocol, Sequence

from deploy_orchestrator.foundation.process import CommandResult


@dataclass(frozen=True)
class ProbeResponse:
    status_code: int
    body: str = ""


class SourceControl(Protocol):
    def checkout(
        self, *, workspace: str, repo_url: str | None, branch: str, timeout_s: float
    ) -> str:
        """Bring the workspace to the requested revision and return its short id."""
        ...


class BuildTool(Protocol):
    def build(
        self, *, workspace: str, skip_tests: bool, version: str, timeout_s: float
    ) -> CommandResult:
        ...


class ImageBuilder(Protocol):
    def build(
        self,
        *,
        context_dir: str,
        dockerfile: str,
        tags: Sequence[str],
        build_args: Mapping[str, str],
        labels: Mapping[str, str],
        timeout_s: float,
    ) -> None:
        ...

    def remove(self, ref: str, *, timeout_s: float) -> bool:
        """Remove a local image. Returns False when it was already gone."""
        ...


class RegistryClient(Protocol):
    def login(self, *, registry_host: str, region: str, timeout_s: float) -> None:
        ...

    def push(self, ref: str, *, timeout_s: float) -> None:
        ...


class ClusterClient(Protocol):
    def update_context(self, *, region: str, cluster_name: str, timeout_s: float) -> None:
        ...

    def apply_file(self, path: str, *, namespace: str | None, timeout_s: float) -> None:
        ...

    def apply_text(self, manifest: str, *, namespace: str | None, timeout_s: float) -> None:
        ...

    def rollout_status(self, deployment: str, *, namespace: str, timeout_s: float) -> None:
        ...

    def find_running_pod(self, *, namespace: str, selector: str, timeout_s: float) -> str | None:
        ...

    def exec_in_pod(
        self, pod: str, argv: Sequence[str], *, namespace: str, timeout_s: float
    ) -> CommandResult:
        ...

    def node_address(self, *, timeout_s: float) -> str | None:
        ...


class HealthProbe(Protocol):
    def get(self, url: str, *, timeout_s: float) -> ProbeResponse:
        ...


@dataclass(frozen=True)
class Collaborators:
    """Everything a stage may call outside the process, bundled for injection."""

    source: SourceControl
    build_tool: BuildTool
    images: ImageBuilder
    registry: RegistryClient
    cluster: ClusterClient
    probe: HealthProbe
