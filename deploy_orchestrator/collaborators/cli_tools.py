"""Collaborators backed by command-line tools (git, mvn, docker, aws, kubectl).

Every call goes through a ``CommandRunner`` so tests can substitute a recorder
for ``subprocess``.
"""

from __future__ import annotations

import logging
import os
from typing import Mapping, Sequence

from stagekit.errors import StageActionError, StageTimeoutError

from deploy_orchestrator.foundation.process import CommandResult, CommandRunner, run_command

_ROLLOUT_GRACE_S = 15.0
_ROLLOUT_TIMEOUT_MARKERS = ("timed out", "exceeded its progress deadline")
_MISSING_IMAGE_MARKERS = ("no such image", "image not known", "reference does not exist")


class _ToolClient:
    def __init__(self, *, runner: CommandRunner = run_command, logger: logging.Logger | None = None):
        self._runner = runner
        self._logger = logger

    def _run(
        self,
        argv: Sequence[str],
        *,
        timeout_s: float,
        cwd: str | None = None,
        input_text: str | None = None,
        check: bool = True,
    ) -> CommandResult:
        return self._runner(
            list(argv),
            timeout_s=timeout_s,
            logger=self._logger,
            cwd=cwd,
            input_text=input_text,
            check=check,
        )


class GitSource(_ToolClient):
    def checkout(
        self, *, workspace: str, repo_url: str | None, branch: str, timeout_s: float
    ) -> str:
        if repo_url:
            if os.path.isdir(os.path.join(workspace, ".git")):
                self._run(
                    ["git", "-C", workspace, "fetch", "--depth", "1", "origin", branch],
                    timeout_s=timeout_s,
                )
                self._run(
                    ["git", "-C", workspace, "checkout", "--force", "FETCH_HEAD"],
                    timeout_s=timeout_s,
                )
            else:
                os.makedirs(os.path.dirname(os.path.abspath(workspace)), exist_ok=True)
                self._run(
                    ["git", "clone", "--depth", "1", "--branch", branch, repo_url, workspace],
                    timeout_s=timeout_s,
                )

        result = self._run(
            ["git", "-C", workspace, "rev-parse", "--short", "HEAD"], timeout_s=timeout_s
        )
        return result.stdout.strip()


class MavenBuildTool(_ToolClient):
    def __init__(
        self,
        *,
        executable: str = "mvn",
        runner: CommandRunner = run_command,
        logger: logging.Logger | None = None,
    ):
        super().__init__(runner=runner, logger=logger)
        self._executable = executable

    def build(
        self, *, workspace: str, skip_tests: bool, version: str, timeout_s: float
    ) -> CommandResult:
        argv = [self._executable, "clean", "package", "-B", f"-Drevision={version}"]
        if skip_tests:
            argv.append("-DskipTests")
        return self._run(argv, timeout_s=timeout_s, cwd=workspace)


class DockerImageBuilder(_ToolClient):
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
        if not tags:
            raise ValueError("docker build requires at least one tag")
        argv = ["docker", "build", "-f", dockerfile]
        for tag in tags:
            argv.extend(["-t", tag])
        for key, value in build_args.items():
            argv.extend(["--build-arg", f"{key}={value}"])
        for key, value in labels.items():
            argv.extend(["--label", f"{key}={value}"])
        argv.append(context_dir)
        self._run(argv, timeout_s=timeout_s)

    def remove(self, ref: str, *, timeout_s: float) -> bool:
        result = self._run(["docker", "image", "rm", ref], timeout_s=timeout_s, check=False)
        if result.ok:
            return True
        stderr = result.stderr.lower()
        if any(marker in stderr for marker in _MISSING_IMAGE_MARKERS):
            return False
        raise StageActionError(
            f"docker image rm {ref} failed (exit={result.returncode})",
            detail=result.stderr.strip() or None,
        )


class EcrRegistryClient(_ToolClient):
    def login(self, *, registry_host: str, region: str, timeout_s: float) -> None:
        password = self._run(
            ["aws", "ecr", "get-login-password", "--region", region], timeout_s=timeout_s
        ).stdout.strip()
        if not password:
            raise StageActionError("aws ecr get-login-password returned an empty token")
        self._run(
            ["docker", "login", "--username", "AWS", "--password-stdin", registry_host],
            timeout_s=timeout_s,
            input_text=password,
        )

    def push(self, ref: str, *, timeout_s: float) -> None:
        self._run(["docker", "push", ref], timeout_s=timeout_s)


class KubectlClusterClient(_ToolClient):
    def update_context(self, *, region: str, cluster_name: str, timeout_s: float) -> None:
        self._run(
            ["aws", "eks", "update-kubeconfig", "--region", region, "--name", cluster_name],
            timeout_s=timeout_s,
        )

    def apply_file(self, path: str, *, namespace: str | None, timeout_s: float) -> None:
        argv = ["kubectl", "apply", "-f", path]
        if namespace:
            argv.extend(["-n", namespace])
        self._run(argv, timeout_s=timeout_s)

    def apply_text(self, manifest: str, *, namespace: str | None, timeout_s: float) -> None:
        argv = ["kubectl", "apply", "-f", "-"]
        if namespace:
            argv.extend(["-n", namespace])
        self._run(argv, timeout_s=timeout_s, input_text=manifest)

    def rollout_status(self, deployment: str, *, namespace: str, timeout_s: float) -> None:
        if timeout_s <= 0:
            raise StageTimeoutError(f"No time left to wait for deployment/{deployment}")
        wait_s = max(1, int(timeout_s))
        argv = [
            "kubectl",
            "rollout",
            "status",
            f"deployment/{deployment}",
            "-n",
            namespace,
            f"--timeout={wait_s}s",
        ]
        result = self._run(argv, timeout_s=wait_s + _ROLLOUT_GRACE_S, check=False)
        if result.ok:
            return
        output = result.output.lower()
        if any(marker in output for marker in _ROLLOUT_TIMEOUT_MARKERS):
            raise StageTimeoutError(
                f"Rollout of deployment/{deployment} did not complete within {wait_s}s",
                output=result.output,
            )
        raise StageActionError(
            f"kubectl rollout status failed (exit={result.returncode})",
            detail=result.output.strip() or None,
            output=result.output,
        )

    def find_running_pod(self, *, namespace: str, selector: str, timeout_s: float) -> str | None:
        result = self._run(
            [
                "kubectl",
                "get",
                "pods",
                "-n",
                namespace,
                "-l",
                selector,
                "--field-selector=status.phase=Running",
                "-o",
                "jsonpath={.items[*].metadata.name}",
            ],
            timeout_s=timeout_s,
        )
        names = result.stdout.split()
        return names[0] if names else None

    def exec_in_pod(
        self, pod: str, argv: Sequence[str], *, namespace: str, timeout_s: float
    ) -> CommandResult:
        return self._run(
            ["kubectl", "exec", "-n", namespace, pod, "--", *argv],
            timeout_s=timeout_s,
            check=False,
        )

    def node_address(self, *, timeout_s: float) -> str | None:
        for address_type in ("ExternalIP", "InternalIP"):
            result = self._run(
                [
                    "kubectl",
                    "get",
                    "nodes",
                    "-o",
                    f'jsonpath={{.items[*].status.addresses[?(@.type=="{address_type}")].address}}',
                ],
                timeout_s=timeout_s,
            )
            addresses = result.stdout.split()
            if addresses:
                return addresses[0]
        return None
