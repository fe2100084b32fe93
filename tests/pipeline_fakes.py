"""Recording stand-ins for the external tools a deployment run talks to."""

from __future__ import annotations

import logging
import os
from pathlib import Path

from stagekit.errors import StageActionError, StageTimeoutError

from deploy_orchestrator.collaborators import Collaborators, ProbeResponse
from deploy_orchestrator.foundation.process import CommandResult
from deploy_orchestrator.framework.config import RunConfiguration
from deploy_orchestrator.framework.runtime import RunContext

DEPLOYMENT_TEMPLATE = """\
apiVersion: apps/v1
kind: Deployment
metadata:
  name: springboot-app
spec:
  replicas: 2
  selector:
    matchLabels:
      app: springboot-app
  template:
    metadata:
      labels:
        app: springboot-app
    spec:
      containers:
        - name: app
          image: IMAGE_PLACEHOLDER
          ports:
            - containerPort: 8080
"""

SERVICE_MANIFEST = """\
apiVersion: v1
kind: Service
metadata:
  name: springboot-app
spec:
  type: NodePort
  selector:
    app: springboot-app
  ports:
    - port: 80
      targetPort: 8080
      nodePort: 30080
"""


def make_workspace(root: Path) -> Path:
    workspace = root / "workspace"
    (workspace / "k8s").mkdir(parents=True)
    (workspace / "k8s" / "deployment.yaml").write_text(DEPLOYMENT_TEMPLATE, encoding="utf-8")
    (workspace / "k8s" / "service.yaml").write_text(SERVICE_MANIFEST, encoding="utf-8")
    (workspace / "Dockerfile").write_text("FROM eclipse-temurin:17-jre\n", encoding="utf-8")
    return workspace


def config_dict(root: Path, **sections) -> dict:
    """A complete, valid run configuration rooted at ``root``; sections override per key."""

    workspace = root / "workspace"
    if not workspace.exists():
        make_workspace(root)
    cfg: dict = {
        "aws": {"account_id": "123456789012", "region": "ap-south-1"},
        "registry": {"repository": "springboot-app"},
        "cluster": {"name": "eks-cicd", "namespace": "springboot"},
        "app": {"name": "springboot-app", "port": 8080},
        "run": {"job_name": "springboot-deploy", "number": 42},
        "paths": {
            "workspace": str(workspace),
            "artifacts_dir": str(root / "artifacts"),
            "log_dir": str(root / "logs"),
        },
        "smoke_test": {"settle_s": 0},
        "notify": {"channel": "#deployments"},
    }
    for section, values in sections.items():
        if isinstance(values, dict) and isinstance(cfg.get(section), dict):
            cfg[section] = {**cfg[section], **values}
        else:
            cfg[section] = values
    return cfg


def make_logger(name: str) -> logging.Logger:
    logger = logging.getLogger(name)
    logger.handlers.clear()
    logger.addHandler(logging.NullHandler())
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger


def make_ctx(cfg: RunConfiguration, name: str = "test.stages") -> RunContext:
    return RunContext(
        run_id="run_test",
        cfg=cfg,
        logger=make_logger(name),
        created_at="2025-01-01T00:00:00Z",
    )


class FakeSource:
    def __init__(self, journal: list, *, revision: str = "abc1234", error: Exception | None = None):
        self.journal = journal
        self.revision = revision
        self.error = error

    def checkout(self, *, workspace, repo_url, branch, timeout_s):
        self.journal.append(("checkout", branch))
        if self.error is not None:
            raise self.error
        return self.revision


class FakeBuildTool:
    def __init__(self, journal: list, *, jar_name: str = "app-1.0.0.jar", error: Exception | None = None):
        self.journal = journal
        self.jar_name = jar_name
        self.error = error
        self.calls: list[dict] = []

    def build(self, *, workspace, skip_tests, version, timeout_s):
        self.journal.append(("build", version))
        self.calls.append({"workspace": workspace, "skip_tests": skip_tests, "version": version})
        if self.error is not None:
            raise self.error
        target = os.path.join(workspace, "target")
        os.makedirs(target, exist_ok=True)
        with open(os.path.join(target, self.jar_name), "wb") as handle:
            handle.write(b"PK")
        return CommandResult(
            argv=("mvn", "clean", "package"),
            returncode=0,
            stdout="[INFO] BUILD SUCCESS\n",
            stderr="",
            duration_s=0.1,
        )


class FakeImages:
    def __init__(self, journal: list, *, build_error: Exception | None = None, remove_error: Exception | None = None):
        self.journal = journal
        self.build_error = build_error
        self.remove_error = remove_error
        self.present: set[str] = set()
        self.builds: list[dict] = []
        self.remove_calls: list[str] = []

    def build(self, *, context_dir, dockerfile, tags, build_args, labels, timeout_s):
        self.journal.append(("image_build", tuple(tags)))
        self.builds.append(
            {"context_dir": context_dir, "tags": list(tags), "build_args": dict(build_args), "labels": dict(labels)}
        )
        if self.build_error is not None:
            raise self.build_error
        self.present.update(tags)

    def remove(self, ref, *, timeout_s):
        self.journal.append(("image_remove", ref))
        self.remove_calls.append(ref)
        if self.remove_error is not None:
            raise self.remove_error
        if ref in self.present:
            self.present.discard(ref)
            return True
        return False


class FakeRegistry:
    def __init__(self, journal: list, *, push_error: Exception | None = None):
        self.journal = journal
        self.push_error = push_error
        self.logins: list[str] = []
        self.pushed: list[str] = []

    def login(self, *, registry_host, region, timeout_s):
        self.journal.append(("login", registry_host))
        self.logins.append(registry_host)

    def push(self, ref, *, timeout_s):
        self.journal.append(("push", ref))
        if self.push_error is not None:
            raise self.push_error
        self.pushed.append(ref)


class FakeCluster:
    def __init__(
        self,
        journal: list,
        *,
        pod: str | None = "springboot-app-7d9f-abcde",
        exec_stdout: str = '{"status":"UP"}',
        exec_returncode: int = 0,
        node: str | None = "10.0.0.12",
        rollout_error: Exception | None = None,
    ):
        self.journal = journal
        self.pod = pod
        self.exec_stdout = exec_stdout
        self.exec_returncode = exec_returncode
        self.node = node
        self.rollout_error = rollout_error
        self.applied_files: list[tuple[str, str | None]] = []
        self.applied_texts: list[str] = []
        self.exec_calls: list[list[str]] = []

    def update_context(self, *, region, cluster_name, timeout_s):
        self.journal.append(("update_context", cluster_name))

    def apply_file(self, path, *, namespace, timeout_s):
        self.journal.append(("apply_file", os.path.basename(path)))
        self.applied_files.append((path, namespace))

    def apply_text(self, manifest, *, namespace, timeout_s):
        self.journal.append(("apply_text", None))
        self.applied_texts.append(manifest)

    def rollout_status(self, deployment, *, namespace, timeout_s):
        self.journal.append(("rollout_status", deployment))
        if self.rollout_error is not None:
            raise self.rollout_error

    def find_running_pod(self, *, namespace, selector, timeout_s):
        self.journal.append(("find_running_pod", selector))
        return self.pod

    def exec_in_pod(self, pod, argv, *, namespace, timeout_s):
        self.journal.append(("exec_in_pod", pod))
        self.exec_calls.append(list(argv))
        return CommandResult(
            argv=("kubectl", "exec", pod, "--", *argv),
            returncode=self.exec_returncode,
            stdout=self.exec_stdout,
            stderr="" if self.exec_returncode == 0 else "curl: (7) Failed to connect",
            duration_s=0.1,
        )

    def node_address(self, *, timeout_s):
        self.journal.append(("node_address", None))
        return self.node


class FakeProbe:
    def __init__(self, journal: list, *, status_code: int = 200, body: str = '{"status":"UP"}'):
        self.journal = journal
        self.status_code = status_code
        self.body = body
        self.urls: list[str] = []

    def get(self, url, *, timeout_s):
        self.journal.append(("probe", url))
        self.urls.append(url)
        return ProbeResponse(status_code=self.status_code, body=self.body)


class FakeToolchain:
    """All fakes sharing one journal, plus the ``Collaborators`` bundle built from them."""

    def __init__(self, **overrides):
        self.journal: list = []
        self.source = overrides.pop("source", None) or FakeSource(self.journal)
        self.build_tool = overrides.pop("build_tool", None) or FakeBuildTool(self.journal)
        self.images = overrides.pop("images", None) or FakeImages(self.journal)
        self.registry = overrides.pop("registry", None) or FakeRegistry(self.journal)
        self.cluster = overrides.pop("cluster", None) or FakeCluster(self.journal)
        self.probe = overrides.pop("probe", None) or FakeProbe(self.journal)
        if overrides:
            raise TypeError(f"Unknown fake overrides: {sorted(overrides)}")
        for fake in (self.source, self.build_tool, self.images, self.registry, self.cluster, self.probe):
            fake.journal = self.journal

    @property
    def collaborators(self) -> Collaborators:
        return Collaborators(
            source=self.source,
            build_tool=self.build_tool,
            images=self.images,
            registry=self.registry,
            cluster=self.cluster,
            probe=self.probe,
        )

    def called(self, name: str) -> bool:
        return any(entry[0] == name for entry in self.journal)


class RecordingChannel:
    name = "recording"

    def __init__(self):
        self.messages: list = []

    def send(self, message, report):
        self.messages.append(message)


def rollout_timeout() -> StageTimeoutError:
    return StageTimeoutError(
        "Rollout of deployment/springboot-app did not complete within 300s",
        output="error: timed out waiting for the condition",
    )


def build_failure() -> StageActionError:
    return StageActionError(
        "mvn exited with status 1",
        output="[ERROR] Tests run: 12, Failures: 1\n[INFO] BUILD FAILURE\n",
    )
