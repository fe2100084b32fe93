from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Any, Literal, Mapping

SmokeTestMode = Literal["exec", "node_port"]
ALLOWED_SMOKE_TEST_MODES: tuple[str, ...] = ("exec", "node_port")

_ACCOUNT_ID_RE = re.compile(r"^\d{12}$")
_REGION_RE = re.compile(r"^[a-z]{2}(-[a-z]+)+-\d+$")
_REPOSITORY_RE = re.compile(r"^[a-z0-9]+(?:[._-][a-z0-9]+)*(?:/[a-z0-9]+(?:[._-][a-z0-9]+)*)*$")
_CLUSTER_RE = re.compile(r"^[0-9A-Za-z][A-Za-z0-9_-]{0,99}$")
_DNS_LABEL_RE = re.compile(r"^[a-z0-9]([-a-z0-9]{0,61}[a-z0-9])?$")


class ConfigurationError(ValueError):
    """Bad or missing run input; raised before any stage runs."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


def parse_bool(value: Any, path: str) -> bool:
    """
    Strict boolean parsing to avoid bool('false') footguns.

    Accepts:
      - True/False
      - 0/1 (ints)
      - strings: true/false/1/0/yes/no (case-insensitive, surrounding whitespace ignored)

    Raises:
      ConfigurationError for anything else, with the provided config key path.
    """

    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        if value in (0, 1):
            return bool(value)
        raise ConfigurationError(f"Invalid boolean for {path}: {value!r}", field=path)
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "1", "yes"}:
            return True
        if normalized in {"false", "0", "no"}:
            return False
    raise ConfigurationError(f"Invalid boolean for {path}: {value!r}", field=path)


def parse_float(value: Any, path: str) -> float:
    if value is None:
        raise ConfigurationError(f"Invalid config value for {path}: None", field=path)
    if isinstance(value, bool):
        raise ConfigurationError(
            f"Invalid config type for {path}: expected float, got bool", field=path
        )
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError as exc:
            raise ConfigurationError(
                f"Invalid config value for {path}: must be a float", field=path
            ) from exc
    raise ConfigurationError(f"Invalid config type for {path}: expected float", field=path)


def parse_int(value: Any, path: str) -> int:
    if value is None:
        raise ConfigurationError(f"Invalid config value for {path}: None", field=path)
    if isinstance(value, bool):
        raise ConfigurationError(
            f"Invalid config type for {path}: expected int, got bool", field=path
        )
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError as exc:
            raise ConfigurationError(
                f"Invalid config value for {path}: must be an int", field=path
            ) from exc
    raise ConfigurationError(f"Invalid config type for {path}: expected int", field=path)


@dataclass(frozen=True)
class SourceConfig:
    repo_url: str | None = None
    branch: str = "main"
    timeout_s: float = 300.0


@dataclass(frozen=True)
class BuildConfig:
    timeout_s: float = 900.0
    jar_glob: str = "target/*.jar"


@dataclass(frozen=True)
class ContainerConfig:
    dockerfile: str = "Dockerfile"
    timeout_s: float = 900.0


@dataclass(frozen=True)
class DeployConfig:
    namespace_manifest: str | None
    deployment_template: str
    service_manifests: tuple[str, ...]
    image_placeholder: str = "IMAGE_PLACEHOLDER"
    rollout_timeout_s: float = 300.0
    command_timeout_s: float = 120.0


@dataclass(frozen=True)
class SmokeTestConfig:
    mode: SmokeTestMode = "exec"
    settle_s: float = 15.0
    probe_timeout_s: float = 10.0
    health_path: str = "/actuator/health"
    node_port: int = 30080
    selector: str = ""


@dataclass(frozen=True)
class NotifyConfig:
    channel: str
    slack_webhook_url: str | None = None
    timeout_s: float = 10.0


@dataclass(frozen=True)
class RunConfiguration:
    account_id: str
    region: str
    repository_name: str
    cluster_name: str
    namespace: str
    app_name: str
    app_port: int

    job_name: str
    run_number: int
    skip_tests: bool
    run_timeout_s: float

    workspace: str
    artifacts_dir: str
    log_dir: str

    source: SourceConfig
    build: BuildConfig
    container: ContainerConfig
    registry_timeout_s: float
    deploy: DeployConfig
    smoke_test: SmokeTestConfig
    notify: NotifyConfig

    @property
    def registry_host(self) -> str:
        return f"{self.account_id}.dkr.ecr.{self.region}.amazonaws.com"

    @property
    def image_repository(self) -> str:
        return f"{self.registry_host}/{self.repository_name}"

    @property
    def image_ref(self) -> str:
        return f"{self.image_repository}:{self.run_number}"

    @property
    def latest_ref(self) -> str:
        return f"{self.image_repository}:latest"

    @property
    def notification_channel(self) -> str:
        return self.notify.channel

    @property
    def run_artifacts_dir(self) -> str:
        return os.path.join(self.artifacts_dir, str(self.run_number))

    @staticmethod
    def from_dict(cfg: Mapping[str, Any]) -> tuple["RunConfiguration", list[str]]:
        """
        Parse and validate run inputs, returning (RunConfiguration, warnings).

        Raises:
            ConfigurationError: if required keys are missing or invalid. The
                message and the ``field`` attribute name the offending key.
        """

        if not isinstance(cfg, Mapping):
            raise ConfigurationError("Config must be a mapping")

        warnings: list[str] = []

        strict_unknown_keys = False
        if "strict" in cfg:
            strict_unknown_keys = parse_bool(cfg.get("strict"), "strict")

        schema: Mapping[str, Any] = {
            "strict": None,
            "aws": {"account_id": None, "region": None},
            "registry": {"repository": None, "timeout_s": None},
            "cluster": {"name": None, "namespace": None},
            "app": {"name": None, "port": None},
            "run": {
                "job_name": None,
                "number": None,
                "skip_tests": None,
                "timeout_s": None,
            },
            "paths": {"workspace": None, "artifacts_dir": None, "log_dir": None},
            "source": {"repo_url": None, "branch": None, "timeout_s": None},
            "build": {"timeout_s": None, "jar_glob": None},
            "container": {"dockerfile": None, "timeout_s": None},
            "deploy": {
                "namespace_manifest": None,
                "deployment_template": None,
                "service_manifests": None,
                "image_placeholder": None,
                "rollout_timeout_s": None,
                "command_timeout_s": None,
            },
            "smoke_test": {
                "mode": None,
                "settle_s": None,
                "probe_timeout_s": None,
                "health_path": None,
                "node_port": None,
                "selector": None,
            },
            "notify": {"channel": None, "slack_webhook_url": None, "timeout_s": None},
        }

        def collect_unknown_keys(mapping: Any, subschema: Mapping[str, Any], *, prefix: str) -> list[str]:
            if not isinstance(mapping, Mapping):
                return []
            unknown: list[str] = []
            for key, value in mapping.items():
                path = f"{prefix}.{key}" if prefix else str(key)
                if key not in subschema:
                    unknown.append(path)
                    continue
                nested = subschema.get(key)
                if isinstance(nested, Mapping):
                    unknown.extend(collect_unknown_keys(value, nested, prefix=path))
            return unknown

        unknown_keys = sorted(set(collect_unknown_keys(cfg, schema, prefix="")))
        if unknown_keys:
            if strict_unknown_keys:
                raise ConfigurationError(
                    "Unknown config keys: " + ", ".join(unknown_keys), field=unknown_keys[0]
                )
            warnings.extend(f"Unknown config key: {key}" for key in unknown_keys)

        def lookup(path: str) -> tuple[bool, Any]:
            cur: Any = cfg
            for part in path.split("."):
                if not isinstance(cur, Mapping) or part not in cur:
                    return False, None
                cur = cur[part]
            return True, cur

        def require_str(path: str) -> str:
            found, value = lookup(path)
            if not found or value is None:
                raise ConfigurationError(f"Missing required config: {path}", field=path)
            if isinstance(value, bool) or not isinstance(value, (str, int)):
                raise ConfigurationError(
                    f"Invalid config type for {path}: expected string", field=path
                )
            text = str(value).strip()
            if not text:
                raise ConfigurationError(f"Missing required config: {path}", field=path)
            return text

        def optional_str(path: str, *, default: str | None = None) -> str | None:
            found, value = lookup(path)
            if not found or value is None:
                return default
            if not isinstance(value, str):
                raise ConfigurationError(
                    f"Invalid config type for {path}: expected string", field=path
                )
            return value.strip() or default

        def optional_positive_float(path: str, *, default: float) -> float:
            found, value = lookup(path)
            if not found or value is None:
                return default
            parsed = parse_float(value, path)
            if parsed <= 0:
                raise ConfigurationError(f"Invalid config value for {path}: must be > 0", field=path)
            return parsed

        def optional_non_negative_float(path: str, *, default: float) -> float:
            found, value = lookup(path)
            if not found or value is None:
                return default
            parsed = parse_float(value, path)
            if parsed < 0:
                raise ConfigurationError(f"Invalid config value for {path}: must be >= 0", field=path)
            return parsed

        def optional_port(path: str, *, default: int) -> int:
            found, value = lookup(path)
            if not found or value is None:
                return default
            parsed = parse_int(value, path)
            if not 1 <= parsed <= 65535:
                raise ConfigurationError(
                    f"Invalid config value for {path}: must be a port in 1..65535", field=path
                )
            return parsed

        def optional_bool(path: str, *, default: bool) -> bool:
            found, value = lookup(path)
            if not found:
                return default
            if value is None:
                raise ConfigurationError(f"Invalid boolean for {path}: None", field=path)
            return parse_bool(value, path)

        def require_match(path: str, pattern: re.Pattern[str], hint: str) -> str:
            value = require_str(path)
            if not pattern.match(value):
                raise ConfigurationError(f"Invalid config value for {path}: {hint} (got {value!r})", field=path)
            return value

        account_id = require_str("aws.account_id")
        if not _ACCOUNT_ID_RE.match(account_id):
            raise ConfigurationError(
                "Invalid config value for aws.account_id: must be a 12-digit account identifier "
                "(quote it in YAML to keep leading zeros)",
                field="aws.account_id",
            )
        region = require_match("aws.region", _REGION_RE, "must look like an AWS region, e.g. ap-south-1")
        repository_name = require_match(
            "registry.repository", _REPOSITORY_RE, "must be a lowercase repository name"
        )
        cluster_name = require_match(
            "cluster.name", _CLUSTER_RE, "must start alphanumeric and contain only [A-Za-z0-9_-]"
        )
        namespace = require_match("cluster.namespace", _DNS_LABEL_RE, "must be a DNS-1123 label")
        app_name = require_match("app.name", _DNS_LABEL_RE, "must be a DNS-1123 label")
        channel = require_str("notify.channel")

        found, raw_run_number = lookup("run.number")
        if not found or raw_run_number is None or (
            isinstance(raw_run_number, str) and not raw_run_number.strip()
        ):
            raise ConfigurationError("Missing required config: run.number", field="run.number")
        run_number = parse_int(raw_run_number, "run.number")
        if run_number < 1:
            raise ConfigurationError("Invalid config value for run.number: must be >= 1", field="run.number")

        webhook = optional_str("notify.slack_webhook_url")
        if webhook is not None and not webhook.startswith(("https://", "http://")):
            raise ConfigurationError(
                "Invalid config value for notify.slack_webhook_url: must be an http(s) URL",
                field="notify.slack_webhook_url",
            )

        raw_mode = optional_str("smoke_test.mode", default="exec") or "exec"
        mode = raw_mode.strip().lower()
        if mode not in ALLOWED_SMOKE_TEST_MODES:
            raise ConfigurationError(
                f"Unknown smoke_test.mode: {raw_mode} (expected one of: {', '.join(ALLOWED_SMOKE_TEST_MODES)})",
                field="smoke_test.mode",
            )

        health_path = optional_str("smoke_test.health_path", default="/actuator/health") or "/actuator/health"
        if not health_path.startswith("/"):
            raise ConfigurationError(
                "Invalid config value for smoke_test.health_path: must start with '/'",
                field="smoke_test.health_path",
            )

        found, raw_services = lookup("deploy.service_manifests")
        if not found or raw_services is None:
            service_manifests_raw: list[str] = ["k8s/service.yaml"]
        elif isinstance(raw_services, str):
            service_manifests_raw = [raw_services]
        elif isinstance(raw_services, (list, tuple)):
            service_manifests_raw = []
            for idx, item in enumerate(raw_services):
                if not isinstance(item, str) or not item.strip():
                    raise ConfigurationError(
                        f"Invalid config value for deploy.service_manifests[{idx}]: expected non-empty string",
                        field="deploy.service_manifests",
                    )
                service_manifests_raw.append(item)
        else:
            raise ConfigurationError(
                "Invalid config type for deploy.service_manifests: expected list of strings",
                field="deploy.service_manifests",
            )

        workspace = os.path.abspath(
            os.path.expandvars(os.path.expanduser(optional_str("paths.workspace", default=".") or "."))
        )

        def normalize_path(value: str) -> str:
            expanded = os.path.expandvars(os.path.expanduser(value.strip()))
            if not os.path.isabs(expanded):
                expanded = os.path.join(workspace, expanded)
            return os.path.abspath(expanded)

        def normalize_optional_path(value: str | None) -> str | None:
            if value is None:
                return None
            return normalize_path(value)

        run_cfg = RunConfiguration(
            account_id=account_id,
            region=region,
            repository_name=repository_name,
            cluster_name=cluster_name,
            namespace=namespace,
            app_name=app_name,
            app_port=optional_port("app.port", default=8080),
            job_name=optional_str("run.job_name", default="deploy-pipeline") or "deploy-pipeline",
            run_number=run_number,
            skip_tests=optional_bool("run.skip_tests", default=False),
            run_timeout_s=optional_positive_float("run.timeout_s", default=1800.0),
            workspace=workspace,
            artifacts_dir=normalize_path(optional_str("paths.artifacts_dir", default="artifacts") or "artifacts"),
            log_dir=normalize_path(optional_str("paths.log_dir", default="logs") or "logs"),
            source=SourceConfig(
                repo_url=optional_str("source.repo_url"),
                branch=optional_str("source.branch", default="main") or "main",
                timeout_s=optional_positive_float("source.timeout_s", default=300.0),
            ),
            build=BuildConfig(
                timeout_s=optional_positive_float("build.timeout_s", default=900.0),
                jar_glob=optional_str("build.jar_glob", default="target/*.jar") or "target/*.jar",
            ),
            container=ContainerConfig(
                dockerfile=normalize_path(optional_str("container.dockerfile", default="Dockerfile") or "Dockerfile"),
                timeout_s=optional_positive_float("container.timeout_s", default=900.0),
            ),
            registry_timeout_s=optional_positive_float("registry.timeout_s", default=600.0),
            deploy=DeployConfig(
                namespace_manifest=normalize_optional_path(optional_str("deploy.namespace_manifest")),
                deployment_template=normalize_path(
                    optional_str("deploy.deployment_template", default="k8s/deployment.yaml")
                    or "k8s/deployment.yaml"
                ),
                service_manifests=tuple(normalize_path(item) for item in service_manifests_raw),
                image_placeholder=optional_str("deploy.image_placeholder", default="IMAGE_PLACEHOLDER")
                or "IMAGE_PLACEHOLDER",
                rollout_timeout_s=optional_positive_float("deploy.rollout_timeout_s", default=300.0),
                command_timeout_s=optional_positive_float("deploy.command_timeout_s", default=120.0),
            ),
            smoke_test=SmokeTestConfig(
                mode=mode,  # type: ignore[arg-type]
                settle_s=optional_non_negative_float("smoke_test.settle_s", default=15.0),
                probe_timeout_s=optional_positive_float("smoke_test.probe_timeout_s", default=10.0),
                health_path=health_path,
                node_port=optional_port("smoke_test.node_port", default=30080),
                selector=optional_str("smoke_test.selector", default=f"app={app_name}") or f"app={app_name}",
            ),
            notify=NotifyConfig(
                channel=channel,
                slack_webhook_url=webhook,
                timeout_s=optional_positive_float("notify.timeout_s", default=10.0),
            ),
        )
        return run_cfg, warnings
