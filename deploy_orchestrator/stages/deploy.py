from __future__ import annotations

import os

import yaml

from stagekit.errors import StageActionError
from stagekit.stage_registry import StageRef
from stagekit.stage_types import Stage
from stagekit.verdict import Success, Verdict

from deploy_orchestrator.collaborators import Collaborators
from deploy_orchestrator.foundation.logging_utils import write_text_log
from deploy_orchestrator.framework.config import RunConfiguration
from deploy_orchestrator.framework.runtime import RunContext

KIND_ID = "Deploy"


def render_namespace_manifest(namespace: str) -> str:
    return yaml.safe_dump(
        {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": namespace}},
        sort_keys=False,
    )


def render_deployment(template_text: str, *, placeholder: str, image_ref: str, path: str) -> str:
    if placeholder not in template_text:
        raise StageActionError(
            f"Deployment template {path} does not contain image placeholder {placeholder!r}"
        )
    rendered = template_text.replace(placeholder, image_ref)
    try:
        documents = [doc for doc in yaml.safe_load_all(rendered) if doc is not None]
    except yaml.YAMLError as exc:
        raise StageActionError(f"Rendered deployment manifest is not valid YAML: {path}", detail=str(exc)) from exc
    if not documents:
        raise StageActionError(f"Deployment template {path} is empty")
    return rendered


def _read_manifest(path: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return handle.read()
    except FileNotFoundError as exc:
        raise StageActionError(f"Manifest not found: {path}") from exc


def _build(cfg: RunConfiguration, collaborators: Collaborators) -> Stage:
    cluster = collaborators.cluster

    def _action(cfg: RunConfiguration, ctx: RunContext) -> Verdict:
        image_ref = str(ctx.require_output("image_ref"))
        command_timeout = cfg.deploy.command_timeout_s

        cluster.update_context(
            region=cfg.region,
            cluster_name=cfg.cluster_name,
            timeout_s=ctx.timeout_for(command_timeout),
        )
        ctx.logger.info("Cluster context set to %s (%s)", cfg.cluster_name, cfg.region)

        if cfg.deploy.namespace_manifest:
            cluster.apply_file(
                cfg.deploy.namespace_manifest,
                namespace=None,
                timeout_s=ctx.timeout_for(command_timeout),
            )
        else:
            cluster.apply_text(
                render_namespace_manifest(cfg.namespace),
                namespace=None,
                timeout_s=ctx.timeout_for(command_timeout),
            )
        ctx.logger.info("Namespace %s applied", cfg.namespace)

        template_path = cfg.deploy.deployment_template
        rendered = render_deployment(
            _read_manifest(template_path),
            placeholder=cfg.deploy.image_placeholder,
            image_ref=image_ref,
            path=template_path,
        )
        rendered_path = os.path.join(cfg.run_artifacts_dir, os.path.basename(template_path))
        write_text_log(rendered_path, rendered)
        ctx.outputs["rendered_manifests"] = [rendered_path]
        cluster.apply_file(rendered_path, namespace=cfg.namespace, timeout_s=ctx.timeout_for(command_timeout))
        ctx.logger.info("Applied deployment manifest %s with image %s", rendered_path, image_ref)

        for service_path in cfg.deploy.service_manifests:
            if not os.path.isfile(service_path):
                raise StageActionError(f"Manifest not found: {service_path}")
            cluster.apply_file(service_path, namespace=cfg.namespace, timeout_s=ctx.timeout_for(command_timeout))
            ctx.logger.info("Applied service manifest %s", service_path)

        cluster.rollout_status(
            cfg.app_name,
            namespace=cfg.namespace,
            timeout_s=ctx.timeout_for(cfg.deploy.rollout_timeout_s),
        )
        ctx.outputs["deployment"] = f"{cfg.namespace}/{cfg.app_name}"
        ctx.logger.info("Rollout of deployment/%s complete", cfg.app_name)
        return Success()

    return Stage(name=KIND_ID, action=_action, meta={"failure_reason": "deploy"})


STAGE = StageRef(
    id=KIND_ID,
    builder=_build,
    doc="Apply namespace, deployment and services, then wait for the rollout.",
    tags=("cluster",),
)
