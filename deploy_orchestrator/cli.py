from __future__ import annotations

import argparse
import os
import signal
import sys
import time
from collections.abc import Sequence
from typing import Any

from stagekit.engine import CancellationToken

from deploy_orchestrator.framework.config import ConfigurationError, RunConfiguration

# dotted config key for each dedicated override flag
_FLAG_KEYS: tuple[tuple[str, str], ...] = (
    ("account_id", "aws.account_id"),
    ("region", "aws.region"),
    ("repository", "registry.repository"),
    ("cluster", "cluster.name"),
    ("namespace", "cluster.namespace"),
    ("app_name", "app.name"),
    ("channel", "notify.channel"),
    ("job_name", "run.job_name"),
    ("run_number", "run.number"),
)


def _add_config_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", help="Load this YAML file instead of config/config.yaml")
    parser.add_argument("--account-id", dest="account_id", help="AWS account id (12 digits)")
    parser.add_argument("--region", help="AWS region, e.g. ap-south-1")
    parser.add_argument("--repository", help="ECR repository name")
    parser.add_argument("--cluster", help="EKS cluster name")
    parser.add_argument("--namespace", help="Kubernetes namespace")
    parser.add_argument("--app-name", dest="app_name", help="Deployment / application name")
    parser.add_argument("--channel", help="Notification channel, e.g. #deployments")
    parser.add_argument("--job-name", dest="job_name", help="Job name used in notifications")
    parser.add_argument(
        "--run-number",
        dest="run_number",
        type=int,
        help="Run number (defaults to $BUILD_NUMBER, then a timestamp)",
    )
    parser.add_argument(
        "--skip-tests",
        dest="skip_tests",
        action="store_true",
        default=None,
        help="Skip unit tests during the build",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override any dotted config key (repeatable)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="deploy-orchestrator", add_help=True)
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run the deployment pipeline")
    _add_config_arguments(run)

    check = sub.add_parser("check-config", help="Resolve and validate parameters without running")
    _add_config_arguments(check)

    sub.add_parser("list-stages", help="List available stages")

    return parser


def default_run_number(environ: dict[str, str] | None = None) -> int:
    environ = os.environ if environ is None else environ
    raw = (environ.get("BUILD_NUMBER") or "").strip()
    if raw:
        try:
            value = int(raw)
        except ValueError as exc:
            raise ConfigurationError(
                f"Invalid BUILD_NUMBER (expected a positive integer): {raw!r}", field="run.number"
            ) from exc
        if value >= 1:
            return value
        raise ConfigurationError(
            f"Invalid BUILD_NUMBER (expected a positive integer): {raw!r}", field="run.number"
        )
    return int(time.time())


def resolve_config(args: argparse.Namespace) -> tuple[dict[str, Any], dict[str, Any]]:
    """Load YAML, then layer CLI overrides on top (``--set`` first, dedicated flags last)."""

    from deploy_orchestrator.foundation.config_io import apply_overrides, load_config, parse_override

    try:
        cfg, meta = load_config(config_path=args.config)
    except (FileNotFoundError, ValueError) as exc:
        raise ConfigurationError(str(exc)) from exc

    overrides: dict[str, Any] = {}
    for item in args.overrides:
        try:
            key, value = parse_override(item)
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        overrides[key] = value

    for attr, key in _FLAG_KEYS:
        value = getattr(args, attr, None)
        if value is not None:
            overrides[key] = value
    if args.skip_tests:
        overrides["run.skip_tests"] = True

    cfg = apply_overrides(cfg, overrides)
    run_section = cfg.get("run")
    if not isinstance(run_section, dict) or run_section.get("number") in (None, ""):
        cfg = apply_overrides(cfg, {"run.number": default_run_number()})
    return cfg, meta


def _install_sigterm_handler(cancel: CancellationToken) -> None:
    def _handler(signum, frame):  # noqa: ARG001
        cancel.cancel("terminated")

    try:
        signal.signal(signal.SIGTERM, _handler)
    except ValueError:
        # not on the main thread
        pass


def _cmd_run(args: argparse.Namespace) -> int:
    from deploy_orchestrator.app.run import run_pipeline

    cfg, meta = resolve_config(args)
    cancel = CancellationToken()
    _install_sigterm_handler(cancel)
    outcome = run_pipeline(cfg, cancel=cancel, config_meta=meta)
    print(f"{outcome.verdict.status.upper()}: {outcome.report.job_name} #{outcome.report.run_number}")
    return outcome.exit_code


def _cmd_check_config(args: argparse.Namespace) -> int:
    cfg_dict, meta = resolve_config(args)
    cfg, warnings = RunConfiguration.from_dict(cfg_dict)
    for warning in warnings:
        print(f"warning: {warning}", file=sys.stderr)
    for path in meta.get("paths") or []:
        print(f"config: {path}")
    print(f"image: {cfg.image_ref}")
    print(f"cluster: {cfg.cluster_name} ({cfg.region})")
    print(f"namespace: {cfg.namespace}")
    print(f"channel: {cfg.notification_channel}")
    return 0


def _cmd_list_stages() -> int:
    from deploy_orchestrator.stages.registry import DEFAULT_SEQUENCE, get_stage_registry

    registry = get_stage_registry()
    by_id = {entry["stage_id"]: entry for entry in registry.describe()}
    for stage_id in DEFAULT_SEQUENCE:
        entry = by_id[stage_id]
        tags = ",".join(entry.get("tags") or ())
        print(f"{stage_id}\t{tags}\t{entry.get('doc') or ''}")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(list(argv) if argv is not None else None)

    if args.command == "list-stages":
        return _cmd_list_stages()

    from deploy_orchestrator.app.run import EXIT_CONFIG_ERROR

    try:
        if args.command == "run":
            return _cmd_run(args)
        if args.command == "check-config":
            return _cmd_check_config(args)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    raise AssertionError(f"Unhandled command: {args.command}")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main(sys.argv[1:]))
