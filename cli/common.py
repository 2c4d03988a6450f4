from __future__ import annotations

"""cli.common

Small shared helpers for CLI command modules.

The CLI is split by "mode" (run/info/test/notify). Every mode needs the same
config loading and request building; keeping them here avoids drift between
the command modules.
"""

import argparse
import shlex
from pathlib import Path
from typing import Any, Dict, Optional

from pipeline.config import ConfigError, PipelineConfig
from pipeline.core import find_default_config
from pipeline.orchestrator import RunRequest
from tools.core_git import get_repo_name


def parse_csv(raw: Optional[str]) -> list[str]:
    """Parse a comma-separated list value into a list of non-empty strings."""
    if not raw:
        return []
    return [x.strip() for x in raw.split(",") if x.strip()]


def config_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    """Translate CLI flags into a partial pipeline definition."""
    out: Dict[str, Any] = {}

    def put(path: str, value: Any) -> None:
        node = out
        *parents, leaf = path.split(".")
        for key in parents:
            node = node.setdefault(key, {})
        node[leaf] = value

    if args.app_name:
        put("appName", args.app_name)
    if args.app_version:
        put("version", args.app_version)
    if args.build_tool:
        put("buildTool", args.build_tool)

    if args.repo_url:
        put("scm.url", args.repo_url)
    if args.branch:
        put("scm.branch", args.branch)
    if args.credentials_id:
        put("scm.credentialsId", args.credentials_id)
    if args.skip_checkout:
        put("scm.skipCheckout", True)

    if args.build_args:
        put("buildConfig.buildArgs", shlex.split(args.build_args))
    if args.generate_docs:
        put("buildConfig.generateDocs", True)

    if args.skip_tests:
        put("testConfig.unitTests.enabled", False)
    if args.integration_tests:
        put("testConfig.integrationTests.enabled", True)
    if args.skip_analysis:
        put("testConfig.staticAnalysis.enabled", False)
    if args.security_scan:
        put("security.scan.enabled", True)

    if args.slack_channel:
        put("notifications.slack.channel", args.slack_channel)

    return out


def load_config(args: argparse.Namespace) -> PipelineConfig:
    """YAML file (explicit or found in the workspace) + CLI overrides."""
    overrides = config_overrides(args)
    if args.config:
        path: Optional[Path] = Path(args.config).expanduser()
        if not path.is_file():
            raise ConfigError(f"Config file not found: {path}")
    else:
        path = find_default_config(Path(args.workspace).expanduser())

    cfg = PipelineConfig.from_yaml(path, overrides) if path else PipelineConfig(overrides)

    if args.slack_channel and "slack" not in cfg.notifications["channels"]:
        channels = list(cfg.notifications["channels"]) + ["slack"]
        cfg = cfg.merged({"notifications": {"channels": channels}})

    if not cfg.app_name and cfg.scm.get("url"):
        cfg = cfg.merged({"appName": get_repo_name(cfg.scm["url"])})
    return cfg


def build_run_request(args: argparse.Namespace, config: PipelineConfig) -> RunRequest:
    return RunRequest(
        config=config,
        workspace=Path(args.workspace).expanduser().resolve(),
        output_root=Path(args.output_root).expanduser().resolve(),
        build_number=args.build_number,
        build_url=args.build_url,
        dry_run=bool(args.dry_run),
        quiet=bool(args.quiet),
        clean_workspace=bool(args.clean_workspace),
    )
