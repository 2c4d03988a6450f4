#!/usr/bin/env python3
"""
CLI for the Java CI pipeline.

Modes:
  1) run    - full pipeline (checkout, build, tests, analysis, security, publish, notify)
  2) info   - print the build information banner for a workspace
  3) test   - run only unit or integration tests in an existing workspace
  4) notify - send one notification (useful to check channel settings)

Usage:
  python ci_cli.py --repo-url https://github.com/spring-projects/spring-petclinic.git --version 3.2.0
  python ci_cli.py --config pipeline.yml --integration-tests --security-scan
  python ci_cli.py --mode test --test-type integration --workspace ./petclinic --skip-checkout
  python ci_cli.py --mode notify --status FAILURE --slack-channel '#builds'

Exit codes: 0 SUCCESS, 1 FAILURE, 3 UNSTABLE, 2 invalid configuration.
"""

from __future__ import annotations

import argparse

from cli.args.base import add_base_args
from cli.args.pipeline_flags import add_pipeline_args
from cli.dispatch import dispatch
from pipeline.config import ConfigError
from pipeline.core import ROOT_DIR
from pipeline.wiring import build_pipeline, configure_logging


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the Java CI pipeline for a Maven or Gradle project.")
    add_base_args(parser, root_dir=ROOT_DIR)
    add_pipeline_args(parser)
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    # Build the facade first so .env values are visible to every later step.
    pipeline = build_pipeline()
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        return int(dispatch(args, pipeline))
    except ConfigError as e:
        print(f"\n❌ Invalid configuration: {e}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
