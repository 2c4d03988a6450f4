from __future__ import annotations

import argparse
from pathlib import Path

from pipeline.core import DEFAULT_OUTPUT_ROOT


def add_base_args(parser: argparse.ArgumentParser, *, root_dir: Path) -> None:
    """Register CLI flags that are shared across every mode.

    This includes:
    - mode selection
    - config file / workspace / output layout
    - execution knobs
    """

    parser.add_argument(
        "--mode",
        choices=["run", "info", "test", "notify"],
        default="run",
        help=(
            "run = full pipeline, info = print build information, "
            "test = unit or integration tests only, notify = send one notification"
        ),
    )
    parser.add_argument(
        "--test-type",
        choices=["unit", "integration"],
        default="unit",
        help="(test mode) Which test suite to run (default: unit)",
    )
    parser.add_argument(
        "--status",
        choices=["SUCCESS", "FAILURE", "UNSTABLE"],
        default="SUCCESS",
        help="(notify mode) Build status to report (default: SUCCESS)",
    )
    parser.add_argument("--error", help="(notify mode) Error text for a FAILURE notification")

    parser.add_argument(
        "--config",
        help="Pipeline YAML file. If omitted, pipeline.yml / pipeline.yaml / .java-ci.yml in the workspace is used.",
    )
    parser.add_argument(
        "--workspace",
        default=str(Path.cwd()),
        help="Checkout directory the pipeline runs in (default: current directory)",
    )
    parser.add_argument(
        "--output-root",
        default=str(DEFAULT_OUTPUT_ROOT),
        help=f"Base directory for build outputs (default: {DEFAULT_OUTPUT_ROOT.relative_to(root_dir)})",
    )
    parser.add_argument(
        "--build-number",
        help="Build number. Defaults to $BUILD_NUMBER, then the next free number under the output root.",
    )
    parser.add_argument("--build-url", help="Link to this build, used in notifications (default: $BUILD_URL)")

    parser.add_argument("--dry-run", action="store_true", help="Print commands but do not execute")
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress tool stdout/stderr (not recommended for debugging)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
