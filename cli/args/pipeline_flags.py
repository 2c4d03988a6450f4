from __future__ import annotations

import argparse


def add_pipeline_args(parser: argparse.ArgumentParser) -> None:
    """Register flags that override the pipeline definition.

    Anything left unset keeps the value from the YAML file (or the built-in
    default).
    """

    # Application / SCM
    parser.add_argument("--app-name", help="Application name (default: derived from --repo-url)")
    parser.add_argument("--version", dest="app_version", help="Application version")
    parser.add_argument("--repo-url", help="Git repository URL")
    parser.add_argument("--branch", help="Branch to build (default: main)")
    parser.add_argument(
        "--credentials-id",
        help="Credentials id; the secret is read from $<ID>_TOKEN or $<ID>_PASSWORD",
    )
    parser.add_argument(
        "--skip-checkout",
        action="store_true",
        help="Use the workspace as-is instead of cloning --repo-url",
    )
    parser.add_argument(
        "--clean-workspace",
        action="store_true",
        help="Delete the workspace at the end even when it was not cloned by this run",
    )

    # Build
    parser.add_argument("--build-tool", choices=["maven", "gradle"], help="Build tool")
    parser.add_argument(
        "--build-args",
        help="Extra build tool arguments, shell-quoted (e.g. \"-Pprod -Dfoo=bar\")",
    )
    parser.add_argument("--generate-docs", action="store_true", help="Generate and publish JavaDoc")

    # Stages
    parser.add_argument("--skip-tests", action="store_true", help="Disable unit tests")
    parser.add_argument("--integration-tests", action="store_true", help="Run integration tests")
    parser.add_argument("--skip-analysis", action="store_true", help="Disable static analysis")
    parser.add_argument("--security-scan", action="store_true", help="Run security scans")

    # Notifications
    parser.add_argument("--slack-channel", help="Slack channel for build notifications (enables Slack)")
