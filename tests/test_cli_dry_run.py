from __future__ import annotations

import json
import subprocess
import sys
from pathlib import Path

import ci_cli
from cli.common import config_overrides, load_config

REPO_ROOT = Path(__file__).resolve().parents[1]
REPO_URL = "https://github.com/spring-projects/spring-petclinic.git"


def _workspace(tmp_path: Path) -> Path:
    ws = tmp_path / "petclinic"
    ws.mkdir()
    (ws / "pom.xml").write_text("<project/>", encoding="utf-8")
    return ws


def test_cli_dry_run_writes_manifest(tmp_path: Path) -> None:
    ws = _workspace(tmp_path)
    out = tmp_path / "out"

    cmd = [
        sys.executable,
        str(REPO_ROOT / "ci_cli.py"),
        "--workspace",
        str(ws),
        "--skip-checkout",
        "--dry-run",
        "--repo-url",
        REPO_URL,
        "--app-name",
        "demo",
        "--version",
        "1.0.0",
        "--output-root",
        str(out),
        "--build-number",
        "1",
        "--quiet",
    ]
    proc = subprocess.run(cmd, cwd=str(REPO_ROOT), capture_output=True, text=True)
    assert proc.returncode == 0, proc.stdout + proc.stderr
    assert "✅ Pipeline completed." in proc.stdout

    manifest = json.loads((out / "demo" / "1" / "pipeline-manifest.json").read_text(encoding="utf-8"))
    assert manifest["result"] == "SUCCESS"
    assert manifest["dry_run"] is True
    assert manifest["stages"][0]["name"] == "Initialize"
    assert manifest["stages"][-1]["name"] == "Cleanup"
    assert ws.exists()


def test_missing_version_is_a_config_error(tmp_path: Path) -> None:
    ws = _workspace(tmp_path)
    code = ci_cli.main(
        ["--workspace", str(ws), "--repo-url", REPO_URL, "--output-root", str(tmp_path / "out"), "--quiet"]
    )
    assert code == 2
    assert not (tmp_path / "out").exists()


def test_missing_config_file_is_a_config_error(tmp_path: Path) -> None:
    code = ci_cli.main(["--config", str(tmp_path / "nope.yml"), "--workspace", str(tmp_path)])
    assert code == 2


def test_flags_become_overrides() -> None:
    args = ci_cli.parse_args(
        [
            "--repo-url",
            REPO_URL,
            "--branch",
            "develop",
            "--build-tool",
            "gradle",
            "--build-args",
            "--info -Pprofile=ci",
            "--skip-tests",
            "--integration-tests",
            "--security-scan",
        ]
    )

    assert config_overrides(args) == {
        "buildTool": "gradle",
        "scm": {"url": REPO_URL, "branch": "develop"},
        "buildConfig": {"buildArgs": ["--info", "-Pprofile=ci"]},
        "testConfig": {"unitTests": {"enabled": False}, "integrationTests": {"enabled": True}},
        "security": {"scan": {"enabled": True}},
    }


def test_workspace_config_file_is_picked_up(tmp_path: Path) -> None:
    ws = _workspace(tmp_path)
    (ws / "pipeline.yml").write_text(
        "version: 3.2.0\n"
        "scm:\n"
        f"  url: {REPO_URL}\n"
        "notifications:\n"
        "  channels: [console]\n",
        encoding="utf-8",
    )

    args = ci_cli.parse_args(["--workspace", str(ws), "--branch", "develop", "--slack-channel", "#ci"])
    cfg = load_config(args)

    assert cfg.app_name == "spring-petclinic"
    assert cfg.version == "3.2.0"
    assert cfg.scm["branch"] == "develop"
    assert cfg.notifications["channels"] == ["console", "slack"]
    assert cfg.notifications["slack"]["channel"] == "#ci"
    assert cfg.notifications["slack"]["notifySuccess"] is True
