"""pipeline.orchestrator

High-level orchestration entrypoints.

The CLI stays thin. It parses flags, builds a :class:`PipelineConfig` and a
request, and calls one of the ``run_*`` functions here. Each returns an exit
code.

:class:`BuildPipeline` runs the fixed stage sequence::

  Initialize -> Checkout -> Build -> Unit Tests -> Integration Tests ->
  Code Quality -> Security Scan -> Generate Documentation ->
  Publish Artifacts -> Notify -> Cleanup

A failure in any stage marks the build FAILURE, sends the failure
notification and re-raises. Cleanup always runs. After it, the run manifest
is written to ``<output>/<app>/<build>/pipeline-manifest.json``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from java_ci.domain.build import Artifact, BuildInfo, BuildInfoRecord
from java_ci.io.fs import read_json, write_json_atomic
from java_ci.io.layout import BuildPaths, prepare_build_paths
from pipeline.config import ConfigError, PipelineConfig
from pipeline.stages import StageResult, run_stage, skip_stage
from tools import core_git
from tools.analysis import CodeAnalyzer
from tools.build import BuildManager
from tools.core_cmd import run_cmd
from tools.host_info import HostInfo
from tools.notify import Notifier
from tools.security import SecurityScanner
from tools.testing import TestRunner
from tools.workspace import FAILURE, SUCCESS, UNSTABLE, PipelineError, Runner, Workspace

logger = logging.getLogger(__name__)

EXIT_CODES = {SUCCESS: 0, FAILURE: 1, UNSTABLE: 3}
EXIT_USAGE = 2

BUILD_INFO_FILE = "build-info.json"

# Output folder for modes that do not produce a numbered build.
ADHOC_BUILD = "adhoc"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class RunRequest:
    config: PipelineConfig
    workspace: Path
    output_root: Path

    build_number: Optional[str] = None
    build_url: Optional[str] = None

    # execution
    dry_run: bool = False
    quiet: bool = False
    clean_workspace: bool = False

    # base environment for tools (defaults to os.environ)
    env: Optional[Mapping[str, str]] = None
    runner: Runner = run_cmd


@dataclass(frozen=True)
class TestRequest:
    run: RunRequest
    kind: str = "unit"  # "unit" | "integration"


@dataclass(frozen=True)
class NotifyRequest:
    run: RunRequest
    status: str = SUCCESS
    error: Optional[str] = None


def open_workspace(req: RunRequest, *, build_number: Optional[str] = None) -> Workspace:
    """Allocate build output folders and the workspace for *req*.

    *build_number* only names the output folder (``adhoc`` for modes without
    a numbered build); ``BUILD_NUMBER`` then keeps the requested or inherited
    number, defaulting to ``0``.
    """
    base_env = dict(os.environ if req.env is None else req.env)
    number = req.build_number or base_env.get("BUILD_NUMBER") or None
    paths = prepare_build_paths(req.output_root, req.config.app_name or "app", build_number=build_number or number)

    ws = Workspace(
        req.workspace,
        paths=paths,
        env=base_env,
        runner=req.runner,
        dry_run=req.dry_run,
        quiet=req.quiet,
    )
    ws.env["BUILD_NUMBER"] = paths.build_number if build_number is None else (number or "0")
    ws.env["WORKSPACE"] = str(ws.root)
    if req.build_url:
        ws.env["BUILD_URL"] = req.build_url
    return ws


class BuildPipeline:
    """One run of the CI pipeline against one workspace."""

    def __init__(
        self,
        config: PipelineConfig,
        workspace: Workspace,
        *,
        clean_workspace: bool = False,
        scanner_factory: Callable[[Workspace], SecurityScanner] = SecurityScanner,
    ) -> None:
        self.config = config
        self.ws = workspace
        self.clean_workspace = clean_workspace
        self.stages: List[StageResult] = []
        self.artifacts: List[Artifact] = []
        self.error: Optional[str] = None
        self.cloned = False
        self.previous_result = self._read_previous_result()
        self._scanner_factory = scanner_factory
        self._started_at = _now_iso()

    @property
    def paths(self) -> BuildPaths:
        return self.ws.paths

    @property
    def build_number(self) -> str:
        return self.paths.build_number

    @property
    def result(self) -> str:
        return self.ws.state.result

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self) -> str:
        """Run every stage; returns the final build result.

        Raises whatever failed the build, after the failure notification and
        cleanup have run.
        """
        cfg = self.config
        tests = cfg.test_config
        try:
            run_stage("Initialize", self.initialize, self.stages)
            run_stage("Checkout", self.checkout, self.stages)
            run_stage("Build", self.build, self.stages)
            self._maybe("Unit Tests", (tests.get("unitTests") or {}).get("enabled"), self.unit_tests)
            self._maybe(
                "Integration Tests", (tests.get("integrationTests") or {}).get("enabled"), self.integration_tests
            )
            self._maybe("Code Quality", (tests.get("staticAnalysis") or {}).get("enabled"), self.code_quality)
            self._maybe("Security Scan", (cfg.security.get("scan") or {}).get("enabled"), self.security_scan)
            self._maybe("Generate Documentation", cfg.build_config.get("generateDocs"), self.generate_docs)
            self._maybe("Publish Artifacts", cfg.artifacts.get("publish"), self.publish_artifacts)
            self._maybe("Notify", self._should_notify(), self.notify)
        except Exception as e:
            self.ws.state.mark(FAILURE)
            self.error = str(e)
            self._notify_failure(e)
            raise
        finally:
            self._run_cleanup()
            self.write_manifest()
        return self.result

    def _maybe(self, name: str, enabled: Any, fn: Callable[[], Optional[Dict[str, Any]]]) -> None:
        if enabled:
            run_stage(name, fn, self.stages)
        else:
            skip_stage(name, self.stages)

    def _should_notify(self) -> bool:
        n = self.config.notifications
        if self.result == UNSTABLE:
            return bool(n.get("onUnstable"))
        return bool(n.get("onSuccess"))

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def initialize(self) -> Dict[str, Any]:
        cfg = self.config
        cfg.validate()
        self.ws.echo(f"Starting pipeline for {cfg.app_name} v{cfg.version}")

        try:
            self._ensure_java_home()
            self.ws.sh(["java", "-version"])
        except (PipelineError, OSError) as e:
            self.ws.warn(f"Unable to validate JAVA_HOME automatically: {e}")

        HostInfo(self.ws).print_build_info()
        self.ws.state.display_name = f"{cfg.version}-{self.build_number}"
        return {"displayName": self.ws.state.display_name}

    def _ensure_java_home(self) -> None:
        java_home = self.ws.env.get("JAVA_HOME")
        if java_home and Path(java_home, "bin", "java").exists():
            return
        java_bin = self.ws.which("java")
        if not java_bin:
            return
        home = Path(java_bin).resolve().parent.parent
        self.ws.env["JAVA_HOME"] = str(home)
        self.ws.env["PATH"] = f"{home / 'bin'}{os.pathsep}{self.ws.env.get('PATH', '')}"

    def checkout(self) -> Dict[str, Any]:
        cfg = self.config
        scm = cfg.scm
        branch = scm.get("branch") or "main"

        if scm.get("skipCheckout"):
            self.ws.echo(f"Skipping checkout; using workspace as-is: {self.ws.root}")
            if not self.ws.root.is_dir():
                self.ws.error(f"Workspace does not exist: {self.ws.root}")
            commit = core_git.get_commit(self.ws) if core_git.is_git_repo(self.ws) else ""
        else:
            res = core_git.checkout(
                self.ws,
                url=scm["url"],
                branch=branch,
                credentials_id=scm.get("credentialsId") or "",
            )
            self.cloned = res.cloned
            commit = res.commit

        commit = commit or "unknown"
        short = commit[:8]
        env = self.ws.env
        env["GIT_COMMIT"] = commit
        env["GIT_SHORT_COMMIT"] = short
        env["GIT_BRANCH"] = branch
        env["BUILD_VERSION"] = f"{cfg.version}-{self.build_number}-{short}"
        env["APP_NAME"] = str(cfg.app_name)
        env["APP_VERSION"] = str(cfg.version)

        self.ws.echo(f"Building commit: {commit} on branch: {branch}")
        self.ws.echo(f"Repository: {scm.get('url')}")
        return {"commit": commit, "branch": branch, "cloned": self.cloned}

    def build(self) -> Dict[str, Any]:
        cfg = self.config
        build_config = dict(cfg.build_config)
        build_config.update(
            {
                "parallel": build_config.get("parallel", True),
                "skipTests": not (cfg.test_config.get("unitTests") or {}).get("enabled"),
                "skipBuildStaticChecks": build_config.get("skipBuildStaticChecks", True),
                "appName": cfg.app_name,
            }
        )
        self.artifacts = BuildManager(cfg.build_tool, self.ws).build(build_config)
        return {"artifacts": [a.name for a in self.artifacts]}

    def _test_runner(self) -> TestRunner:
        gates = self.config.quality_gates
        coverage = gates.get("coverage") if gates.get("enabled") else None
        return TestRunner(self.ws, coverage_gate=coverage)

    def unit_tests(self) -> Dict[str, Any]:
        totals = self._test_runner().run_unit_tests(self.config.test_config["unitTests"])
        return {"tests": totals or {}}

    def integration_tests(self) -> Dict[str, Any]:
        totals = self._test_runner().run_integration_tests(self.config.test_config["integrationTests"])
        return {"tests": totals or {}}

    def code_quality(self) -> Dict[str, Any]:
        summary = CodeAnalyzer(self.ws).run_static_analysis(self.config.test_config["staticAnalysis"])
        return {"issues": summary or {}}

    def security_scan(self) -> Dict[str, Any]:
        scan = dict(self.config.security["scan"])
        scan["appName"] = self.config.app_name
        scanner = self._scanner_factory(self.ws)
        scanner.run_scans(scan)

        report = scanner.get_vulnerability_report()
        if scan.get("failOnVulnerability") and (report["critical"] > 0 or report["high"] > 0):
            self.ws.error("Security scan found critical/high vulnerabilities")
        return {"vulnerabilities": report}

    def generate_docs(self) -> Dict[str, Any]:
        BuildManager(self.config.build_tool, self.ws).generate_docs(
            skip_static_checks=bool(self.config.build_config.get("skipBuildStaticChecks"))
        )
        return {}

    def publish_artifacts(self) -> Dict[str, Any]:
        cfg = self.config
        env = self.ws.env
        record = BuildInfoRecord.build(
            build_number=self.build_number,
            version=env.get("BUILD_VERSION") or str(cfg.version),
            commit=env.get("GIT_COMMIT"),
            artifacts=self.artifacts,
            metadata=cfg.metadata,
        )
        self.ws.write_json(BUILD_INFO_FILE, record.to_dict())
        self.ws.archive(BUILD_INFO_FILE, allow_empty=False)

        self.ws.state.display_name = f"#{self.build_number} - {cfg.app_name} v{cfg.version}"
        self.ws.state.description = f"Commit: {env.get('GIT_SHORT_COMMIT')}"
        return {"buildInfo": record.to_dict()}

    def notify(self) -> Dict[str, Any]:
        notifier = Notifier(self.ws)
        info = self.build_info()
        if self.result == UNSTABLE:
            outcomes = notifier.send_unstable(self.config.notifications, info)
        else:
            outcomes = notifier.send_success(self.config.notifications, info)
        return {"channels": outcomes}

    # ------------------------------------------------------------------
    # Failure / cleanup / manifest
    # ------------------------------------------------------------------

    def build_info(self, error: Optional[str] = None) -> BuildInfo:
        env = self.ws.env
        return BuildInfo(
            app_name=str(self.config.app_name or "Unknown"),
            build_number=self.build_number,
            version=self.config.version,
            commit=env.get("GIT_SHORT_COMMIT"),
            branch=env.get("GIT_BRANCH"),
            build_url=env.get("BUILD_URL"),
            error=error,
            previous_result=self.previous_result,
        )

    def _notify_failure(self, exc: Exception) -> None:
        if not self.config.notifications.get("onFailure"):
            return
        try:
            Notifier(self.ws).send_failure(self.config.notifications, self.build_info(error=str(exc)))
        except Exception as notify_error:
            self.ws.warn(f"Failed to send failure notification: {notify_error}")

    def _run_cleanup(self) -> None:
        try:
            run_stage("Cleanup", self.cleanup, self.stages)
        except OSError as e:
            self.ws.warn(f"Workspace cleanup skipped: {e}")

    def cleanup(self) -> Dict[str, Any]:
        self.ws.echo("Cleaning up workspace...")
        if not (self.cloned or self.clean_workspace):
            self.ws.echo(f"Keeping workspace {self.ws.root}")
            return {"deleted": False}
        if self.ws.dry_run:
            self.ws.echo(f"(dry-run) would delete {self.ws.root}")
            return {"deleted": False}
        self.ws.delete_dir()
        return {"deleted": True}

    def _read_previous_result(self) -> Optional[str]:
        p = self.paths.last_result
        if not p.exists():
            return None
        try:
            return read_json(p).get("result")
        except (OSError, ValueError, AttributeError):
            logger.warning("Ignoring unreadable %s", p)
            return None

    def manifest(self) -> Dict[str, Any]:
        cfg = self.config
        return {
            "appName": cfg.app_name,
            "version": cfg.version,
            "buildNumber": self.build_number,
            "buildVersion": self.ws.env.get("BUILD_VERSION"),
            "result": self.result,
            "displayName": self.ws.state.display_name,
            "description": self.ws.state.description,
            "error": self.error,
            "started_at": self._started_at,
            "finished_at": _now_iso(),
            "dry_run": self.ws.dry_run,
            "stages": [s.to_dict() for s in self.stages],
            "artifacts": [a.to_dict() for a in self.artifacts],
            "archived": list(self.ws.archived),
            "reports": [
                {"name": r.name, "title": r.title, "path": str(r.path), "files": list(r.files)}
                for r in self.ws.reports
            ],
        }

    def write_manifest(self) -> None:
        manifest = self.manifest()
        try:
            write_json_atomic(self.paths.manifest, manifest)
            write_json_atomic(
                self.paths.last_result,
                {
                    "buildNumber": self.build_number,
                    "result": self.result,
                    "finished_at": manifest["finished_at"],
                },
            )
        except OSError as e:
            logger.warning("Failed to write pipeline manifest: %s", e)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def run_pipeline(req: RunRequest) -> int:
    """Run the full pipeline; returns 0 (SUCCESS), 1 (FAILURE) or 3 (UNSTABLE)."""
    try:
        req.config.validate()
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return EXIT_USAGE

    ws = open_workspace(req)
    pipeline = BuildPipeline(req.config, ws, clean_workspace=req.clean_workspace)
    try:
        result = pipeline.run()
    except (PipelineError, ValueError, OSError) as e:
        logger.error("Build #%s failed: %s", pipeline.build_number, e)
        result = FAILURE

    logger.info("Build #%s finished: %s (manifest: %s)", pipeline.build_number, result, pipeline.paths.manifest)
    return EXIT_CODES[result]


def run_info(req: RunRequest) -> int:
    ws = open_workspace(req, build_number=ADHOC_BUILD)
    if req.config.app_name:
        ws.env.setdefault("APP_NAME", str(req.config.app_name))
    if req.config.version:
        ws.env.setdefault("APP_VERSION", str(req.config.version))
    HostInfo(ws).print_build_info()
    return 0


def run_tests(treq: TestRequest) -> int:
    """Run only the unit or integration tests in an existing workspace."""
    req = treq.run
    ws = open_workspace(req)
    gates = req.config.quality_gates
    runner = TestRunner(ws, coverage_gate=gates.get("coverage") if gates.get("enabled") else None)
    tests = req.config.test_config
    try:
        if treq.kind == "integration":
            runner.run_integration_tests(dict(tests["integrationTests"], enabled=True))
        else:
            runner.run_unit_tests(dict(tests["unitTests"], enabled=True))
    except PipelineError as e:
        logger.error("%s", e)
        ws.state.mark(FAILURE)
    return EXIT_CODES[ws.state.result]


def run_notify(nreq: NotifyRequest) -> int:
    """Send one notification for the configured app (useful to test channels)."""
    req = nreq.run
    ws = open_workspace(req, build_number=ADHOC_BUILD)
    info = BuildInfo(
        app_name=str(req.config.app_name or "Unknown"),
        build_number=ws.env["BUILD_NUMBER"],
        version=req.config.version,
        commit=ws.env.get("GIT_COMMIT"),
        branch=(req.config.scm or {}).get("branch"),
        build_url=req.build_url,
        error=nreq.error,
    )
    notifier = Notifier(ws)
    senders = {SUCCESS: notifier.send_success, FAILURE: notifier.send_failure, UNSTABLE: notifier.send_unstable}
    send = senders.get(nreq.status.upper())
    if send is None:
        logger.error("Unknown notification status: %s", nreq.status)
        return EXIT_USAGE
    outcomes = send(req.config.notifications, info)
    return 1 if "failed" in outcomes.values() else 0
