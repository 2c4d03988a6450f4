"""tools/security.py

Security scanning: OWASP Dependency-Check, OWASP ZAP, Snyk and Trivy.

Each scanner is an external CLI (or container). This module builds their
command lines, collects their reports, and reads the JSON output only to
count findings by severity. A scanner that is missing or fails logs a
warning; the summary report then decides whether the build is UNSTABLE.
"""

from __future__ import annotations

import textwrap
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

import requests

from .report_parsers import (
    SEVERITIES,
    add_counts,
    empty_counts,
    parse_dependency_check,
    parse_snyk,
    parse_trivy,
    parse_zap,
)
from .workspace import UNSTABLE, CommandError, PipelineError, Workspace

DEFAULT_TOOLS = ["dependency-check", "owasp-zap"]
TOOL_ALIASES = {"owasp": "owasp-zap", "zap": "owasp-zap"}

SECURITY_REPORT_FILE = "security-scan-report.json"

ZAP_IMAGE = "zaproxy/zap-stable:2.16.1"
ZAP_APP_PORT = 9090
ZAP_WAIT_SECONDS = 120
ZAP_REPORT_DIR = "reports/zap"

TRIVY_REPORT_DIR = "reports/trivy"
TRIVY_HTML_TEMPLATE = "@/usr/local/share/trivy/templates/html.tpl"


@dataclass
class ScanResult:
    tool: str
    report: str
    findings: Dict[str, int] = field(default_factory=empty_counts)
    status: str = "completed"
    extra: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out = {"tool": self.tool, "status": self.status, "report": self.report or "N/A", "findings": dict(self.findings)}
        out.update(self.extra)
        return out


def wait_for_http(
    url: str,
    *,
    timeout_seconds: int = ZAP_WAIT_SECONDS,
    interval_seconds: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """Poll *url* until it answers with a non-5xx status or the timeout passes."""
    deadline = time.time() + timeout_seconds
    while True:
        try:
            resp = requests.get(url, timeout=5)
            if resp.status_code < 500:
                return True
        except requests.RequestException:
            pass
        if time.time() >= deadline:
            return False
        sleep(interval_seconds)


class SecurityScanner:
    def __init__(self, workspace: Workspace, *, wait_fn: Callable[..., bool] = wait_for_http) -> None:
        self.ws = workspace
        self.scan_results: Dict[str, ScanResult] = {}
        self._wait_fn = wait_fn

    def run_scans(self, config: Mapping[str, Any]) -> None:
        if config.get("enabled") is False:
            self.ws.echo("Security scanning is disabled")
            return

        self.ws.echo("Running security scans...")
        runners = {
            "dependency-check": lambda: self.run_dependency_check(config.get("dependencyCheck") or {}),
            "owasp-zap": lambda: self.run_owasp_zap(config.get("owaspZap") or {}),
            "snyk": lambda: self.run_snyk(config.get("snyk") or {}),
            "trivy": lambda: self.run_trivy(dict(config.get("trivy") or {}, appName=config.get("appName"))),
        }
        for tool in config.get("tools") or DEFAULT_TOOLS:
            key = str(tool).lower()
            run = runners.get(TOOL_ALIASES.get(key, key))
            if run is None:
                self.ws.warn(f"Unknown security tool: {tool}")
                continue
            try:
                run()
            except (PipelineError, OSError) as e:
                self.ws.warn(f"Failed to run {tool}: {e}")

        try:
            self.generate_security_report()
        except (PipelineError, OSError) as e:
            raise PipelineError(f"Security scanning failed: {e}") from e
        self.ws.echo("Security scanning completed")

    def _available(self, bin_name: str, tool: str) -> bool:
        if self.ws.dry_run or self.ws.which(bin_name):
            return True
        self.ws.warn(f"{bin_name} not found on PATH, skipping {tool}")
        return False

    # ------------------------------------------------------------------
    # Scanners
    # ------------------------------------------------------------------

    def run_dependency_check(self, config: Mapping[str, Any]) -> None:
        self.ws.echo("Running OWASP Dependency-Check...")
        if not self._available("dependency-check.sh", "Dependency-Check"):
            return

        report_dir = config.get("reportDir") or "target/dependency-check"
        report_file = config.get("reportFile") or "dependency-check-report.html"
        cmd = [
            "dependency-check.sh",
            "--project", "Dependency-Check",
            "--scan", ".",
            "--out", report_dir,
            "--format", "HTML",
            "--format", "JSON",
            "--format", "XML",
            "--enableExperimental",
            "--failOnCVSS", str(config.get("failOnCVSS") or 7),
        ]
        if self.ws.file_exists("dependency-check-suppression.xml"):
            cmd += ["--suppression", "dependency-check-suppression.xml"]

        # --failOnCVSS exits non-zero when it finds something; the report still counts.
        res = self.ws.sh(cmd, check=False)
        json_report = f"{report_dir}/dependency-check-report.json"
        if not res.ok and not self.ws.file_exists(json_report):
            raise CommandError(res)

        self.ws.archive(f"{report_dir}/**/*", allow_empty=True)
        self.ws.publish_html(
            report_dir=report_dir,
            report_files=report_file,
            report_name="Dependency-Check Report",
            report_title="Dependency-Check",
        )
        self.scan_results["dependency-check"] = ScanResult(
            tool="OWASP Dependency-Check",
            report=f"{report_dir}/{report_file}",
            findings=parse_dependency_check(self.ws.path(json_report)),
            extra={"reportDir": report_dir},
        )

    def _find_app_jar(self) -> Optional[str]:
        jars = self.ws.glob("target/*.jar") or self.ws.glob("*/target/*.jar,*/*/target/*.jar")
        return jars[0] if jars else None

    def run_owasp_zap(self, config: Mapping[str, Any]) -> None:
        self.ws.echo("Running OWASP ZAP scan...")
        if not self.ws.file_exists("src/main/resources/static"):
            self.ws.warn("No web resources found (src/main/resources/static), skipping OWASP ZAP scan")
            return

        port = int(config.get("port") or ZAP_APP_PORT)
        jar = self._find_app_jar()
        if jar is None and not self.ws.dry_run:
            self.ws.error("No JAR found in target directories")

        self.ws.echo("Starting application and running OWASP ZAP scan...")
        app = self.ws.spawn(["java", "-jar", f"-Dserver.port={port}", jar or "target/app.jar"], log_file="app.log")
        try:
            if not self.ws.dry_run:
                self.ws.echo(f"Waiting for app to become available on http://localhost:{port} ...")
                if self._wait_fn(f"http://localhost:{port}/", timeout_seconds=int(config.get("waitSeconds") or ZAP_WAIT_SECONDS)):
                    self.ws.echo("App is up")
                else:
                    self.ws.warn(f"App did not answer on port {port}; scanning anyway")

            if not self.ws.dry_run:
                self.ws.path(ZAP_REPORT_DIR).mkdir(parents=True, exist_ok=True)
            target = config.get("target") or f"http://host.docker.internal:{port}/"
            res = self.ws.sh(
                [
                    "docker", "run", "--rm", "-u", "root",
                    "-v", f"{self.ws.path(ZAP_REPORT_DIR)}:/zap/wrk",
                    "--add-host=host.docker.internal:host-gateway",
                    config.get("image") or ZAP_IMAGE,
                    "zap-api-scan.py",
                    "-t", target,
                    "-f", config.get("format") or "openapi",
                    "-r", "report.html",
                    "-J", "report.json",
                    "-d", "-I",
                ],
                check=False,
            )
            if not res.ok and not self.ws.file_exists(f"{ZAP_REPORT_DIR}/report.html"):
                raise CommandError(res)

            self.ws.publish_html(
                report_dir=ZAP_REPORT_DIR,
                report_files="report.html",
                report_name="OWASP ZAP Report",
                report_title="OWASP ZAP Security Scan",
            )
            self.scan_results["owasp-zap"] = ScanResult(
                tool="OWASP ZAP",
                report=f"{ZAP_REPORT_DIR}/report.html",
                findings=parse_zap(self.ws.path(f"{ZAP_REPORT_DIR}/report.json")),
                extra={"target": f"http://localhost:{port}/"},
            )
        finally:
            self.ws.stop(app)

    def run_snyk(self, config: Mapping[str, Any]) -> None:
        self.ws.echo("Running Snyk security scan...")
        token = config.get("token") or self.ws.env.get("SNYK_TOKEN")
        if not token:
            self.ws.warn("Snyk token not provided. Skipping Snyk scan.")
            return
        if not self._available("snyk", "Snyk"):
            return
        self.ws.add_secret(token)

        report_dir = config.get("reportDir") or "target/snyk"
        report_file = config.get("reportFile") or "snyk-report.html"
        threshold = config.get("severityThreshold") or "high"
        if not self.ws.dry_run:
            self.ws.path(report_dir).mkdir(parents=True, exist_ok=True)
        json_report = f"{report_dir}/snyk-test.json"

        snyk_env = {"SNYK_TOKEN": str(token)}
        # snyk exits 1 when it finds vulnerabilities above the threshold.
        res = self.ws.sh(["snyk", "test", f"--severity-threshold={threshold}", "--json"], check=False, env=snyk_env)
        if res.exit_code > 1:
            raise CommandError(res)
        if res.stdout:
            self.ws.path(json_report).write_text(res.stdout, encoding="utf-8")

        if config.get("monitor"):
            self.ws.sh(["snyk", "monitor"], env=snyk_env)

        if self.ws.which("snyk-to-html"):
            self.ws.sh(["snyk-to-html", "-i", json_report, "-o", f"{report_dir}/{report_file}"], check=False)

        self.ws.publish_html(
            report_dir=report_dir,
            report_files=report_file,
            report_name="Snyk Report",
            report_title="Snyk Security Scan",
        )
        self.scan_results["snyk"] = ScanResult(
            tool="Snyk",
            report=f"{report_dir}/{report_file}",
            findings=parse_snyk(self.ws.path(json_report)),
            extra={"reportDir": report_dir},
        )

    def run_trivy(self, config: Mapping[str, Any]) -> None:
        self.ws.echo("Running Trivy container scan...")
        if not self.ws.file_exists("Dockerfile"):
            self.ws.warn("Dockerfile not found, skipping Trivy scan")
            return
        if not self._available("trivy", "Trivy"):
            return

        app_name = config.get("appName") or self.ws.env.get("APP_NAME") or "app"
        image = f"{app_name}:latest"
        if not self.ws.dry_run:
            self.ws.path(TRIVY_REPORT_DIR).mkdir(parents=True, exist_ok=True)
        html_report = f"{TRIVY_REPORT_DIR}/trivy-report.html"
        json_report = f"{TRIVY_REPORT_DIR}/trivy-report.json"

        self.ws.sh(
            [
                "trivy", "image",
                "--severity", config.get("severity") or "CRITICAL",
                "--format", "template",
                "--template", config.get("template") or TRIVY_HTML_TEMPLATE,
                "-o", html_report,
                image,
            ],
            check=False,
        )
        self.ws.sh(["trivy", "image", "--format", "json", "-o", json_report, image], check=False)

        self.ws.publish_html(
            report_dir=TRIVY_REPORT_DIR,
            report_files="trivy-report.html",
            report_name="Trivy Report",
            report_title="Trivy Security Scan",
        )
        self.scan_results["trivy"] = ScanResult(
            tool="Trivy",
            report=html_report,
            findings=parse_trivy(self.ws.path(json_report)),
            extra={"image": image},
        )

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def generate_security_report(self) -> Optional[Dict[str, Any]]:
        if not self.scan_results:
            self.ws.echo("No security scan results to report")
            return None

        summary = empty_counts()
        scans: List[Dict[str, Any]] = []
        for result in self.scan_results.values():
            add_counts(summary, result.findings)
            scans.append(result.to_dict())
        summary["total"] = sum(summary[s] for s in SEVERITIES)
        report = {"summary": summary, "scans": scans}

        reports = "\n".join(f"- {s['tool']}: {s['report']}" for s in scans)
        self.ws.echo(
            textwrap.dedent(
                f"""
                ====== Security Scan Summary ======
                Tools Run: {len(scans)}

                Critical Issues: {summary['critical']}
                High Issues: {summary['high']}
                Medium Issues: {summary['medium']}
                Low Issues: {summary['low']}
                Total Issues: {summary['total']}
                """
            )
            + f"Reports:\n{reports}\n=================================="
        )

        self.ws.write_json(SECURITY_REPORT_FILE, report)
        self.ws.archive(SECURITY_REPORT_FILE, allow_empty=True)

        if summary["critical"] > 0:
            self.ws.state.mark(UNSTABLE)
            self.ws.error(f"Security scan found {summary['critical']} critical vulnerabilities")
        elif summary["high"] > 0:
            self.ws.state.mark(UNSTABLE)
            self.ws.warn(f"Security scan found {summary['high']} high severity vulnerabilities")
        return report

    def get_vulnerability_report(self) -> Dict[str, int]:
        totals = empty_counts()
        for result in self.scan_results.values():
            add_counts(totals, result.findings)
        return totals
