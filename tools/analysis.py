"""tools/analysis.py

Static analysis: Checkstyle, PMD (+ CPD) and SpotBugs, followed by quality
gates.

Each tool runs through the project's build tool, its XML is archived, and
whichever HTML reports exist are published. Issue counts come from the XML
reports. A tool that fails only logs a warning; a breached quality gate fails
the build.
"""

from __future__ import annotations

import textwrap
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .report_parsers import (
    add_counts,
    empty_counts,
    parse_checkstyle_files,
    parse_pmd_files,
    parse_spotbugs_files,
)
from .workspace import PipelineError, Workspace

DEFAULT_TOOLS = ["checkstyle", "pmd", "findbugs"]
DEFAULT_QUALITY_GATES = {"maxCritical": 0, "maxHigh": 5, "maxTotal": 20}

SPOTBUGS_MAVEN_PLUGIN = "com.github.spotbugs:spotbugs-maven-plugin:4.8.3.1:spotbugs"

# (report_dir, report_file, report_name, title)
HtmlReport = Tuple[str, str, str, str]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    maven_cmd: List[str]
    gradle_cmd: List[str]
    maven_xml: str
    gradle_xml: str
    maven_html: List[HtmlReport] = field(default_factory=list)
    gradle_html: List[HtmlReport] = field(default_factory=list)


TOOLS: Dict[str, ToolSpec] = {
    "checkstyle": ToolSpec(
        name="checkstyle",
        maven_cmd=["mvn", "checkstyle:checkstyle"],
        gradle_cmd=["./gradlew", "checkstyleMain", "checkstyleTest", "--no-daemon"],
        maven_xml="**/target/checkstyle-result.xml",
        gradle_xml="**/build/reports/checkstyle/*.xml",
        maven_html=[("target/site", "checkstyle.html", "Checkstyle Report", "Checkstyle")],
        gradle_html=[("build/reports/checkstyle", "main.html", "Checkstyle Report", "Checkstyle")],
    ),
    "pmd": ToolSpec(
        name="pmd",
        maven_cmd=["mvn", "pmd:pmd", "pmd:cpd"],
        gradle_cmd=["./gradlew", "pmdMain", "pmdTest", "cpdCheck", "--no-daemon"],
        maven_xml="**/target/pmd.xml,**/target/cpd.xml",
        gradle_xml="**/build/reports/pmd/*.xml,**/build/reports/cpd/*.xml",
        maven_html=[
            ("target/site", "pmd.html", "PMD Report", "PMD"),
            ("target/site", "cpd.html", "CPD Report", "CPD"),
        ],
        gradle_html=[
            ("build/reports/pmd", "main.html", "PMD Report", "PMD"),
            ("build/reports/cpd", "index.html", "CPD Report", "CPD"),
        ],
    ),
    "spotbugs": ToolSpec(
        name="spotbugs",
        maven_cmd=["mvn", SPOTBUGS_MAVEN_PLUGIN, "-Dspotbugs.failOnError=false"],
        gradle_cmd=["./gradlew", "spotbugsMain", "spotbugsTest", "--no-daemon"],
        maven_xml="**/target/spotbugsXml.xml",
        gradle_xml="**/build/reports/spotbugs/*.xml",
        maven_html=[("target/site", "spotbugs.html", "SpotBugs Report", "SpotBugs")],
        gradle_html=[("build/reports/spotbugs", "main.html", "SpotBugs Report", "SpotBugs")],
    ),
}

TOOL_ALIASES = {"findbugs": "spotbugs"}

_PARSERS: Dict[str, Callable] = {
    "checkstyle": parse_checkstyle_files,
    "pmd": parse_pmd_files,
    "spotbugs": parse_spotbugs_files,
}


@dataclass
class AnalysisResult:
    tool: str
    report_files: List[str]
    counts: Dict[str, int]
    status: str = "completed"


class CodeAnalyzer:
    def __init__(self, workspace: Workspace) -> None:
        self.ws = workspace
        self.results: List[AnalysisResult] = []

    def run_static_analysis(self, config: Mapping[str, Any]) -> Optional[Dict[str, int]]:
        if config.get("enabled") is False:
            self.ws.echo("Static code analysis is disabled")
            return None

        self.ws.echo("Running static code analysis...")
        self.results = []
        for tool in config.get("tools") or DEFAULT_TOOLS:
            key = TOOL_ALIASES.get(str(tool).lower(), str(tool).lower())
            spec = TOOLS.get(key)
            if spec is None:
                self.ws.warn(f"Unknown analysis tool: {tool}")
                continue
            try:
                self.results.append(self.run_tool(spec))
            except (PipelineError, OSError) as e:
                self.ws.warn(f"Failed to run {tool}: {e}")

        summary = self.process_analysis_results(config.get("qualityGates"))
        self.ws.echo("Static code analysis completed")
        return summary

    def run_tool(self, spec: ToolSpec) -> AnalysisResult:
        self.ws.echo(f"Running {spec.name} analysis...")
        if self.ws.file_exists("pom.xml"):
            cmd, xml, html = spec.maven_cmd, spec.maven_xml, spec.maven_html
        elif self.ws.file_exists("build.gradle") or self.ws.file_exists("build.gradle.kts"):
            cmd, xml, html = spec.gradle_cmd, spec.gradle_xml, spec.gradle_html
        else:
            raise PipelineError("Could not determine build tool (Maven/Gradle)")

        self.ws.sh(cmd)
        self.ws.archive(xml, allow_empty=True)
        for report_dir, report_file, name, title in html:
            if self.ws.file_exists(f"{report_dir}/{report_file}"):
                self.ws.publish_html(
                    report_dir=report_dir,
                    report_files=report_file,
                    report_name=name,
                    report_title=title,
                )

        files = self.ws.glob(xml)
        counts = _PARSERS[spec.name](self.ws.path(f) for f in files)
        return AnalysisResult(tool=spec.name, report_files=files, counts=counts)

    def process_analysis_results(self, quality_gates: Optional[Mapping[str, Any]] = None) -> Dict[str, int]:
        """Sum issue counts and enforce the quality gates."""
        gates = dict(DEFAULT_QUALITY_GATES)
        gates.update(quality_gates or {})
        for key in DEFAULT_QUALITY_GATES:
            try:
                gates[key] = int(gates[key])
            except (TypeError, ValueError):
                raise PipelineError(f"Invalid quality gate {key}: {gates[key]!r}") from None

        summary = empty_counts()
        for result in self.results:
            add_counts(summary, result.counts)
        summary["total"] = sum(summary[s] for s in ("critical", "high", "medium", "low"))

        failures = []
        if summary["critical"] > gates["maxCritical"]:
            failures.append(
                f"Critical issues ({summary['critical']}) exceed maximum allowed ({gates['maxCritical']})"
            )
        if summary["high"] > gates["maxHigh"]:
            failures.append(f"High issues ({summary['high']}) exceed maximum allowed ({gates['maxHigh']})")
        if summary["total"] > gates["maxTotal"]:
            failures.append(f"Total issues ({summary['total']}) exceed maximum allowed ({gates['maxTotal']})")

        self.ws.echo(
            textwrap.dedent(
                f"""
                ====== Static Analysis Results ======
                Critical Issues: {summary['critical']} (max: {gates['maxCritical']})
                High Issues: {summary['high']} (max: {gates['maxHigh']})
                Medium Issues: {summary['medium']}
                Low Issues: {summary['low']}
                Total Issues: {summary['total']} (max: {gates['maxTotal']})
                ====================================
                """
            )
        )

        if failures:
            raise PipelineError(f"Quality gate failed: {'; '.join(failures)}")
        return summary
