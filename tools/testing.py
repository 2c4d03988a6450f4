"""tools/testing.py

Unit and integration test runner.

Tests run through the project's own build tool. Afterwards the JUnit XML is
archived and summarised and coverage reports are generated and published.
This happens whether the tests passed or not, so a red build still carries
its reports. Result processing never fails the build. A coverage gate, when
configured, can only mark it UNSTABLE.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence

from .report_parsers import parse_jacoco_coverage, parse_junit_files
from .workspace import UNSTABLE, PipelineError, Workspace

UNIT_RESULT_PATTERNS = ["**/target/surefire-reports/*.xml", "**/build/test-results/**/*.xml"]
INTEGRATION_RESULT_PATTERNS = ["**/surefire-reports/*.xml", "**/failsafe-reports/*.xml"]

JACOCO_EXEC_FILES = ["target/jacoco.exec", "build/jacoco/test.exec"]
JACOCO_XML_FILES = ["target/site/jacoco/jacoco.xml", "build/reports/jacoco/test/jacocoTestReport.xml"]
COBERTURA_FILES = ["target/coverage.xml", "build/reports/cobertura/coverage.xml"]

DEFAULT_THREADS = 4


class TestRunner:
    __test__ = False  # not a pytest class

    def __init__(self, workspace: Workspace, *, coverage_gate: Optional[Mapping[str, Any]] = None) -> None:
        self.ws = workspace
        self.coverage_gate = dict(coverage_gate or {})

    def detect_build_tool(self) -> str:
        if self.ws.file_exists("pom.xml"):
            return "maven"
        if self.ws.file_exists("build.gradle") or self.ws.file_exists("build.gradle.kts"):
            return "gradle"
        raise PipelineError("Could not determine build tool (Maven/Gradle)")

    # ------------------------------------------------------------------
    # Unit tests
    # ------------------------------------------------------------------

    def unit_test_command(self, tool: str, config: Mapping[str, Any]) -> List[str]:
        includes = list(config.get("includes") or [])
        threads = config.get("forkCount") or DEFAULT_THREADS
        if tool == "maven":
            cmd = ["mvn", "test"]
            if includes:
                cmd.append(f"-Dtest={','.join(includes)}")
            if config.get("parallel"):
                cmd += ["-Dparallel=methods", f"-DthreadCount={threads}"]
        else:
            cmd = ["./gradlew", "test"]
            for inc in includes:
                cmd += ["--tests", inc]
            if config.get("parallel"):
                cmd += ["--parallel", f"--max-workers={threads}"]
        return cmd

    def run_unit_tests(self, config: Mapping[str, Any]) -> Optional[Dict[str, int]]:
        if config.get("enabled") is False:
            self.ws.echo("Unit tests are disabled")
            return None

        self.ws.echo("Running unit tests...")
        try:
            tool = self.detect_build_tool()
            self.ws.sh(self.unit_test_command(tool, config))
        except PipelineError as e:
            self.process_test_results()
            raise PipelineError(f"Unit tests failed: {e}") from e

        totals = self.process_test_results()
        self.ws.echo("Unit tests completed successfully")
        return totals

    # ------------------------------------------------------------------
    # Integration tests
    # ------------------------------------------------------------------

    def integration_test_command(self, tool: str, config: Mapping[str, Any]) -> List[str]:
        includes = list(config.get("includes") or [])
        if tool == "maven":
            cmd = ["mvn", "verify", "-Pintegration-tests", "-DskipUnitTests"]
            if includes:
                cmd.append(f"-Dit.test={','.join(includes)}")
        else:
            cmd = ["./gradlew", "integrationTest", "--tests", "**/*IT.*"]
            for inc in includes:
                cmd += ["--tests", inc]
        for key, value in (config.get("systemProperties") or {}).items():
            cmd.append(f"-D{key}={value}")
        return cmd

    def run_integration_tests(self, config: Mapping[str, Any]) -> Optional[Dict[str, int]]:
        if config.get("enabled") is False:
            self.ws.echo("Integration tests are disabled")
            return None

        self.ws.echo("Running integration tests...")
        test_env = dict(config.get("environment") or {})
        test_env["TEST_ENV"] = "integration"
        try:
            tool = self.detect_build_tool()
            with self.ws.with_env(test_env):
                self.ws.sh(self.integration_test_command(tool, config))
        except PipelineError as e:
            self.process_test_results(INTEGRATION_RESULT_PATTERNS)
            raise PipelineError(f"Integration tests failed: {e}") from e

        totals = self.process_test_results(INTEGRATION_RESULT_PATTERNS)
        self.ws.echo("Integration tests completed successfully")
        return totals

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def process_test_results(self, patterns: Optional[Sequence[str]] = None) -> Optional[Dict[str, int]]:
        """Archive and summarise JUnit XML, then handle coverage.

        Failing tests never mark the build here; the test command's exit code
        already decided that.
        """
        try:
            result_patterns = list(patterns or UNIT_RESULT_PATTERNS)
            files = self.ws.glob(result_patterns)
            self.ws.archive(result_patterns, allow_empty=True)
            totals = parse_junit_files(self.ws.path(f) for f in files)
            self.ws.echo(
                f"Test results: {totals['tests']} tests, {totals['failures']} failures, "
                f"{totals['errors']} errors, {totals['skipped']} skipped"
            )
            self.generate_coverage_report()
            return totals
        except (PipelineError, OSError) as e:
            self.ws.warn(f"Failed to process test results: {e}")
            return None

    def generate_coverage_report(self) -> None:
        try:
            if any(self.ws.file_exists(f) for f in JACOCO_EXEC_FILES):
                self.ws.echo("Generating JaCoCo coverage report...")
                if self.ws.file_exists("pom.xml"):
                    self.ws.sh(["mvn", "jacoco:report"])
                    report_dir = "target/site/jacoco"
                else:
                    self.ws.sh(["./gradlew", "jacocoTestReport"])
                    report_dir = "build/reports/jacoco/test/html"
                self.ws.publish_html(
                    report_dir=report_dir,
                    report_files="index.html",
                    report_name="JaCoCo Report",
                    report_title="Code Coverage",
                )

            cobertura = next((f for f in COBERTURA_FILES if self.ws.file_exists(f)), None)
            if cobertura:
                self.ws.echo("Publishing Cobertura coverage report...")
                self.ws.archive(cobertura)
        except (PipelineError, OSError) as e:
            self.ws.warn(f"Failed to generate coverage report: {e}")

        self.check_coverage_gate()

    def check_coverage_gate(self) -> Optional[Dict[str, float]]:
        """Mark the build UNSTABLE when JaCoCo coverage is below the minimums."""
        min_line = self.coverage_gate.get("minLineCoverage")
        min_branch = self.coverage_gate.get("minBranchCoverage")
        if min_line is None and min_branch is None:
            return None

        xml = next((f for f in JACOCO_XML_FILES if self.ws.file_exists(f)), None)
        if xml is None:
            return None
        coverage = parse_jacoco_coverage(self.ws.path(xml))
        if coverage is None:
            self.ws.warn(f"Could not read coverage from {xml}")
            return None

        self.ws.echo(f"Coverage: line {coverage['line']}%, branch {coverage['branch']}%")
        breaches = []
        if min_line is not None and coverage["line"] < float(min_line):
            breaches.append(f"line coverage {coverage['line']}% < {float(min_line)}%")
        if min_branch is not None and coverage["branch"] < float(min_branch):
            breaches.append(f"branch coverage {coverage['branch']}% < {float(min_branch)}%")
        if breaches:
            self.ws.warn(f"Coverage gate not met: {'; '.join(breaches)}")
            self.ws.state.mark(UNSTABLE)
        return coverage
