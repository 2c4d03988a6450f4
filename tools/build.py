"""tools/build.py

Maven / Gradle build wrapper.

The build stage compiles and packages the application, archives the JARs,
bakes a throwaway Docker image (Trivy scans it later) and reports the
artifacts it produced. Build semantics belong to Maven/Gradle; this module
only assembles their command lines.
"""

from __future__ import annotations

import hashlib
import os
import platform
import shutil
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence

from java_ci.domain.build import Artifact
from java_ci.io.fs import write_text_atomic

from .core_cmd import CmdResult
from .workspace import PipelineError, Workspace

SUPPORTED_BUILD_TOOLS = ("maven", "gradle")

# Static checks run in their own stage; these keep them out of the build.
MAVEN_STATIC_CHECK_SKIP_FLAGS = [
    "-Dcheckstyle.skip=true",
    "-Dpmd.skip=true",
    "-Dspotbugs.skip=true",
    "-Dcheckstyle.failOnViolation=false",
    "-Dpmd.failOnViolation=false",
    "-Dspotbugs.failOnError=false",
    "-Dnohttp.skip=true",
    "-Dnohttp.check.skip=true",
    "-DskipChecks",
    "-Dnohttp=false",
]

GRADLE_STATIC_CHECK_EXCLUDES = [
    "-x", "checkstyleMain", "-x", "checkstyleTest",
    "-x", "pmdMain", "-x", "pmdTest",
    "-x", "spotbugsMain", "-x", "spotbugsTest",
]

ARTIFACT_PATTERNS = {
    "maven": "**/target/*.jar",
    "gradle": "**/build/libs/*.jar",
}

DOCKERFILE = """FROM openjdk:17-ea-oraclelinux7
WORKDIR /
COPY app.jar /app.jar
EXPOSE 8080
ENTRYPOINT java -jar /app.jar
"""


def cpu_count() -> int:
    return os.cpu_count() or 1


def _as_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        return value.split()
    return [str(v) for v in value]


def is_packaged_jar(rel: str) -> bool:
    """True for the runnable JAR, not its sources/javadoc companions."""
    name = rel.rsplit("/", 1)[-1]
    return "sources" not in name and "javadoc" not in name


class BuildManager:
    def __init__(self, build_tool: str, workspace: Workspace) -> None:
        tool = (build_tool or "").lower()
        if tool not in SUPPORTED_BUILD_TOOLS:
            raise ValueError(f"Unsupported build tool: {build_tool}")
        self.build_tool = tool
        self.ws = workspace

    @property
    def artifact_pattern(self) -> str:
        return ARTIFACT_PATTERNS[self.build_tool]

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    def build_command(self, config: Mapping[str, Any]) -> List[str]:
        if self.build_tool == "maven":
            cmd = ["mvn", "clean", "package"]
            if config.get("parallel"):
                cmd += ["-T", "1C"]
            if config.get("skipTests"):
                cmd.append("-DskipTests")
            if config.get("skipBuildStaticChecks"):
                cmd += MAVEN_STATIC_CHECK_SKIP_FLAGS
        else:
            cmd = ["./gradlew", "clean", "build"]
            if config.get("parallel"):
                cmd += ["--parallel", f"--max-workers={cpu_count()}"]
            if config.get("skipTests"):
                cmd += ["-x", "test"]
            if config.get("skipBuildStaticChecks"):
                cmd += GRADLE_STATIC_CHECK_EXCLUDES
        return cmd + _as_list(config.get("buildArgs"))

    def build(self, config: Mapping[str, Any]) -> List[Artifact]:
        """Run the build and return the artifacts it produced.

        Any failure (build command, Docker image) fails the pipeline with
        ``Build failed: ...``.
        """
        self.ws.echo(f"Building with {self.build_tool}...")
        try:
            with self.ws.with_env(config.get("environment") or {}):
                jvm_opts = config.get("jvmOpts")
                env = {"MAVEN_OPTS" if self.build_tool == "maven" else "JAVA_OPTS": jvm_opts} if jvm_opts else None
                self.ws.sh(self.build_command(config), env=env)
                self.ws.archive(self.artifact_pattern, allow_empty=True)
                if config.get("buildDockerImage", True):
                    self.build_docker_image(config)
            artifacts = self.find_artifacts(self.artifact_pattern)
        except PipelineError as e:
            raise PipelineError(f"Build failed: {e}") from e
        except OSError as e:
            raise PipelineError(f"Build failed: {e}") from e

        self.ws.echo("Build completed successfully")
        return artifacts

    def build_docker_image(self, config: Mapping[str, Any]) -> None:
        """Package the first built JAR into ``<appName>:latest``."""
        app_name = config.get("appName") or self.ws.env.get("APP_NAME") or "app"
        self.ws.echo(f"Building Docker image for {app_name}...")

        if self.ws.dry_run:
            self.ws.sh(["docker", "build", "-t", f"{app_name}:latest", "."])
            return

        jars = [j for j in self.ws.glob(self.artifact_pattern) if is_packaged_jar(j)]
        if not jars:
            self.ws.error(f"No JAR found matching {self.artifact_pattern}")
        jar = jars[0]
        self.ws.echo(f"Using JAR: {jar}")

        shutil.copyfile(self.ws.path(jar), self.ws.path("app.jar"))
        write_text_atomic(self.ws.path("Dockerfile"), DOCKERFILE)
        self.ws.sh(["docker", "build", "-t", f"{app_name}:latest", "."])

    def find_artifacts(self, pattern: str) -> List[Artifact]:
        """Describe files matching *pattern*; per-file failures are warnings."""
        self.ws.echo(f"Looking for artifacts matching: {pattern}")
        artifacts: List[Artifact] = []
        for rel in self.ws.glob(pattern):
            p = self.ws.path(rel)
            size = None
            checksum = None
            try:
                size = p.stat().st_size
            except OSError as e:
                self.ws.warn(f"Failed to get size for {rel}: {e}")
            try:
                checksum = sha256_file(p)
            except OSError as e:
                self.ws.warn(f"Failed to calculate checksum for {rel}: {e}")
            artifacts.append(Artifact(name=p.name, path=rel, size=size, checksum=checksum))
            self.ws.echo(f"Found artifact: {rel} ({size if size is not None else 'unknown'} bytes)")

        if not artifacts:
            self.ws.warn(f"No artifacts found matching pattern: {pattern}")
        return artifacts

    # ------------------------------------------------------------------
    # Documentation
    # ------------------------------------------------------------------

    def generate_docs(self, *, skip_static_checks: bool = True) -> None:
        if self.build_tool == "maven":
            cmd = ["mvn", "javadoc:javadoc"]
            if skip_static_checks:
                cmd += MAVEN_STATIC_CHECK_SKIP_FLAGS
            report_dir = "target/site/apidocs"
        else:
            cmd = ["./gradlew", "javadoc", "--no-daemon"]
            report_dir = "build/docs/javadoc"

        self.ws.sh(cmd)
        self.ws.publish_html(
            report_dir=report_dir,
            report_files="index.html",
            report_name="JavaDoc",
            report_title="API Documentation",
        )

    # ------------------------------------------------------------------
    # Build facts
    # ------------------------------------------------------------------

    def get_build_info(self) -> Dict[str, Any]:
        return {
            "tool": self.build_tool,
            "version": self.get_build_tool_version(),
            "javaVersion": self.get_java_version(),
            "systemInfo": self.get_system_info(),
        }

    def _version_check(self, cmd: Sequence[str], what: str) -> CmdResult:
        res = self.ws.sh(cmd, check=False)
        if res.exit_code != 0:
            self.ws.warn(f"Failed to get {what}: exit code {res.exit_code}")
        return res

    def get_build_tool_version(self) -> str:
        cmd = ["mvn", "--version"] if self.build_tool == "maven" else ["./gradlew", "--version"]
        try:
            res = self._version_check(cmd, f"{self.build_tool} version")
        except OSError as e:
            self.ws.warn(f"Failed to get {self.build_tool} version: {e}")
            return "unknown"
        lines = [ln for ln in res.stdout.strip().splitlines() if ln.strip()]
        return lines[0].strip() if res.ok and lines else "unknown"

    def get_java_version(self) -> str:
        return java_version(self.ws)

    def get_system_info(self) -> Dict[str, Any]:
        return {
            "os": platform.platform(),
            "cpuCores": cpu_count(),
            "memory": _memory_total(),
            "diskSpace": _disk_space(self.ws.root),
        }


def java_version(ws: Workspace) -> str:
    """First line of ``java -version`` (printed on stderr), or ``unknown``."""
    try:
        res = ws.sh(["java", "-version"], check=False)
    except OSError as e:
        ws.warn(f"Failed to get Java version: {e}")
        return "unknown"
    text = (res.stderr or res.stdout or "").strip()
    if not res.ok or not text:
        return "unknown"
    return text.splitlines()[0].strip()


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def _memory_total() -> str:
    try:
        pages = os.sysconf("SC_PHYS_PAGES")
        page_size = os.sysconf("SC_PAGE_SIZE")
    except (AttributeError, ValueError, OSError):
        return "unknown"
    return f"{pages * page_size / 1024 ** 3:.1f}G"


def _disk_space(path: Path) -> str:
    target = path if path.exists() else Path.cwd()
    try:
        usage = shutil.disk_usage(target)
    except OSError:
        return "unknown"
    return f"{usage.free / 1024 ** 3:.1f}G free of {usage.total / 1024 ** 3:.1f}G"
