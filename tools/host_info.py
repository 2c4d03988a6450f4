"""tools/host_info.py

Build banner and small environment lookups used across stages.

Values come from the workspace environment first (``APP_NAME``,
``BUILD_NUMBER``, ``GIT_COMMIT`` ...) and fall back to asking git or the
host. Lookups that fail degrade to ``Unknown`` instead of failing the build.
"""

from __future__ import annotations

import platform
import socket
import textwrap
from typing import Any, Dict

from . import core_git
from .build import cpu_count, java_version
from .workspace import Workspace


class HostInfo:
    def __init__(self, workspace: Workspace) -> None:
        self.ws = workspace

    def print_build_info(self) -> Dict[str, Any]:
        info = self.get_build_info()
        self.ws.echo(
            textwrap.dedent(
                f"""
                ====== Build Information ======
                Application: {info['appName']}
                Version: {info['version']}
                Build Number: {info['buildNumber']}
                Build URL: {info['buildUrl']}
                Node: {info['nodeName']}
                Workspace: {info['workspace']}
                Java Version: {info['javaVersion']}
                Build Tool: {info['buildTool']} {info['buildToolVersion']}
                OS: {info['os']}
                CPU Cores: {info['cpuCores']}
                ==============================
                """
            )
        )
        return info

    def get_build_info(self) -> Dict[str, Any]:
        env = self.ws.env
        return {
            "appName": env.get("APP_NAME") or self.ws.root.name,
            "version": env.get("APP_VERSION") or "1.0.0",
            "buildNumber": env.get("BUILD_NUMBER") or "0",
            "buildUrl": env.get("BUILD_URL") or "N/A",
            "nodeName": env.get("NODE_NAME") or socket.gethostname() or "master",
            "workspace": env.get("WORKSPACE") or str(self.ws.root),
            "javaVersion": self.get_java_version(),
            "buildTool": self.get_build_tool(),
            "buildToolVersion": self.get_build_tool_version(),
            "os": self.get_os_info(),
            "cpuCores": cpu_count(),
        }

    def get_java_version(self) -> str:
        version = java_version(self.ws)
        return "Unknown" if version == "unknown" else version.replace('"', "")

    def get_build_tool(self) -> str:
        if self.ws.file_exists("pom.xml"):
            return "Maven"
        if self.ws.file_exists("build.gradle") or self.ws.file_exists("build.gradle.kts"):
            return "Gradle"
        return "Unknown"

    def get_build_tool_version(self) -> str:
        tool = self.get_build_tool()
        if tool == "Unknown":
            return "Unknown"
        cmd = ["mvn", "--version"] if tool == "Maven" else ["./gradlew", "--version"]
        try:
            res = self.ws.sh(cmd, check=False)
        except OSError as e:
            self.ws.warn(f"Failed to get build tool version: {e}")
            return "Unknown"
        if not res.ok:
            return "Unknown"

        for line in res.stdout.splitlines():
            line = line.strip()
            # "Apache Maven 3.9.6 (...)" / "Gradle 8.5"
            if tool == "Maven" and line.startswith("Apache Maven "):
                return line.replace("Apache Maven ", "").split(" ")[0]
            if tool == "Gradle" and line.startswith("Gradle "):
                return line.split(" ")[1]
        return "Unknown"

    def get_os_info(self) -> str:
        uname = platform.uname()
        return f"{uname.system} {uname.node} {uname.release} {uname.version} {uname.machine}".strip()

    # ------------------------------------------------------------------
    # Git
    # ------------------------------------------------------------------

    def is_branch(self, name: str) -> bool:
        env = self.ws.env
        return (
            env.get("GIT_BRANCH") in (name, f"origin/{name}")
            or env.get("BRANCH_NAME") == name
            or core_git.get_branch(self.ws) == name
        )

    def get_current_branch(self) -> str:
        env = self.ws.env
        if env.get("GIT_BRANCH"):
            return env["GIT_BRANCH"].replace("origin/", "", 1)
        return env.get("BRANCH_NAME") or core_git.get_branch(self.ws)

    def get_git_commit_hash(self) -> str:
        return self.ws.env.get("GIT_COMMIT") or core_git.get_commit(self.ws)

    def get_short_git_commit_hash(self) -> str:
        return self.get_git_commit_hash()[:8]

    def get_git_repo_url(self) -> str:
        return core_git.get_remote_url(self.ws)

    def get_git_commit_message(self) -> str:
        return core_git.get_commit_message(self.ws)
