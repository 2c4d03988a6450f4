import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from ci_fakes import FakeRunner, failed, make_workspace, ok
from java_ci.domain.build import Artifact, BuildInfo, BuildInfoRecord
from tools.build import cpu_count
from tools.host_info import HostInfo


class TestHostInfo(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.tmp = Path(self._td.name)

    def tearDown(self) -> None:
        self._td.cleanup()

    def test_build_info_uses_env_and_host_commands(self) -> None:
        runner = (
            FakeRunner()
            .on(["java", "-version"], ok(stderr='openjdk version "17.0.9" 2023-10-17\n'))
            .on(["mvn", "--version"], ok(stdout="Apache Maven 3.9.6 (bc0240f3)\nMaven home: /opt\n"))
        )
        ws = make_workspace(
            self.tmp,
            runner=runner,
            env={"APP_NAME": "petclinic", "APP_VERSION": "3.2.0", "BUILD_NUMBER": "7", "NODE_NAME": "agent-1"},
            files={"pom.xml": ""},
        )

        info = HostInfo(ws).print_build_info()

        self.assertEqual("petclinic", info["appName"])
        self.assertEqual("3.2.0", info["version"])
        self.assertEqual("7", info["buildNumber"])
        self.assertEqual("N/A", info["buildUrl"])
        self.assertEqual("agent-1", info["nodeName"])
        self.assertEqual("openjdk version 17.0.9 2023-10-17", info["javaVersion"])
        self.assertEqual("Maven", info["buildTool"])
        self.assertEqual("3.9.6", info["buildToolVersion"])
        self.assertEqual(cpu_count(), info["cpuCores"])

    def test_defaults_when_nothing_is_known(self) -> None:
        runner = FakeRunner().on(["java"], failed(127))
        ws = make_workspace(self.tmp, runner=runner)

        info = HostInfo(ws).get_build_info()

        self.assertEqual("1.0.0", info["version"])
        self.assertEqual("0", info["buildNumber"])
        self.assertEqual("Unknown", info["javaVersion"])
        self.assertEqual("Unknown", info["buildTool"])
        self.assertEqual("Unknown", info["buildToolVersion"])

    def test_gradle_version(self) -> None:
        runner = FakeRunner().on(["./gradlew", "--version"], ok(stdout="\n------\nGradle 8.5\n------\n"))
        ws = make_workspace(self.tmp, runner=runner, files={"build.gradle": ""})
        self.assertEqual("8.5", HostInfo(ws).get_build_tool_version())

    def test_git_lookups_prefer_env(self) -> None:
        runner = FakeRunner().on(["git", "rev-parse", "--abbrev-ref", "HEAD"], ok(stdout="feature/x\n"))
        ws = make_workspace(self.tmp, runner=runner, env={"GIT_BRANCH": "origin/main", "GIT_COMMIT": "abcdef0123456789"})
        host = HostInfo(ws)

        self.assertEqual("main", host.get_current_branch())
        self.assertTrue(host.is_branch("main"))
        self.assertEqual("abcdef01", host.get_short_git_commit_hash())
        self.assertEqual([], runner.calls)

        self.assertTrue(host.is_branch("feature/x"))


class TestBuildDomain(unittest.TestCase):
    def test_build_info_round_trips_camel_case(self) -> None:
        info = BuildInfo.from_dict({"appName": "petclinic", "buildNumber": 3, "previousResult": "FAILURE"})
        self.assertEqual("3", info.build_number)
        self.assertEqual("FAILURE", info.previous_result)
        self.assertEqual("petclinic", info.to_dict()["appName"])
        self.assertEqual("Unknown", BuildInfo.from_dict({}).app_name)

    def test_build_info_record(self) -> None:
        record = BuildInfoRecord.build(
            build_number="12",
            version="3.2.0-12-01234567",
            commit="0123456789",
            artifacts=[Artifact(name="demo.jar", path="target/demo.jar", size=3, checksum="x")],
            metadata={"team": "core"},
            now=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        )
        self.assertEqual(
            {
                "buildNumber": "12",
                "version": "3.2.0-12-01234567",
                "commit": "0123456789",
                "timestamp": "2024-01-02T03:04:05+0000",
                "artifacts": ["demo.jar"],
                "metadata": {"team": "core"},
            },
            record.to_dict(),
        )


if __name__ == "__main__":
    unittest.main()
