import hashlib
import tempfile
import unittest
from pathlib import Path

from ci_fakes import FakeRunner, failed, make_workspace, ok, write
from tools.build import DOCKERFILE, MAVEN_STATIC_CHECK_SKIP_FLAGS, BuildManager, cpu_count, is_packaged_jar
from tools.workspace import PipelineError


class TestBuildCommand(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.ws = make_workspace(Path(self._td.name))

    def tearDown(self) -> None:
        self._td.cleanup()

    def test_maven_command(self) -> None:
        cmd = BuildManager("maven", self.ws).build_command(
            {"parallel": True, "skipTests": True, "skipBuildStaticChecks": True, "buildArgs": ["-Pprod"]}
        )
        self.assertEqual(["mvn", "clean", "package", "-T", "1C", "-DskipTests"], cmd[:6])
        for flag in MAVEN_STATIC_CHECK_SKIP_FLAGS:
            self.assertIn(flag, cmd)
        self.assertEqual("-Pprod", cmd[-1])

    def test_gradle_command(self) -> None:
        cmd = BuildManager("Gradle", self.ws).build_command({"parallel": True, "skipTests": True})
        self.assertEqual(
            ["./gradlew", "clean", "build", "--parallel", f"--max-workers={cpu_count()}", "-x", "test"], cmd
        )

    def test_minimal_command_and_string_build_args(self) -> None:
        cmd = BuildManager("maven", self.ws).build_command({"buildArgs": "-U -B"})
        self.assertEqual(["mvn", "clean", "package", "-U", "-B"], cmd)

    def test_unsupported_tool(self) -> None:
        with self.assertRaises(ValueError) as ctx:
            BuildManager("ant", self.ws)
        self.assertIn("Unsupported build tool: ant", str(ctx.exception))

    def test_is_packaged_jar(self) -> None:
        self.assertTrue(is_packaged_jar("target/demo-1.0.jar"))
        self.assertFalse(is_packaged_jar("target/demo-1.0-sources.jar"))
        self.assertFalse(is_packaged_jar("target/demo-1.0-javadoc.jar"))


class TestBuild(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.tmp = Path(self._td.name)

    def tearDown(self) -> None:
        self._td.cleanup()

    def _package(self, argv, cwd):
        write(cwd, "target/demo-1.0-sources.jar", "src")
        write(cwd, "target/demo-1.0.jar", "binary")
        return ok()

    def test_build_archives_jars_and_builds_image(self) -> None:
        runner = FakeRunner().on(["mvn", "clean", "package"], self._package)
        ws = make_workspace(self.tmp, runner=runner, files={"pom.xml": "<project/>"})

        artifacts = BuildManager("maven", ws).build(
            {"appName": "demo", "jvmOpts": "-Xmx1g", "environment": {"CI": "true"}}
        )

        names = sorted(a.name for a in artifacts)
        self.assertEqual(["demo-1.0-sources.jar", "demo-1.0.jar"], names)
        jar = next(a for a in artifacts if a.name == "demo-1.0.jar")
        self.assertEqual(len("binary"), jar.size)
        self.assertEqual(hashlib.sha256(b"binary").hexdigest(), jar.checksum)

        # the build saw jvmOpts and the extra environment, which is then restored
        self.assertEqual("-Xmx1g", runner.envs[0]["MAVEN_OPTS"])
        self.assertEqual("true", runner.envs[0]["CI"])
        self.assertNotIn("CI", ws.env)

        self.assertIn("target/demo-1.0.jar", ws.archived)
        self.assertEqual("binary", (ws.root / "app.jar").read_text())
        self.assertEqual(DOCKERFILE, (ws.root / "Dockerfile").read_text())
        self.assertTrue(runner.ran("docker", "build", "-t", "demo:latest", "."))

    def test_build_without_docker_image(self) -> None:
        runner = FakeRunner().on(["mvn", "clean", "package"], self._package)
        ws = make_workspace(self.tmp, runner=runner)

        BuildManager("maven", ws).build({"buildDockerImage": False})

        self.assertFalse(runner.ran("docker"))
        self.assertFalse((ws.root / "Dockerfile").exists())

    def test_failed_build_is_wrapped(self) -> None:
        runner = FakeRunner().on(["mvn", "clean", "package"], failed(1))
        ws = make_workspace(self.tmp, runner=runner)

        with self.assertRaises(PipelineError) as ctx:
            BuildManager("maven", ws).build({})
        self.assertTrue(str(ctx.exception).startswith("Build failed: "))

    def test_missing_jar_fails_docker_step(self) -> None:
        ws = make_workspace(self.tmp)
        with self.assertRaises(PipelineError) as ctx:
            BuildManager("gradle", ws).build({"appName": "demo"})
        self.assertIn("No JAR found", str(ctx.exception))

    def test_dry_run_only_prints_docker_command(self) -> None:
        runner = FakeRunner()
        ws = make_workspace(self.tmp, runner=runner, dry_run=True)

        artifacts = BuildManager("maven", ws).build({"appName": "demo"})

        self.assertEqual([], artifacts)
        self.assertEqual([], runner.calls)
        self.assertFalse((ws.root / "Dockerfile").exists())


class TestDocsAndInfo(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.tmp = Path(self._td.name)

    def tearDown(self) -> None:
        self._td.cleanup()

    def test_generate_docs_publishes_javadoc(self) -> None:
        def javadoc(argv, cwd):
            write(cwd, "target/site/apidocs/index.html", "<html/>")

        runner = FakeRunner().on(["mvn", "javadoc:javadoc"], javadoc)
        ws = make_workspace(self.tmp, runner=runner)

        BuildManager("maven", ws).generate_docs()

        self.assertEqual(["JavaDoc"], [r.name for r in ws.reports])
        self.assertEqual("API Documentation", ws.reports[0].title)

    def test_build_info_version_checks(self) -> None:
        runner = (
            FakeRunner()
            .on(["mvn", "--version"], ok(stdout="Apache Maven 3.9.6 (abc)\nMaven home: /opt/maven\n"))
            .on(["java", "-version"], ok(stderr='openjdk version "17.0.9" 2023-10-17\nOpenJDK Runtime\n'))
        )
        ws = make_workspace(self.tmp, runner=runner)

        info = BuildManager("maven", ws).get_build_info()

        self.assertEqual("maven", info["tool"])
        self.assertEqual("Apache Maven 3.9.6 (abc)", info["version"])
        self.assertEqual('openjdk version "17.0.9" 2023-10-17', info["javaVersion"])
        self.assertEqual(cpu_count(), info["systemInfo"]["cpuCores"])

    def test_failed_version_checks_report_unknown(self) -> None:
        runner = FakeRunner().on(["./gradlew"], failed(127)).on(["java"], failed(1))
        ws = make_workspace(self.tmp, runner=runner)

        manager = BuildManager("gradle", ws)
        self.assertEqual("unknown", manager.get_build_tool_version())
        self.assertEqual("unknown", manager.get_java_version())


if __name__ == "__main__":
    unittest.main()
