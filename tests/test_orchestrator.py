import tempfile
import unittest
from pathlib import Path
from unittest import mock

from ci_fakes import FakeRunner, failed, jacoco_xml, ok, write
from java_ci.io.fs import read_json
from pipeline.config import PipelineConfig
from pipeline.orchestrator import (
    ADHOC_BUILD,
    BuildPipeline,
    NotifyRequest,
    RunRequest,
    TestRequest,
    open_workspace,
    run_info,
    run_notify,
    run_pipeline,
    run_tests,
)
from pipeline.pipeline import JavaCIPipeline
from tools.workspace import FAILURE, UNSTABLE, PipelineError

COMMIT = "0123456789abcdef0123456789abcdef01234567"

STAGES = [
    "Initialize",
    "Checkout",
    "Build",
    "Unit Tests",
    "Integration Tests",
    "Code Quality",
    "Security Scan",
    "Generate Documentation",
    "Publish Artifacts",
    "Notify",
    "Cleanup",
]


def _package(argv, cwd):
    write(cwd, "target/demo-1.0.jar", "binary")


class PipelineTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._td = tempfile.TemporaryDirectory()
        self.tmp = Path(self._td.name)
        self.app = self.tmp / "app"
        write(self.app, "pom.xml", "<project/>")
        self.out = self.tmp / "out"
        self.bin = self.tmp / "empty-bin"
        self.bin.mkdir()
        self.runner = (
            FakeRunner()
            .on(["git", "rev-parse", "HEAD"], ok(stdout=COMMIT + "\n"))
            .on(["mvn", "clean", "package"], _package)
        )

    def tearDown(self) -> None:
        self._td.cleanup()

    def config(self, **extra) -> PipelineConfig:
        raw = {
            "appName": "demo",
            "version": "1.0.0",
            "scm": {"url": "https://github.com/acme/demo.git", "skipCheckout": True},
        }
        raw.update(extra)
        return PipelineConfig(raw)

    def request(self, config=None, **kw) -> RunRequest:
        params = dict(
            config=config or self.config(),
            workspace=self.app,
            output_root=self.out,
            build_number="7",
            env={"PATH": str(self.bin)},
            runner=self.runner,
            quiet=True,
        )
        params.update(kw)
        return RunRequest(**params)

    def manifest(self, build="7"):
        return read_json(self.out / "demo" / build / "pipeline-manifest.json")


class TestRunPipeline(PipelineTestCase):
    def test_successful_run(self) -> None:
        write(self.app, ".git/HEAD", "ref: refs/heads/main\n")

        code = run_pipeline(self.request())

        self.assertEqual(0, code)
        manifest = self.manifest()
        self.assertEqual("SUCCESS", manifest["result"])
        self.assertEqual(STAGES, [s["name"] for s in manifest["stages"]])
        statuses = {s["name"]: s["status"] for s in manifest["stages"]}
        self.assertEqual("skipped", statuses["Integration Tests"])
        self.assertEqual("skipped", statuses["Security Scan"])
        self.assertEqual("skipped", statuses["Generate Documentation"])
        self.assertEqual("ok", statuses["Publish Artifacts"])

        self.assertEqual("#7 - demo v1.0.0", manifest["displayName"])
        self.assertEqual("Commit: 01234567", manifest["description"])
        self.assertEqual("1.0.0-7-01234567", manifest["buildVersion"])
        self.assertEqual(["demo-1.0.jar"], [a["name"] for a in manifest["artifacts"]])

        build_info = read_json(self.out / "demo" / "7" / "artifacts" / "build-info.json")
        self.assertEqual("7", build_info["buildNumber"])
        self.assertEqual(COMMIT, build_info["commit"])
        self.assertEqual(["demo-1.0.jar"], build_info["artifacts"])

        self.assertEqual("SUCCESS", read_json(self.out / "demo" / "last-result.json")["result"])
        # the workspace was not cloned by this run, so it stays
        self.assertTrue(self.app.exists())

        build_cmd = next(c for c in self.runner.calls if c[:3] == ["mvn", "clean", "package"])
        self.assertNotIn("-DskipTests", build_cmd)

    def test_build_failure_fails_pipeline_and_still_cleans_up(self) -> None:
        self.runner.on(["mvn", "clean", "package"], failed(1))

        code = run_pipeline(self.request())

        self.assertEqual(1, code)
        manifest = self.manifest()
        self.assertEqual("FAILURE", manifest["result"])
        self.assertEqual(["Initialize", "Checkout", "Build", "Cleanup"], [s["name"] for s in manifest["stages"]])
        build = manifest["stages"][2]
        self.assertEqual("failed", build["status"])
        self.assertTrue(build["error"].startswith("Build failed: "))
        self.assertTrue(manifest["error"].startswith("Build failed: "))
        self.assertEqual("FAILURE", read_json(self.out / "demo" / "last-result.json")["result"])

    def test_failed_stage_sends_failure_notification(self) -> None:
        self.runner.on(["mvn", "clean", "package"], failed(1))

        with self.assertLogs("tools.workspace", level="INFO") as logs:
            self.assertEqual(1, run_pipeline(self.request()))

        self.assertIn("[FAILURE] Build #7 failed for demo with error: Build failed:", "\n".join(logs.output))

    def test_failure_notification_can_be_turned_off(self) -> None:
        self.runner.on(["mvn", "clean", "package"], failed(1))
        cfg = self.config(notifications={"onFailure": False})

        with self.assertLogs("tools.workspace", level="INFO") as logs:
            self.assertEqual(1, run_pipeline(self.request(cfg)))

        self.assertNotIn("[FAILURE]", "\n".join(logs.output))

    def test_broken_failure_notifier_keeps_original_error(self) -> None:
        self.runner.on(["mvn", "clean", "package"], failed(1))

        with mock.patch(
            "pipeline.orchestrator.Notifier.send_failure", side_effect=RuntimeError("smtp down")
        ), self.assertLogs("tools.workspace", level="WARNING") as logs:
            code = run_pipeline(self.request())

        self.assertEqual(1, code)
        self.assertIn("Failed to send failure notification: smtp down", "\n".join(logs.output))
        manifest = self.manifest()
        self.assertEqual("FAILURE", manifest["result"])
        self.assertTrue(manifest["error"].startswith("Build failed: "))

    def test_success_notification_can_be_turned_off(self) -> None:
        cfg = self.config(notifications={"onSuccess": False})

        self.assertEqual(0, run_pipeline(self.request(cfg)))

        statuses = {s["name"]: s["status"] for s in self.manifest()["stages"]}
        self.assertEqual("skipped", statuses["Notify"])

    def test_low_coverage_makes_build_unstable(self) -> None:
        def tests_with_coverage(argv, cwd):
            write(cwd, "target/site/jacoco/jacoco.xml", jacoco_xml(10, 90))

        self.runner.on(["mvn", "test"], tests_with_coverage)

        code = run_pipeline(self.request())

        self.assertEqual(3, code)
        manifest = self.manifest()
        self.assertEqual(UNSTABLE, manifest["result"])
        notify = next(s for s in manifest["stages"] if s["name"] == "Notify")
        self.assertEqual({"channels": {"console": "sent"}}, notify["summary"])

    def test_skip_tests_flag_reaches_build(self) -> None:
        cfg = self.config(testConfig={"unitTests": {"enabled": False}, "staticAnalysis": {"enabled": False}})

        self.assertEqual(0, run_pipeline(self.request(cfg)))

        build_cmd = next(c for c in self.runner.calls if c[:3] == ["mvn", "clean", "package"])
        self.assertIn("-DskipTests", build_cmd)
        self.assertFalse(self.runner.ran("mvn", "test"))

    def test_invalid_config_is_a_usage_error(self) -> None:
        cfg = PipelineConfig({"appName": "demo", "scm": {"url": "x"}})
        self.assertEqual(2, run_pipeline(self.request(cfg)))
        self.assertEqual([], self.runner.calls)

    def test_clone_is_removed_at_the_end(self) -> None:
        workspace = self.tmp / "clone"

        def clone(argv, cwd):
            write(cwd, "pom.xml", "<project/>")
            write(cwd, ".git/HEAD", "ref: refs/heads/main\n")

        self.runner.on(["git", "clone"], clone)
        cfg = self.config(scm={"url": "https://github.com/acme/demo.git", "skipCheckout": False})

        code = run_pipeline(self.request(cfg, workspace=workspace))

        self.assertEqual(0, code)
        self.assertTrue(self.runner.ran("git", "clone", "--depth", "1", "--branch", "main"))
        self.assertFalse(workspace.exists())
        cleanup = self.manifest()["stages"][-1]
        self.assertEqual({"deleted": True}, cleanup["summary"])

    def test_dry_run_keeps_workspace(self) -> None:
        runner = FakeRunner()
        code = run_pipeline(self.request(runner=runner, dry_run=True, clean_workspace=True))

        self.assertEqual(0, code)
        self.assertEqual([], runner.calls)
        self.assertTrue(self.app.exists())
        self.assertTrue(self.manifest()["dry_run"])


class TestBuildPipeline(PipelineTestCase):
    def test_previous_result_is_read_for_back_to_normal(self) -> None:
        self.runner.on(["mvn", "clean", "package"], failed(1))
        run_pipeline(self.request(build_number="1"))

        ws = open_workspace(self.request(build_number="2"))
        pipeline = BuildPipeline(self.config(), ws)

        self.assertEqual(FAILURE, pipeline.previous_result)
        self.assertEqual(FAILURE, pipeline.build_info().previous_result)

    def test_fail_on_vulnerability(self) -> None:
        class StubScanner:
            def __init__(self, ws):
                self.ws = ws

            def run_scans(self, config):
                self.ws.state.mark(UNSTABLE)

            def get_vulnerability_report(self):
                return {"critical": 0, "high": 2, "medium": 0, "low": 0}

        cfg = self.config(
            security={"scan": {"enabled": True, "tools": ["snyk"]}},
            testConfig={"staticAnalysis": {"enabled": False}},
        )
        pipeline = BuildPipeline(cfg, open_workspace(self.request(cfg)), scanner_factory=StubScanner)

        with self.assertRaises(PipelineError) as ctx:
            pipeline.run()

        self.assertIn("critical/high vulnerabilities", str(ctx.exception))
        self.assertEqual(FAILURE, pipeline.result)
        self.assertEqual("failed", pipeline.stages[-2].status)
        self.assertEqual("Cleanup", pipeline.stages[-1].name)

    def test_vulnerabilities_tolerated_when_not_failing(self) -> None:
        class StubScanner:
            def __init__(self, ws):
                self.ws = ws

            def run_scans(self, config):
                self.ws.state.mark(UNSTABLE)

            def get_vulnerability_report(self):
                return {"critical": 0, "high": 2, "medium": 0, "low": 0}

        cfg = self.config(security={"scan": {"enabled": True, "tools": ["snyk"], "failOnVulnerability": False}})
        pipeline = BuildPipeline(cfg, open_workspace(self.request(cfg)), scanner_factory=StubScanner)

        self.assertEqual(UNSTABLE, pipeline.run())


class TestOtherModes(PipelineTestCase):
    def test_run_tests(self) -> None:
        self.assertEqual(0, run_tests(TestRequest(run=self.request(), kind="unit")))
        self.assertTrue(self.runner.ran("mvn", "test"))

        self.runner.on(["mvn", "verify"], failed(1))
        self.assertEqual(1, run_tests(TestRequest(run=self.request(), kind="integration")))

    def test_run_tests_enables_disabled_suite(self) -> None:
        cfg = self.config(testConfig={"unitTests": {"enabled": False}})
        self.assertEqual(0, run_tests(TestRequest(run=self.request(cfg))))
        self.assertTrue(self.runner.ran("mvn", "test"))

    def test_run_notify(self) -> None:
        with self.assertLogs("tools.workspace", level="INFO") as logs:
            code = run_notify(NotifyRequest(run=self.request(), status="failure", error="boom"))
        self.assertEqual(0, code)
        self.assertIn("[FAILURE] Build #7 failed for demo with error: boom", "\n".join(logs.output))

        self.assertEqual(2, run_notify(NotifyRequest(run=self.request(), status="ABORTED")))

    def test_run_notify_uses_inherited_build_number(self) -> None:
        req = self.request(build_number=None, env={"PATH": str(self.bin), "BUILD_NUMBER": "42"})

        with self.assertLogs("tools.workspace", level="INFO") as logs:
            self.assertEqual(0, run_notify(NotifyRequest(run=req, status="success")))

        self.assertIn("[SUCCESS] Build #42 completed successfully for demo v1.0.0", "\n".join(logs.output))

    def test_adhoc_only_names_the_output_folder(self) -> None:
        ws = open_workspace(self.request(build_number=None), build_number=ADHOC_BUILD)

        self.assertEqual(ADHOC_BUILD, ws.paths.build_number)
        self.assertEqual("0", ws.env["BUILD_NUMBER"])

    def test_run_info(self) -> None:
        self.assertEqual(0, run_info(self.request()))
        self.assertTrue(self.runner.ran("java", "-version"))

    def test_run_info_reports_requested_build_number(self) -> None:
        with self.assertLogs("tools.workspace", level="INFO") as logs:
            run_info(self.request())
        self.assertIn("Build Number: 7", "\n".join(logs.output))

    def test_facade_delegates(self) -> None:
        seen = []
        facade = JavaCIPipeline(run_fn=lambda req: seen.append(req) or 3)
        req = self.request()
        self.assertEqual(3, facade.run(req))
        self.assertEqual([req], seen)


if __name__ == "__main__":
    unittest.main()
