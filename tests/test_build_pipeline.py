"""
End-to-end tests for the build pipeline.

The whole stage plan runs against a temporary tree with a recording
runner.  These tests pin down the guarantees operators rely on: a failed
precondition changes nothing, a failed command stops the build before
cleanup, quiet mode never waits for input, and the face rebuild only
happens when it is enabled.
"""

import os
import sys
import tempfile
import unittest
from unittest.mock import Mock, patch

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from checks.gpu import GpuStatus
from pipeline.build_pipeline import COMPLETED, EXIT_CODES, BuildOutcome, BuildPipeline, completion_instructions
from pipeline.metrics import BuildMetrics
from pipeline.stages import ABORTED, FAILED, INTERRUPTED, SKIPPED, SUCCEEDED
from fakes import CMAKE_LOG_CPU, FakeFetcher, FakeRunner, make_context

PLENTY_KB = 100 * 1000 * 1000


class PipelineTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.root = self.tmp.name
        self.runner = FakeRunner()
        self.fetcher = FakeFetcher()
        self.sleep = Mock()

        self.disk_kb = PLENTY_KB
        self.memory_kb = PLENTY_KB
        for target, attr in (("free_disk_kb", "disk_kb"), ("available_memory_kb", "memory_kb")):
            patcher = patch(f"pipeline.stages.gates.{target}", side_effect=lambda *a, _attr=attr: getattr(self, _attr))
            patcher.start()
            self.addCleanup(patcher.stop)
        patcher = patch("pipeline.stages.environment.probe_gpu", return_value=GpuStatus())
        patcher.start()
        self.addCleanup(patcher.stop)

    def build(self, **kwargs):
        kwargs.setdefault("runner", self.runner)
        kwargs.setdefault("fetcher", self.fetcher)
        metrics = kwargs.pop("metrics", None)
        context = make_context(self.root, **kwargs)
        os.makedirs(context.work_path("opencv"), exist_ok=True)
        return context, BuildPipeline(context, metrics=metrics, sleep=self.sleep)

    def seed_artifacts(self, context):
        """Leave archives, a stale log and the apt hook around."""
        for name in ("opencv.zip", "opencv_contrib.zip", "cmake.log"):
            open(context.work_path(name), "w").close()
        hook = context.config["cleanup"]["apt_update_hook"]
        os.makedirs(os.path.dirname(hook), exist_ok=True)
        open(hook, "w").close()
        return hook

    def statuses(self, outcome):
        return {r.name: r.status for r in outcome.records}


class TestPreconditions(PipelineTestCase):
    """A failed gate aborts before anything changes."""

    def assert_untouched(self, context, hook):
        self.assertEqual(self.runner.calls, [])
        self.assertEqual(self.fetcher.fetched, [])
        self.assertTrue(os.path.exists(hook))
        self.assertTrue(os.path.exists(context.work_path("cmake.log")))
        self.assertFalse(os.path.exists(context.config["paths"]["profile_script"]))

    def test_low_disk_aborts(self):
        self.disk_kb = 10000 * 1000
        context, pipeline = self.build()
        hook = self.seed_artifacts(context)

        outcome = pipeline.run()

        self.assertEqual(outcome.status, ABORTED)
        self.assertEqual(outcome.failed_stage, "disk_space")
        self.assertEqual(outcome.exit_code, 1)
        self.assert_untouched(context, hook)

    def test_low_memory_aborts(self):
        self.memory_kb = 2000 * 1000
        context, pipeline = self.build()
        hook = self.seed_artifacts(context)

        outcome = pipeline.run()

        self.assertEqual(outcome.failed_stage, "memory")
        self.assertEqual(self.statuses(outcome), {"disk_space": SUCCEEDED, "memory": ABORTED})
        self.assert_untouched(context, hook)

    def test_unreadable_disk_path_aborts(self):
        context, pipeline = self.build()
        hook = self.seed_artifacts(context)

        with patch("pipeline.stages.gates.free_disk_kb", side_effect=FileNotFoundError("/missing")):
            outcome = pipeline.run()

        self.assertEqual(outcome.status, ABORTED)
        self.assertEqual(outcome.failed_stage, "disk_space")
        self.assertEqual(outcome.exit_code, 1)
        self.assert_untouched(context, hook)

    def test_hook_processing_required(self):
        context, pipeline = self.build(install_hook=False, install_face=True)
        hook = self.seed_artifacts(context)

        outcome = pipeline.run()

        self.assertEqual(outcome.status, ABORTED)
        self.assertEqual(outcome.failed_stage, "hook_processing")
        self.assert_untouched(context, hook)

    def test_abort_explains_in_interactive_mode(self):
        self.disk_kb = 0
        context, pipeline = self.build(quiet=False, prompt=Mock(return_value=""))
        pipeline.run()
        output = context.console.stream.getvalue()
        self.assertIn("Not enough disk space to compile opencv!", output)
        self.assertIn("Expand your Docker image", output)


class TestFullBuild(PipelineTestCase):
    """Builds that get past the gates."""

    def test_completed_build(self):
        context, pipeline = self.build()
        hook = self.seed_artifacts(context)

        outcome = pipeline.run()

        self.assertEqual(outcome.status, COMPLETED)
        self.assertEqual(outcome.exit_code, 0)
        self.assertTrue(outcome.pending_verification)
        self.assertEqual(self.fetcher.fetched, ["opencv", "opencv_contrib"])
        self.assertFalse(os.path.exists(context.work_path("opencv.zip")))
        self.assertFalse(os.path.exists(hook))
        # The stale log was replaced by this run's CMake output.
        self.assertGreater(os.path.getsize(context.work_path("cmake.log")), 0)
        self.assertFalse(os.path.exists(context.config["paths"]["sentinel"]))

        commands = self.runner.commands()
        order = [cmd[:2] for cmd in commands]
        self.assertLess(order.index(["pip3", "uninstall"]), order.index(["apt-get", "-y"]))
        self.assertLess(order.index(["apt-get", "-y"]), order.index(["make", "install"]))

    def test_face_disabled_never_touches_dlib(self):
        _, pipeline = self.build(install_face=False)

        outcome = pipeline.run()

        self.assertEqual(outcome.status, COMPLETED)
        self.assertEqual(self.statuses(outcome)["face_recognition"], SKIPPED)
        self.assertFalse(self.runner.ran("git", "clone"))
        self.assertFalse(self.runner.ran("pip3", "uninstall", "-y", "dlib"))
        self.assertFalse(self.runner.ran("pip3", "install", "face-recognition"))

    def test_face_enabled_rebuilds_dlib_after_opencv(self):
        _, pipeline = self.build(install_face=True)

        outcome = pipeline.run()

        self.assertEqual(outcome.status, COMPLETED)
        commands = self.runner.commands()
        self.assertTrue(self.runner.ran("pip3", "uninstall", "-y", "dlib"))
        self.assertLess(commands.index(["make", "install"]), next(
            i for i, cmd in enumerate(commands) if cmd[:2] == ["git", "clone"]))
        self.assertEqual(commands[-1], ["pip3", "install", "face-recognition"])

    def test_compile_failure_stops_before_cleanup(self):
        self.runner.fail = lambda argv: argv[:1] == ["make"]
        context, pipeline = self.build(install_face=True)
        hook = self.seed_artifacts(context)

        outcome = pipeline.run()

        self.assertEqual(outcome.status, FAILED)
        self.assertEqual(outcome.failed_stage, "compile_opencv")
        self.assertEqual(outcome.exit_code, 2)
        self.assertIn("make", outcome.message)
        self.assertNotIn("cleanup", self.statuses(outcome))
        self.assertNotIn("face_recognition", self.statuses(outcome))
        self.assertTrue(os.path.exists(context.work_path("opencv.zip")))
        self.assertTrue(os.path.exists(hook))
        self.assertFalse(self.runner.ran("git"))

    def test_failed_verification_keeps_archives_and_hook(self):
        self.runner.capture_output = '{"cv2_error": "No module named cv2"}\n'
        context, pipeline = self.build(overrides={"verify": {"enabled": True}})
        hook = self.seed_artifacts(context)

        with self.assertLogs("opencv_build", level="INFO") as logs:
            outcome = pipeline.run()

        self.assertEqual(outcome.status, FAILED)
        self.assertEqual(outcome.failed_stage, "verify")
        self.assertEqual(outcome.exit_code, 2)
        self.assertNotIn("cleanup", self.statuses(outcome))
        self.assertTrue(os.path.exists(context.work_path("opencv.zip")))
        self.assertTrue(os.path.exists(context.work_path("opencv_contrib.zip")))
        self.assertTrue(os.path.exists(hook))
        self.assertFalse(any("Opencv compile completed" in line for line in logs.output))

    def test_cmake_without_cuda_fails(self):
        self.runner.log_text = CMAKE_LOG_CPU
        _, pipeline = self.build()

        outcome = pipeline.run()

        self.assertEqual(outcome.failed_stage, "configure_opencv")
        self.assertFalse(self.runner.ran("make"))

    def test_records_follow_execution_order(self):
        _, pipeline = self.build()
        outcome = pipeline.run()
        names = [r.name for r in outcome.records]
        self.assertEqual(names[:3], ["disk_space", "memory", "hook_processing"])
        self.assertEqual(names[-2:], ["verify", "cleanup"])
        self.assertEqual(outcome.to_dict()["stages"][0]["name"], "disk_space")


class TestOperatorInteraction(PipelineTestCase):
    """Quiet and interactive runs."""

    def test_quiet_never_prompts(self):
        context, pipeline = self.build(quiet=True)
        outcome = pipeline.run()
        self.assertEqual(outcome.status, COMPLETED)
        self.assertEqual(context.console.checkpoints, 0)
        self.assertEqual(context.console.stream.getvalue(), "")

    def test_quiet_waits_before_starting(self):
        _, pipeline = self.build(quiet=True, overrides={"run": {"quiet_start_delay_sec": 10}})
        pipeline.run()
        self.sleep.assert_called_once_with(10.0)

    def test_interactive_checkpoints(self):
        prompt = Mock(return_value="")
        context, pipeline = self.build(quiet=False, prompt=prompt)

        outcome = pipeline.run()

        self.assertEqual(outcome.status, COMPLETED)
        # Warning banner and the CMake summary.
        self.assertEqual(prompt.call_count, 2)
        self.sleep.assert_not_called()
        output = context.console.stream.getvalue()
        self.assertIn("The compile script can take an hour or more to complete!", output)
        self.assertIn('echo "yes" > ' + context.config["paths"]["sentinel"], output)

    def test_ctrl_c_at_banner(self):
        _, pipeline = self.build(quiet=False, prompt=Mock(side_effect=KeyboardInterrupt))

        outcome = pipeline.run()

        self.assertEqual(outcome.status, INTERRUPTED)
        self.assertEqual(outcome.exit_code, 130)
        self.assertEqual(self.runner.calls, [])

    def test_ctrl_c_at_cmake_checkpoint(self):
        prompt = Mock(side_effect=["", KeyboardInterrupt()])
        _, pipeline = self.build(quiet=False, prompt=prompt)

        outcome = pipeline.run()

        self.assertEqual(outcome.status, INTERRUPTED)
        self.assertEqual(outcome.failed_stage, "configure_opencv")
        self.assertFalse(self.runner.ran("make"))


class TestOutcome(unittest.TestCase):

    def test_exit_codes(self):
        self.assertEqual(EXIT_CODES, {"completed": 0, "aborted": 1, "failed": 2, "interrupted": 130})
        self.assertEqual(BuildOutcome(status="unknown").exit_code, 1)

    def test_completion_instructions_mention_dlib_only_with_face(self):
        self.assertNotIn("  import dlib", completion_instructions("/x/opencv_ok", False))
        self.assertIn("  import dlib", completion_instructions("/x/opencv_ok", True))


class TestMetrics(PipelineTestCase):

    def test_metrics_written_after_build(self):
        textfile = os.path.join(self.root, "opencv_build.prom")
        _, pipeline = self.build(metrics=BuildMetrics(textfile))

        pipeline.run()

        with open(textfile) as f:
            content = f.read()
        self.assertIn('opencv_build_outcome{status="completed"} 1.0', content)
        self.assertIn('opencv_build_stage_success{stage="compile_opencv"} 1.0', content)

    def test_failed_stage_metric(self):
        self.disk_kb = 0
        metrics = BuildMetrics()
        _, pipeline = self.build(metrics=metrics)
        pipeline.run()
        value = metrics.registry.get_sample_value("opencv_build_stage_success", {"stage": "disk_space"})
        self.assertEqual(value, 0.0)
        self.assertEqual(metrics.registry.get_sample_value("opencv_build_outcome", {"status": "aborted"}), 1.0)

    def test_missing_directory_is_not_fatal(self):
        metrics = BuildMetrics(os.path.join(self.root, "absent", "build.prom"))
        self.assertFalse(metrics.write())

    def test_dry_run_writes_no_metrics(self):
        textfile = os.path.join(self.root, "opencv_build.prom")
        _, pipeline = self.build(metrics=BuildMetrics(textfile), dry_run=True)
        pipeline.run()
        self.assertFalse(os.path.exists(textfile))


if __name__ == "__main__":
    unittest.main()
