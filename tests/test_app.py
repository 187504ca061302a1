"""Tests for the command line entry point."""

import io
import os
import sys
import tempfile
import unittest
from unittest.mock import patch

import yaml

project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if project_root not in sys.path:
    sys.path.insert(0, project_root)
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import app
from pipeline.build_pipeline import BuildOutcome
from fakes import make_config


class TestMain(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.config = make_config(self.tmp.name)
        self.config_path = os.path.join(self.tmp.name, "config.yaml")
        with open(self.config_path, "w") as f:
            yaml.safe_dump(self.config, f)
        self.env = {"INSTALL_HOOK": "1"}

        patcher = patch("app.BuildPipeline")
        self.pipeline_cls = patcher.start()
        self.addCleanup(patcher.stop)
        self.pipeline_cls.return_value.run.return_value = BuildOutcome(status="completed")

    def main(self, *argv):
        return app.main(["--config", self.config_path, *argv], environ=self.env)

    def context(self):
        return self.pipeline_cls.call_args[0][0]

    def test_interactive_by_default(self):
        self.assertEqual(self.main(), 0)
        self.assertFalse(self.context().quiet)
        self.assertTrue(self.context().flags.install_hook)

    def test_quiet_mode(self):
        self.main("quiet")
        self.assertTrue(self.context().quiet)

    def test_other_argument_is_interactive(self):
        self.main("loud")
        self.assertFalse(self.context().quiet)

    def test_exit_code_follows_outcome(self):
        self.pipeline_cls.return_value.run.return_value = BuildOutcome(status="failed", failed_stage="compile_opencv")
        self.assertEqual(self.main("quiet"), 2)

    def test_dry_run(self):
        self.main("quiet", "--dry-run")
        context = self.context()
        self.assertTrue(context.dry_run)
        self.assertTrue(context.runner.dry_run)
        self.assertTrue(context.fetcher.dry_run)

    def test_startup_without_sentinel_does_nothing(self):
        self.assertEqual(self.main("--startup"), 0)
        self.pipeline_cls.assert_not_called()

    def test_startup_with_sentinel_rebuilds_quietly(self):
        with open(self.config["paths"]["sentinel"], "w") as f:
            f.write("yes\n")
        self.assertEqual(self.main("--startup"), 0)
        self.assertTrue(self.context().quiet)

    def test_list_stages(self):
        with patch("sys.stdout", new_callable=io.StringIO) as out:
            self.assertEqual(self.main("--list-stages"), 0)
        lines = out.getvalue().splitlines()
        self.assertTrue(lines[0].startswith("[gate] disk_space"))
        self.assertTrue(any(line.startswith("[skip] face_recognition") for line in lines))
        self.assertTrue(any(line.startswith("[run ] compile_opencv") for line in lines))
        self.pipeline_cls.assert_not_called()

    def test_list_stages_with_face(self):
        self.env["INSTALL_FACE"] = "1"
        with patch("sys.stdout", new_callable=io.StringIO) as out:
            self.main("--list-stages")
        self.assertIn("[run ] face_recognition", out.getvalue())


if __name__ == "__main__":
    unittest.main()
