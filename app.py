"""Entry point for the GPU OpenCV build.

This script reads the configuration file, checks the container has room
for the build and then compiles OpenCV (and dlib when face recognition
is enabled) with CUDA support.  Run it with ``quiet`` as the only
argument to skip every prompt, e.g. from the container start-up::

    python3 app.py quiet

Expect an hour or more of compilation.  Press Ctrl-C to stop; the
container is then left partially modified.
"""

import argparse
import logging
import os
import sys
from typing import Any, Dict, List, Mapping, Optional, TextIO

from checks.sentinel import is_confirmed
from pipeline.build_pipeline import BuildPipeline
from pipeline.command_runner import CommandRunner
from pipeline.config import FeatureFlags, load_config
from pipeline.console import OperatorConsole
from pipeline.logging_setup import MILESTONE_LOGGER_NAME, configure_logging
from pipeline.metrics import BuildMetrics
from pipeline.source_fetcher import SourceFetcher
from pipeline.stages import BuildContext, StageFactory

DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "config.yaml")

LOGGER = logging.getLogger(MILESTONE_LOGGER_NAME)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Compile OpenCV (and dlib) with CUDA support")
    parser.add_argument(
        "mode",
        nargs="?",
        default=None,
        help="'quiet' runs without any prompt; anything else runs interactively",
    )
    parser.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to configuration YAML file")
    parser.add_argument("--dry-run", action="store_true", help="Log the commands without running them")
    parser.add_argument(
        "--startup",
        action="store_true",
        help="Container start-up mode: rebuild quietly only if the opencv_ok sentinel exists",
    )
    parser.add_argument("--list-stages", action="store_true", help="Print the build plan and exit")
    parser.add_argument("--log-level", default=None, help="Override logging.level from the config")
    return parser


def build_context(
    config: Dict[str, Any],
    quiet: bool,
    dry_run: bool = False,
    environ: Optional[Mapping[str, str]] = None,
    stream: Optional[TextIO] = None,
) -> BuildContext:
    download_cfg = config.get("download", {})
    return BuildContext(
        config=config,
        flags=FeatureFlags.from_env(config, environ),
        quiet=quiet,
        runner=CommandRunner(dry_run=dry_run),
        console=OperatorConsole(quiet=quiet, stream=stream),
        fetcher=SourceFetcher(
            work_dir=config.get("paths", {}).get("work_dir", "/config/opencv"),
            timeout=float(download_cfg.get("timeout_sec", 60.0)),
            chunk_size=int(download_cfg.get("chunk_size", 1 << 20)),
            dry_run=dry_run,
        ),
        dry_run=dry_run,
    )


def main(argv: Optional[List[str]] = None, environ: Optional[Mapping[str, str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args.config)
    log_cfg = config.get("logging", {})
    configure_logging(
        level=args.log_level or log_cfg.get("level", "INFO"),
        syslog_tag=log_cfg.get("syslog_tag"),
        syslog_address=log_cfg.get("syslog_address"),
    )

    quiet = args.mode == "quiet" or args.startup
    context = build_context(config, quiet=quiet, dry_run=args.dry_run, environ=environ)

    if args.list_stages:
        for step in StageFactory().describe(context):
            marker = "gate" if step["gate"] else ("run " if step["enabled"] else "skip")
            sys.stdout.write(f"[{marker}] {step['name']:<20} {step['description']}\n")
        return 0

    if args.startup:
        sentinel = config.get("paths", {}).get("sentinel", "/config/opencv/opencv_ok")
        if not is_confirmed(sentinel):
            LOGGER.info("%s not present; not rebuilding opencv", sentinel)
            return 0
        LOGGER.info("%s present; rebuilding opencv", sentinel)

    metrics = BuildMetrics(config.get("metrics", {}).get("textfile"))
    outcome = BuildPipeline(context, metrics=metrics).run()
    return outcome.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
