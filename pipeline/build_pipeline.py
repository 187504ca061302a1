"""Build pipeline running the GPU OpenCV build from start to finish.

The :class:`BuildPipeline` takes the ordered stages produced by the
:class:`~pipeline.stages.StageFactory` and runs them one after another
in the calling thread.  The only parallelism is inside ``make -j``.

Flow:

* Interactive mode shows a warning banner and waits for the operator;
  quiet mode logs a notice and waits a few seconds instead.
* Gates run first.  A failing gate aborts the build before anything on
  the system has changed.
* Every other stage either succeeds, is skipped (its feature is off) or
  fails.  The first failure stops the build: nothing after it runs,
  cleanup included, so downloaded archives stay for the next attempt.
* Ctrl-C stops the build where it is.  Packages already removed and
  files already written are left as they are; there is no rollback.

A completed build is only *pending* verification: the operator checks
that ``cv2`` imports with CUDA and then creates the ``opencv_ok``
sentinel by hand.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from checks.sentinel import confirmation_command

from .errors import PreconditionFailed, StageFailed
from .metrics import BuildMetrics
from .stages import (
    ABORTED,
    FAILED,
    INTERRUPTED,
    SKIPPED,
    SUCCEEDED,
    BaseStage,
    BuildContext,
    StageFactory,
    StageRecord,
)

LOGGER = logging.getLogger(__name__)

COMPLETED = "completed"

EXIT_CODES: Dict[str, int] = {
    COMPLETED: 0,
    ABORTED: 1,
    FAILED: 2,
    INTERRUPTED: 130,
}

WARNING_BANNER = [
    "This script will compile 'opencv' with GPU support.",
    "",
    "WARNING:",
    "The compile process needs 15GB of disk (Docker image) free space, at least 4GB of",
    "memory, and will generate a huge Zoneminder Docker that is 10GB in size!  The apt",
    "update will be disabled so you won't get Linux updates.  Zoneminder will no",
    "longer update.  In order to get updates you will have to force update, or remove",
    "and re-install the Zoneminder Docker and then re-compile 'opencv'.",
    "",
    "There are several stopping points to give you a chance to see if the process is",
    "progressing without errors.",
    "",
    "The compile script can take an hour or more to complete!",
]


def completion_instructions(sentinel_path: str, check_dlib: bool) -> List[str]:
    lines = [
        "Compile is complete.",
        "Now check that the cv2 module in python is working.",
        "Execute the following commands:",
        "  python3",
        "  import cv2",
    ]
    if check_dlib:
        lines.append("  import dlib")
    lines.append("  print(cv2.getBuildInformation())")
    if check_dlib:
        lines.extend(["  print(dlib.cuda.get_num_devices())", "  dlib.DLIB_USE_CUDA"])
    lines.extend([
        "  Ctrl-D to exit",
        "",
        "Verify that the import does not show errors.",
        "If you don't see any errors, then you have successfully compiled opencv.",
        "",
        "Once you are satisfied that the compile is working, run the following",
        "command:",
        f"  {confirmation_command(sentinel_path)}",
        "",
        "The build will then run again by itself when the Docker is updated so you",
        "won't have to do it manually.",
    ])
    return lines


@dataclass
class BuildOutcome:
    """Terminal state of a build."""

    status: str
    message: str = ""
    failed_stage: Optional[str] = None
    records: List[StageRecord] = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        return EXIT_CODES.get(self.status, 1)

    @property
    def pending_verification(self) -> bool:
        return self.status == COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "message": self.message,
            "failed_stage": self.failed_stage,
            "exit_code": self.exit_code,
            "stages": [r.to_dict() for r in self.records],
        }


class BuildPipeline:
    """Run the build stages in order and report the outcome.

    Parameters
    ----------
    context : BuildContext
        Shared configuration, flags, runner and console.
    stages : Sequence[BaseStage], optional
        Stages to run.  Defaults to the full plan from :class:`StageFactory`.
    metrics : BuildMetrics, optional
        Metrics sink; written at the end of a real (not dry) run.
    sleep : Callable[[float], None], optional
        Used for the quiet-mode start delay.
    """

    def __init__(
        self,
        context: BuildContext,
        stages: Optional[Sequence[BaseStage]] = None,
        metrics: Optional[BuildMetrics] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.context = context
        self.stages: List[BaseStage] = list(stages) if stages is not None else StageFactory().create_stages(context)
        self.metrics = metrics
        self.sleep = sleep
        # One record per stage, in execution order.
        self.history: List[StageRecord] = []

    def run(self) -> BuildOutcome:
        outcome: Optional[BuildOutcome] = None
        try:
            self._start()
        except (KeyboardInterrupt, EOFError):
            LOGGER.warning("Build cancelled before it started")
            outcome = BuildOutcome(status=INTERRUPTED, message="cancelled by operator")

        if outcome is None:
            for stage in self.stages:
                outcome = self._run_stage(stage)
                if outcome is not None:
                    break

        if outcome is None:
            outcome = BuildOutcome(status=COMPLETED, message="completed, pending manual verification")
            self.context.console.say(*completion_instructions(
                self.context.config.get("paths", {}).get("sentinel", "/config/opencv/opencv_ok"),
                self.context.flags.install_face,
            ))
        outcome.records = list(self.history)
        LOGGER.info("Build %s%s", outcome.status, f" at {outcome.failed_stage}" if outcome.failed_stage else "")
        self._publish_metrics(outcome)
        return outcome

    def _start(self) -> None:
        console = self.context.console
        if self.context.quiet:
            LOGGER.info("Running in quiet mode.")
            delay = float(self.context.config.get("run", {}).get("quiet_start_delay_sec", 10) or 0)
            if delay > 0:
                self.sleep(delay)
            return
        console.banner(WARNING_BANNER)
        console.checkpoint()

    def _run_stage(self, stage: BaseStage) -> Optional[BuildOutcome]:
        """Run one stage; returns an outcome only when the build must stop."""
        if not stage.is_enabled():
            LOGGER.info("Skipping %s", stage.name)
            self._record(StageRecord(name=stage.name, status=SKIPPED, message="not enabled"))
            return None

        LOGGER.debug("Starting %s: %s", stage.name, stage.description)
        record = StageRecord(name=stage.name, status=SUCCEEDED, started_at=time.time())
        try:
            details = stage.run()
        except PreconditionFailed as exc:
            LOGGER.error("%s", exc)
            self.context.console.say("", str(exc), *exc.hints)
            self._finish(record, ABORTED, str(exc))
            return BuildOutcome(status=ABORTED, message=str(exc), failed_stage=stage.name)
        except (StageFailed, OSError) as exc:
            LOGGER.error("Stage %s failed: %s", stage.name, exc)
            self.context.console.say("", f"The '{stage.name}' step failed:", f"  {exc}")
            self._finish(record, FAILED, str(exc))
            return BuildOutcome(status=FAILED, message=str(exc), failed_stage=stage.name)
        except (KeyboardInterrupt, EOFError):
            LOGGER.warning("Build interrupted during %s; the container is left partially modified", stage.name)
            self._finish(record, INTERRUPTED, "interrupted")
            return BuildOutcome(status=INTERRUPTED, message="interrupted by operator", failed_stage=stage.name)
        record.details = dict(details or {})
        self._finish(record, SUCCEEDED)
        return None

    def _finish(self, record: StageRecord, status: str, message: str = "") -> None:
        record.status = status
        record.message = message
        record.ended_at = time.time()
        self._record(record)

    def _record(self, record: StageRecord) -> None:
        self.history.append(record)
        if self.metrics is not None:
            self.metrics.observe_stage(record.name, record.status, record.duration_sec)

    def _publish_metrics(self, outcome: BuildOutcome) -> None:
        if self.metrics is None:
            return
        self.metrics.observe_outcome(outcome.status)
        if not self.context.dry_run:
            self.metrics.write()
