"""Prometheus metrics for a build run.

A build is a batch job, not a server, so the metrics live in their own
registry and are written once at the end of the run to a textfile that a
node exporter can pick up.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Optional

from prometheus_client import CollectorRegistry, Gauge, write_to_textfile

LOGGER = logging.getLogger(__name__)

OUTCOMES = ("completed", "aborted", "failed", "interrupted")


class BuildMetrics:
    """Gauges describing the last build.

    Parameters
    ----------
    textfile : str, optional
        Path of the ``.prom`` file written by :meth:`write`.  ``None``
        disables writing; the gauges are still updated.
    """

    def __init__(self, textfile: Optional[str] = None) -> None:
        self.textfile = textfile
        self.registry = CollectorRegistry()
        self.stage_duration = Gauge(
            "opencv_build_stage_duration_seconds",
            "Wall time spent in each build stage",
            ["stage"],
            registry=self.registry,
        )
        self.stage_success = Gauge(
            "opencv_build_stage_success",
            "1 if the stage succeeded or was skipped, 0 if it aborted or failed",
            ["stage"],
            registry=self.registry,
        )
        self.outcome = Gauge(
            "opencv_build_outcome",
            "1 for the outcome of the last build, 0 for the others",
            ["status"],
            registry=self.registry,
        )
        self.last_run = Gauge(
            "opencv_build_last_run_timestamp_seconds",
            "Unix time the last build finished",
            registry=self.registry,
        )

    def observe_stage(self, name: str, status: str, duration_sec: float) -> None:
        self.stage_duration.labels(stage=name).set(duration_sec)
        self.stage_success.labels(stage=name).set(1 if status in ("succeeded", "skipped") else 0)

    def observe_outcome(self, status: str) -> None:
        for candidate in OUTCOMES:
            self.outcome.labels(status=candidate).set(1 if candidate == status else 0)
        self.last_run.set(time.time())

    def write(self) -> bool:
        """Write the textfile; returns False when it could not be written."""
        if not self.textfile:
            return False
        directory = os.path.dirname(self.textfile) or "."
        if not os.path.isdir(directory):
            LOGGER.warning("Metrics directory %s does not exist; metrics not written", directory)
            return False
        try:
            write_to_textfile(self.textfile, self.registry)
        except OSError as exc:
            LOGGER.warning("Could not write metrics to %s: %s", self.textfile, exc)
            return False
        return True
