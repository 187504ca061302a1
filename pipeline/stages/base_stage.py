"""
Base stage interface for the GPU build pipeline.

Defines the abstract interface every build step implements and the
shared context handed to each of them, so the pipeline can run gates,
system changes and compilation steps the same way.
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ..command_runner import CommandRunner
from ..config import FeatureFlags
from ..console import OperatorConsole
from ..logging_setup import MILESTONE_LOGGER_NAME
from ..source_fetcher import SourceFetcher

# Stage milestones are logged here so they reach syslog under one name.
MILESTONE_LOGGER = logging.getLogger(MILESTONE_LOGGER_NAME)

SUCCEEDED = "succeeded"
SKIPPED = "skipped"
ABORTED = "aborted"
FAILED = "failed"
INTERRUPTED = "interrupted"


@dataclass
class BuildContext:
    """Everything a stage needs to do its work."""

    config: Dict[str, Any]
    flags: FeatureFlags
    quiet: bool
    runner: CommandRunner
    console: OperatorConsole
    fetcher: SourceFetcher
    dry_run: bool = False

    @property
    def work_dir(self) -> str:
        return self.config.get("paths", {}).get("work_dir", "/config/opencv")

    @property
    def config_dir(self) -> str:
        return self.config.get("paths", {}).get("config_dir", "/config")

    def work_path(self, *parts: str) -> str:
        return os.path.join(self.work_dir, *parts)


@dataclass
class StageRecord:
    """Outcome of a single stage, kept in the pipeline history."""

    name: str
    status: str
    message: str = ""
    started_at: Optional[float] = None
    ended_at: Optional[float] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def duration_sec(self) -> float:
        if self.started_at is None or self.ended_at is None:
            return 0.0
        return max(0.0, self.ended_at - self.started_at)

    def to_dict(self) -> Dict[str, Any]:
        """Convert record to dictionary format."""
        return {
            'name': self.name,
            'status': self.status,
            'message': self.message,
            'started_at': self.started_at,
            'ended_at': self.ended_at,
            'duration_sec': self.duration_sec,
            'details': dict(self.details),
        }


class BaseStage(ABC):
    """Abstract base class for all build stages."""

    #: Short identifier used in logs, metrics and ``--list-stages``.
    name: str = "stage"
    #: One-line human description.
    description: str = ""
    #: Gates check preconditions and must not change the system.
    gate: bool = False

    def __init__(self, context: BuildContext):
        """Initialize stage with the shared build context."""
        self.context = context
        self.logger = logging.getLogger(f"{__name__.rsplit('.', 1)[0]}.{self.name}")

    @property
    def config(self) -> Dict[str, Any]:
        return self.context.config

    def section(self, key: str) -> Dict[str, Any]:
        """Return a configuration section, empty if absent."""
        return self.config.get(key, {}) or {}

    def is_enabled(self) -> bool:
        """
        Check whether this stage applies to the current build.

        Returns:
            bool: False to record the stage as skipped without running it
        """
        return True

    @abstractmethod
    def run(self) -> Optional[Dict[str, Any]]:
        """
        Execute the stage.

        Returns:
            Optional dictionary of details recorded in the stage history

        Raises:
            PreconditionFailed: A gate refused to continue
            StageFailed: The stage could not complete
        """
        pass

    def milestone(self, message: str) -> None:
        """Log a progress message meant for the system log."""
        MILESTONE_LOGGER.info(message)
