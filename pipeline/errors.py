"""Exceptions raised by the build pipeline.

Gates raise :class:`PreconditionFailed` and the pipeline stops with an
``aborted`` outcome.  Every other stage raises :class:`StageFailed` (or
one of its subclasses) and the pipeline stops with a ``failed`` outcome
before reaching cleanup.
"""

from __future__ import annotations

from typing import List, Optional, Sequence


class BuildError(RuntimeError):
    """Base class for all build pipeline errors."""


class PreconditionFailed(BuildError):
    """A gate refused to let the build start.

    ``hints`` are operator-facing lines printed to the console in
    interactive mode; the message itself always goes to the log.
    """

    def __init__(self, message: str, hints: Optional[Sequence[str]] = None) -> None:
        super().__init__(message)
        self.hints: List[str] = list(hints or [])


class StageFailed(BuildError):
    """A stage could not complete."""


class CommandFailed(StageFailed):
    """An external command exited with a non-zero status."""

    def __init__(self, args: Sequence[str], returncode: int, log_path: Optional[str] = None) -> None:
        self.args_list = [str(a) for a in args]
        self.returncode = returncode
        self.log_path = log_path
        message = f"Command failed with exit code {returncode}: {' '.join(self.args_list)}"
        if log_path:
            message += f" (see {log_path})"
        super().__init__(message)


class DownloadFailed(StageFailed):
    """A source archive could not be downloaded or extracted."""
