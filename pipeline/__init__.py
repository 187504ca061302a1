"""Pipeline package for the GPU OpenCV build.

The pipeline ties together the command runner, the operator console,
the source fetcher and the build stages.  It provides the entry point
for the ``BuildPipeline`` class and related helpers used by ``app.py``.
"""

from .build_pipeline import BuildOutcome, BuildPipeline, EXIT_CODES  # noqa: F401
from .command_runner import CommandResult, CommandRunner  # noqa: F401
from .config import DEFAULT_CONFIG, FeatureFlags, load_config  # noqa: F401
from .console import OperatorConsole  # noqa: F401
from .errors import BuildError, CommandFailed, DownloadFailed, PreconditionFailed, StageFailed  # noqa: F401
from .metrics import BuildMetrics  # noqa: F401
from .source_fetcher import SourceArchive, SourceFetcher  # noqa: F401
from .stages import BuildContext, StageFactory  # noqa: F401
