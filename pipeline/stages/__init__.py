"""
Build stages for the GPU OpenCV pipeline.

Each step of the build is a :class:`BaseStage`; the
:class:`StageFactory` puts them in order for a run.
"""

from .base_stage import (
    ABORTED,
    FAILED,
    INTERRUPTED,
    SKIPPED,
    SUCCEEDED,
    BaseStage,
    BuildContext,
    StageRecord,
)
from .cleanup import Cleanup, VerifyInstall
from .environment import CudaEnvironment, GpuProbe, InstallBuildDependencies, RemoveStaleLogs, UninstallPackages
from .face import FaceRecognitionRebuild
from .gates import DiskSpaceGate, HookGate, MemoryGate
from .opencv import CompileOpenCV, ConfigureOpenCV
from .sources import FetchSources
from .stage_factory import DEFAULT_STAGES, StageFactory

__all__ = [
    'ABORTED',
    'FAILED',
    'INTERRUPTED',
    'SKIPPED',
    'SUCCEEDED',
    'BaseStage',
    'BuildContext',
    'StageRecord',
    'Cleanup',
    'VerifyInstall',
    'CudaEnvironment',
    'GpuProbe',
    'InstallBuildDependencies',
    'RemoveStaleLogs',
    'UninstallPackages',
    'FaceRecognitionRebuild',
    'DiskSpaceGate',
    'HookGate',
    'MemoryGate',
    'CompileOpenCV',
    'ConfigureOpenCV',
    'FetchSources',
    'DEFAULT_STAGES',
    'StageFactory',
]
