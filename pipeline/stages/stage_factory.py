"""
Stage factory for assembling the build plan.

Holds the ordered registry of stages and creates the instances for one
run.  Stages that do not apply to the current feature flags are still
created, so the pipeline can record them as skipped.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Type

from .base_stage import BaseStage, BuildContext
from .cleanup import Cleanup, VerifyInstall
from .environment import CudaEnvironment, GpuProbe, InstallBuildDependencies, RemoveStaleLogs, UninstallPackages
from .face import FaceRecognitionRebuild
from .gates import DiskSpaceGate, HookGate, MemoryGate
from .opencv import CompileOpenCV, ConfigureOpenCV
from .sources import FetchSources

# Execution order.  Gates come first and must stay in this order; cleanup
# is last and never runs after a failed verification.
DEFAULT_STAGES: Sequence[Type[BaseStage]] = (
    DiskSpaceGate,
    MemoryGate,
    HookGate,
    RemoveStaleLogs,
    UninstallPackages,
    CudaEnvironment,
    GpuProbe,
    InstallBuildDependencies,
    FetchSources,
    ConfigureOpenCV,
    CompileOpenCV,
    FaceRecognitionRebuild,
    VerifyInstall,
    Cleanup,
)


class StageFactory:
    """Factory for creating the ordered stage list of a build."""

    def __init__(self, stage_classes: Optional[Sequence[Type[BaseStage]]] = None):
        """Initialize stage factory."""
        self.logger = logging.getLogger(__name__)
        self._stage_classes = list(stage_classes or DEFAULT_STAGES)
        self._validate_order()

    def _validate_order(self) -> None:
        """Reject plans where a gate follows a stage that changes the system."""
        seen_action = False
        names = set()
        for cls in self._stage_classes:
            if cls.name in names:
                raise ValueError(f"Duplicate stage name: {cls.name}")
            names.add(cls.name)
            if cls.gate and seen_action:
                raise ValueError(f"Gate '{cls.name}' must run before any other stage")
            if not cls.gate:
                seen_action = True

    def get_stage_names(self) -> List[str]:
        """Get list of stage names in execution order."""
        return [cls.name for cls in self._stage_classes]

    def create_stages(self, context: BuildContext) -> List[BaseStage]:
        """
        Create stage instances for one build.

        Args:
            context: Shared build context

        Returns:
            List of stage instances in execution order
        """
        stages = [cls(context) for cls in self._stage_classes]
        enabled = [s.name for s in stages if s.is_enabled()]
        self.logger.debug("Build plan: %s", ", ".join(enabled))
        return stages

    def describe(self, context: BuildContext) -> List[Dict[str, Any]]:
        """
        Describe the build plan without running it.

        Args:
            context: Shared build context

        Returns:
            One dictionary per stage with its name, description and whether it will run
        """
        plan = []
        for stage in self.create_stages(context):
            plan.append({
                'name': stage.name,
                'description': stage.description,
                'gate': stage.gate,
                'enabled': stage.is_enabled(),
            })
        return plan
