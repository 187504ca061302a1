"""Precondition gates.

The gates run before anything touches the system.  Each one raises
:class:`~pipeline.errors.PreconditionFailed`, which aborts the build with
no rollback needed.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from checks.resources import available_memory_kb, free_disk_kb, kb_to_mb

from ..errors import PreconditionFailed
from .base_stage import BaseStage


class DiskSpaceGate(BaseStage):
    name = "disk_space"
    description = "Require enough free disk space for the build tree"
    gate = True

    def run(self) -> Optional[Dict[str, Any]]:
        req = self.section("requirements")
        path = req.get("disk_path", "/")
        required_mb = int(req.get("min_disk_free_mb", 15360))
        try:
            free_mb = kb_to_mb(free_disk_kb(path))
        except OSError as exc:
            raise PreconditionFailed(f"Cannot determine free disk space on {path}: {exc}") from exc
        self.logger.info("Free disk space on %s: %d MB (need %d MB)", path, free_mb, required_mb)
        if free_mb < required_mb:
            raise PreconditionFailed(
                "Not enough disk space to compile opencv!",
                hints=[
                    f"Expand your Docker image to leave {required_mb // 1024}GB of free space.",
                    "Force update or remove and re-install Zoneminder to allow more space "
                    "if your compile did not complete.",
                ],
            )
        return {"free_mb": free_mb, "required_mb": required_mb}


class MemoryGate(BaseStage):
    name = "memory"
    description = "Require enough available memory for the compiler"
    gate = True

    def run(self) -> Optional[Dict[str, Any]]:
        req = self.section("requirements")
        required_mb = int(req.get("min_memory_available_mb", 4096))
        try:
            available_kb = available_memory_kb(req.get("meminfo_path", "/proc/meminfo"))
        except (OSError, ValueError) as exc:
            raise PreconditionFailed(f"Cannot determine available memory: {exc}") from exc
        available_mb = kb_to_mb(available_kb)
        self.logger.info("Available memory: %d MB (need %d MB)", available_mb, required_mb)
        if available_mb < required_mb:
            raise PreconditionFailed(
                "Not enough memory available to compile opencv!",
                hints=[
                    f"You should have at least {required_mb // 1024}GB available.",
                    "Check that you have not over committed SHM.",
                    "You can also stop Zoneminder to free up memory while you compile.",
                    "  service zoneminder stop",
                ],
            )
        return {"available_mb": available_mb, "required_mb": required_mb}


class HookGate(BaseStage):
    name = "hook_processing"
    description = "Require hook processing, which the face/ML tooling depends on"
    gate = True

    def run(self) -> Optional[Dict[str, Any]]:
        if not self.context.flags.install_hook:
            var = self.section("features").get("hook_env", "INSTALL_HOOK")
            raise PreconditionFailed(
                "Hook processing has to be installed before you can compile opencv!",
                hints=[f"Set {var}=1 in the container environment and restart it."],
            )
        return {"install_face": self.context.flags.install_face}
