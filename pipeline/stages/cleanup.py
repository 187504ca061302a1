"""Final stages: cleanup and post-install verification."""

from __future__ import annotations

import glob
import os
from typing import Any, Dict, List, Optional

from checks.verification import parse_verification_output, verification_script

from ..errors import StageFailed
from .base_stage import BaseStage


class Cleanup(BaseStage):
    name = "cleanup"
    description = "Remove downloaded archives and the apt update start-up hook"

    def run(self) -> Optional[Dict[str, Any]]:
        cfg = self.section("cleanup")
        self.milestone("Cleaning up...")
        targets: List[str] = sorted(glob.glob(self.context.work_path(cfg.get("archive_pattern", "*.zip"))))
        # Running apt-get update at start-up would invalidate the compiled image.
        hook = cfg.get("apt_update_hook", "/etc/my_init.d/20_apt_update.sh")
        if hook and os.path.isfile(hook):
            targets.append(hook)
        for path in targets:
            if self.context.dry_run:
                self.logger.info("[dry-run] would remove %s", path)
            else:
                os.remove(path)
        self.milestone("Opencv compile completed")
        return {"removed": targets}


class VerifyInstall(BaseStage):
    name = "verify"
    description = "Import the installed cv2 (and dlib) and report CUDA devices"

    def is_enabled(self) -> bool:
        return bool(self.section("verify").get("enabled", True))

    def run(self) -> Optional[Dict[str, Any]]:
        cfg = self.section("verify")
        check_dlib = self.context.flags.install_face
        script = verification_script(check_dlib)
        result = self.context.runner.run([cfg.get("python", "python3"), "-c", script], capture=True, check=False)
        if self.context.dry_run:
            return {}

        log_path = self.context.work_path(cfg.get("log", "verify.log"))
        with open(log_path, "w", encoding="utf-8") as f:
            f.write(result.output)
        report = parse_verification_output(result.output, check_dlib)
        for warning in report.warnings:
            self.logger.warning(warning)
            self.context.console.say(f"Warning: {warning}")
        if not report.ok:
            raise StageFailed("; ".join(report.errors) + f" (see {log_path})")
        self.logger.info("cv2 %s sees %d CUDA device(s)", report.cv2_version, report.cv2_cuda_devices)
        return report.to_dict()
