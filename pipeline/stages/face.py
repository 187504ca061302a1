"""dlib / face-recognition rebuild.

The ``face_recognition`` wheel pulls a CPU-only dlib.  When face
recognition is enabled, dlib is rebuilt from a pinned tag with CUDA and
face-recognition is reinstalled on top of it.
"""

from __future__ import annotations

import os
from typing import Any, Dict, Optional

from .base_stage import BaseStage


class FaceRecognitionRebuild(BaseStage):
    name = "face_recognition"
    description = "Rebuild dlib with CUDA and reinstall face-recognition"

    def is_enabled(self) -> bool:
        return self.context.flags.install_face

    def run(self) -> Optional[Dict[str, Any]]:
        cfg = self.section("dlib")
        runner = self.context.runner
        config_dir = self.context.config_dir
        dlib_dir = os.path.join(config_dir, cfg.get("directory", "dlib"))
        build_dir = os.path.join(dlib_dir, "build")
        pip = self.section("packages").get("pip", "pip3")

        cloned = False
        if os.path.isdir(dlib_dir):
            self.logger.info("%s exists, skipping clone", dlib_dir)
        else:
            runner.run(
                [
                    "git",
                    "clone",
                    "-b",
                    cfg.get("branch", "v19.19"),
                    "--single-branch",
                    cfg.get("repository", "https://github.com/davisking/dlib.git"),
                    dlib_dir,
                ],
                cwd=config_dir,
            )
            cloned = True
        if not self.context.dry_run:
            os.makedirs(build_dir, exist_ok=True)

        defines = [f"-D{key}={value}" for key, value in cfg.get("cmake_options", {}).items()]
        runner.run(["cmake", f"-H{dlib_dir}", f"-B{build_dir}", *defines], cwd=config_dir)
        runner.run(["cmake", "--build", build_dir], cwd=config_dir)
        runner.run([cfg.get("python", "python3"), "setup.py", "install"], cwd=dlib_dir)
        runner.run([pip, "install", cfg.get("face_package", "face-recognition")])
        return {"dlib_dir": dlib_dir, "cloned": cloned}
