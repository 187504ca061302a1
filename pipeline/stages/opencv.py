"""OpenCV configure and compile stages."""

from __future__ import annotations

import os
from typing import Any, Dict, List, Optional

from checks.cmake_summary import read_cmake_summary

from ..errors import StageFailed
from .base_stage import BaseStage


def cmake_define_args(options: Dict[str, Any]) -> List[str]:
    """Turn ``{"WITH_CUDA": "ON"}`` into ``["-D", "WITH_CUDA=ON"]``."""
    args: List[str] = []
    for key, value in options.items():
        args.extend(["-D", f"{key}={value}"])
    return args


class _OpenCVStage(BaseStage):
    def source_dir(self) -> str:
        sources = self.section("sources")
        directory = sources.get("opencv", {}).get("directory", "opencv")
        return self.context.work_path(directory)

    def build_dir(self) -> str:
        return os.path.join(self.source_dir(), self.section("opencv").get("build_dir", "build"))


class ConfigureOpenCV(_OpenCVStage):
    name = "configure_opencv"
    description = "Run CMake with CUDA/cuDNN enabled and check the summary"

    def cmake_options(self) -> Dict[str, Any]:
        options = dict(self.section("opencv").get("cmake_options", {}))
        if "OPENCV_EXTRA_MODULES_PATH" not in options:
            contrib = self.section("sources").get("opencv_contrib", {}).get("directory", "opencv_contrib")
            options["OPENCV_EXTRA_MODULES_PATH"] = self.context.work_path(contrib, "modules")
        return options

    def run(self) -> Optional[Dict[str, Any]]:
        cfg = self.section("opencv")
        build_dir = self.build_dir()
        log_path = self.context.work_path(cfg.get("cmake_log", "cmake.log"))
        if not self.context.dry_run:
            if not os.path.isdir(self.source_dir()):
                raise StageFailed(f"OpenCV source directory {self.source_dir()} is missing")
            os.makedirs(build_dir, exist_ok=True)

        self.milestone("Compiling opencv...")
        args = ["cmake", *cmake_define_args(self.cmake_options()), ".."]
        self.context.runner.run(args, cwd=build_dir, log_path=log_path)
        if self.context.dry_run:
            return {"cmake_log": log_path}

        summary = read_cmake_summary(log_path)
        console = self.context.console
        console.show_file(log_path)
        missing: List[str] = []
        if cfg.get("require_cuda", True):
            missing = summary.missing(require_cudnn=cfg.get("require_cudnn", True))
        if missing:
            raise StageFailed(
                f"CMake did not enable {' and '.join(missing)}; check the CUDA/cuDNN versions for your GPU "
                f"(see {log_path})"
            )
        self.logger.info("CUDA: %s; cuDNN: %s", summary.cuda_detail or summary.cuda, summary.cudnn_detail or summary.cudnn)
        console.checkpoint(
            "Verify that CUDA and cuDNN are both enabled in the cmake output above.",
            "Look for the lines with CUDA and cuDNN.",
            "You may have to scroll up the page to see them.",
            "If those lines don't show 'YES', then stop the script and fix the problem.",
        )
        return {
            "cmake_log": log_path,
            "cuda": summary.cuda,
            "cudnn": summary.cudnn,
            "gpu_arch": summary.gpu_arch,
        }


class CompileOpenCV(_OpenCVStage):
    name = "compile_opencv"
    description = "Compile and install OpenCV using every CPU core"

    def jobs(self) -> int:
        jobs = int(self.section("opencv").get("jobs", 0) or 0)
        if jobs <= 0:
            jobs = os.cpu_count() or 1
        return jobs

    def run(self) -> Optional[Dict[str, Any]]:
        build_dir = self.build_dir()
        runner = self.context.runner
        jobs = self.jobs()
        runner.run(["make", f"-j{jobs}"], cwd=build_dir)
        self.milestone("Installing opencv...")
        runner.run(["make", "install"], cwd=build_dir)
        runner.run(["ldconfig"])
        return {"jobs": jobs}
