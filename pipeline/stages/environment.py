"""Stages that prepare the container for the build.

These run once every gate has passed and are the first to change the
system: old logs go, the pip-installed OpenCV/dlib wheels are removed so
they cannot shadow the compiled ones, the CUDA toolkit is put on the
search paths, the GPU is probed and the native build dependencies are
installed.
"""

from __future__ import annotations

import glob
import os
from typing import Any, Dict, List, Optional

from checks.gpu import probe_gpu

from ..errors import StageFailed
from .base_stage import BaseStage


class RemoveStaleLogs(BaseStage):
    name = "remove_logs"
    description = "Delete log files left by a previous run"

    def run(self) -> Optional[Dict[str, Any]]:
        logs = sorted(glob.glob(self.context.work_path("*.log")))
        for path in logs:
            if self.context.dry_run:
                self.logger.info("[dry-run] would remove %s", path)
                continue
            os.remove(path)
        return {"removed": len(logs)}


class UninstallPackages(BaseStage):
    name = "uninstall_packages"
    description = "Remove pip-installed opencv (and dlib/face-recognition) wheels"

    def packages(self) -> List[str]:
        pkgs = self.section("packages")
        names = list(pkgs.get("uninstall", ["opencv-contrib-python"]))
        if self.context.flags.install_face:
            names.extend(pkgs.get("uninstall_face", ["face-recognition", "dlib"]))
        return names

    def run(self) -> Optional[Dict[str, Any]]:
        pip = self.section("packages").get("pip", "pip3")
        names = self.packages()
        for name in names:
            self.context.runner.run([pip, "uninstall", "-y", name])
        self.milestone("Compiling opencv with GPU Support")
        return {"uninstalled": names}


def cuda_profile_lines(cuda_home: str, extra_library_paths: List[str]) -> List[str]:
    """Shell lines exporting the CUDA toolkit search paths.

    ``$PATH`` and ``$LD_LIBRARY_PATH`` are left for the login shell to
    expand so the fragment keeps working after the image's own paths
    change.
    """
    lib_paths = [os.path.join(cuda_home, "lib64")] + list(extra_library_paths)
    return [
        f"export PATH={os.path.join(cuda_home, 'bin')}:$PATH",
        f"export LD_LIBRARY_PATH={':'.join(lib_paths)}:$LD_LIBRARY_PATH",
        f"export CUDADIR={cuda_home}",
        f"export CUDA_HOME={cuda_home}",
    ]


class CudaEnvironment(BaseStage):
    name = "cuda_environment"
    description = "Export CUDA toolkit paths and refresh the linker cache"

    def run(self) -> Optional[Dict[str, Any]]:
        cuda = self.section("cuda")
        paths = self.section("paths")
        cuda_home = cuda.get("home", "/usr/local/cuda")
        profile = paths.get("profile_script", "/etc/profile.d/cuda.sh")
        ld_conf = paths.get("ld_conf", "/etc/ld.so.conf.d/cuda.conf")
        lines = cuda_profile_lines(cuda_home, cuda.get("extra_library_paths", []))

        if self.context.dry_run:
            self.logger.info("[dry-run] would write %s and %s", profile, ld_conf)
        else:
            _write_lines(profile, lines)
            _write_lines(ld_conf, [os.path.join(cuda_home, "lib64")])
        self.context.runner.run(["ldconfig"])
        self.milestone("Cuda toolkit installed")
        return {"profile_script": profile, "ld_conf": ld_conf}


def _write_lines(path: str, lines: List[str]) -> None:
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines) + "\n")


class GpuProbe(BaseStage):
    name = "gpu_probe"
    description = "Capture nvidia-smi output and confirm the GPU is visible"

    def run(self) -> Optional[Dict[str, Any]]:
        gpu = self.section("gpu")
        console = self.context.console
        status = probe_gpu(gpu.get("nvidia_smi", "/usr/bin/nvidia-smi"))
        details: Dict[str, Any] = status.to_dict()

        if status.nvidia_smi:
            log_path = self.context.work_path("nvidia-smi.log")
            if not self.context.dry_run:
                os.makedirs(self.context.work_dir, exist_ok=True)
            result = self.context.runner.run([status.nvidia_smi], log_path=log_path, check=False)
            details["nvidia_smi_returncode"] = result.returncode
            if not result.ok:
                self.logger.warning("nvidia-smi exited with status %d; see %s", result.returncode, log_path)
            if status.devices:
                self.logger.info("NVML devices: %s (driver %s)", ", ".join(status.devices), status.driver_version)
            console.show_file(log_path)
            console.checkpoint(
                "Verify your Nvidia GPU is seen and the driver is loaded.",
                "If not, stop the script and fix the problem.",
            )
        else:
            message = "'nvidia-smi' not found!  Check that the Nvidia drivers are installed."
            self.logger.warning(message)
            console.say(message)

        if gpu.get("require_visible") and not status.visible and not self.context.dry_run:
            raise StageFailed("No NVIDIA GPU is visible inside the container")
        return details


class InstallBuildDependencies(BaseStage):
    name = "install_build_deps"
    description = "Install native build dependencies with apt-get"

    def run(self) -> Optional[Dict[str, Any]]:
        pkgs = self.section("packages")
        apt = pkgs.get("apt_get", "apt-get")
        names = list(pkgs.get("apt", []))
        self.milestone("Installing cuda support packages...")
        if names:
            self.context.runner.run([apt, "-y", "install", *names])
        self.milestone("Cuda support packages installed")
        return {"installed": names}
