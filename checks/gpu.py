"""GPU visibility checks.

Two independent signals are collected: whether the ``nvidia-smi`` utility
is installed (the container runtime mounts it together with the driver)
and which devices NVML can enumerate.  Either can be missing on a
misconfigured host; the OpenCV build itself still completes, but the
resulting library will not find a GPU at runtime.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

import pynvml

LOGGER = logging.getLogger(__name__)


@dataclass
class GpuStatus:
    nvidia_smi: Optional[str] = None
    devices: List[str] = field(default_factory=list)
    driver_version: Optional[str] = None

    @property
    def visible(self) -> bool:
        return self.nvidia_smi is not None and bool(self.devices)

    def to_dict(self) -> dict:
        return {
            "nvidia_smi": self.nvidia_smi,
            "devices": list(self.devices),
            "driver_version": self.driver_version,
        }


def find_nvidia_smi(path: str = "/usr/bin/nvidia-smi") -> Optional[str]:
    """Return ``path`` if it is an executable file, else ``None``."""
    if os.path.isfile(path) and os.access(path, os.X_OK):
        return path
    return None


def _as_text(value) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def enumerate_devices() -> tuple[List[str], Optional[str]]:
    """Return ``(device names, driver version)`` as reported by NVML.

    An empty list means NVML could not be initialised (no driver, no
    device, or the library is not mounted into the container).
    """
    try:
        pynvml.nvmlInit()
    except pynvml.NVMLError as exc:
        LOGGER.debug("NVML initialisation failed: %s", exc)
        return [], None
    try:
        driver = _as_text(pynvml.nvmlSystemGetDriverVersion())
        count = pynvml.nvmlDeviceGetCount()
        names = []
        for index in range(count):
            handle = pynvml.nvmlDeviceGetHandleByIndex(index)
            names.append(_as_text(pynvml.nvmlDeviceGetName(handle)))
        return names, driver
    except pynvml.NVMLError as exc:
        LOGGER.warning("NVML query failed: %s", exc)
        return [], None
    finally:
        try:
            pynvml.nvmlShutdown()
        except pynvml.NVMLError:
            pass


def probe_gpu(nvidia_smi_path: str = "/usr/bin/nvidia-smi") -> GpuStatus:
    smi = find_nvidia_smi(nvidia_smi_path)
    devices, driver = enumerate_devices()
    return GpuStatus(nvidia_smi=smi, devices=devices, driver_version=driver)
