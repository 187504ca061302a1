"""Host and build checks.

This package holds the read-only probes used around the build:

* :mod:`resources` measures free disk space and available memory for the
  precondition gates.
* :mod:`gpu` looks for ``nvidia-smi`` and enumerates devices through NVML.
* :mod:`cmake_summary` reads the CMake configuration summary to confirm
  CUDA and cuDNN were enabled.
* :mod:`verification` checks that the installed ``cv2`` / ``dlib`` import
  and see the GPU.
* :mod:`sentinel` knows about the manual ``opencv_ok`` confirmation file.

None of these functions modify the system.
"""

from .cmake_summary import CMakeSummary, parse_cmake_summary, read_cmake_summary
from .gpu import GpuStatus, probe_gpu
from .resources import available_memory_kb, free_disk_kb, kb_to_mb
from .sentinel import confirmation_command, is_confirmed
from .verification import VerificationReport, parse_verification_output, verification_script

__all__ = [
    "CMakeSummary",
    "parse_cmake_summary",
    "read_cmake_summary",
    "GpuStatus",
    "probe_gpu",
    "available_memory_kb",
    "free_disk_kb",
    "kb_to_mb",
    "confirmation_command",
    "is_confirmed",
    "VerificationReport",
    "parse_verification_output",
    "verification_script",
]
