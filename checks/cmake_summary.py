"""Parse the OpenCV CMake configuration summary.

CMake prints a summary block at the end of configuration, e.g.::

    --   NVIDIA CUDA:                   YES (ver 10.2, CUFFT CUBLAS FAST_MATH)
    --     NVIDIA GPU arch:             30 35 37 50 52 60 61 70 75
    --   cuDNN:                         YES (ver 7.6.5)

If CUDA or cuDNN say ``NO`` here, the build will succeed but produce a
CPU-only library, so these lines are what the configure stage checks.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Optional

_CUDA_RE = re.compile(r"^--\s+NVIDIA CUDA:\s+(YES|NO)\b\s*(.*)$", re.MULTILINE)
_CUDNN_RE = re.compile(r"^--\s+cuDNN:\s+(YES|NO)\b\s*(.*)$", re.MULTILINE)
_ARCH_RE = re.compile(r"^--\s+NVIDIA GPU arch:\s+(.*)$", re.MULTILINE)
_PY3_RE = re.compile(r"^--\s+Python 3:\s*\n--\s+Interpreter:\s+(\S+)", re.MULTILINE)


@dataclass
class CMakeSummary:
    cuda: bool = False
    cuda_detail: str = ""
    cudnn: bool = False
    cudnn_detail: str = ""
    gpu_arch: List[str] = field(default_factory=list)
    python3_interpreter: Optional[str] = None

    def missing(self, require_cudnn: bool = True) -> List[str]:
        """Names of required GPU features that CMake did not enable."""
        missing = []
        if not self.cuda:
            missing.append("CUDA")
        if require_cudnn and not self.cudnn:
            missing.append("cuDNN")
        return missing


def parse_cmake_summary(text: str) -> CMakeSummary:
    summary = CMakeSummary()
    match = _CUDA_RE.search(text)
    if match:
        summary.cuda = match.group(1) == "YES"
        summary.cuda_detail = match.group(2).strip()
    match = _CUDNN_RE.search(text)
    if match:
        summary.cudnn = match.group(1) == "YES"
        summary.cudnn_detail = match.group(2).strip()
    match = _ARCH_RE.search(text)
    if match:
        summary.gpu_arch = match.group(1).split()
    match = _PY3_RE.search(text)
    if match:
        summary.python3_interpreter = match.group(1)
    return summary


def read_cmake_summary(log_path: str) -> CMakeSummary:
    with open(log_path, "r", encoding="utf-8", errors="replace") as f:
        return parse_cmake_summary(f.read())
