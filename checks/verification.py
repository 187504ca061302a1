"""Post-install import checks.

The freshly installed ``cv2`` and ``dlib`` live in the system interpreter,
not necessarily in the one running the build, so the checks run in a
subprocess that prints a single JSON line.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import List, Optional

_SCRIPT = r'''
import json
result = {}
try:
    import cv2
    result["cv2_version"] = cv2.__version__
    try:
        result["cv2_cuda_devices"] = int(cv2.cuda.getCudaEnabledDeviceCount())
    except Exception as exc:
        result["cv2_cuda_devices"] = 0
        result["cv2_cuda_error"] = str(exc)
except Exception as exc:
    result["cv2_error"] = str(exc)
if CHECK_DLIB:
    try:
        import dlib
        result["dlib_use_cuda"] = bool(dlib.DLIB_USE_CUDA)
        result["dlib_cuda_devices"] = int(dlib.cuda.get_num_devices())
    except Exception as exc:
        result["dlib_error"] = str(exc)
print(json.dumps(result))
'''


def verification_script(check_dlib: bool) -> str:
    return "CHECK_DLIB = %s\n%s" % (bool(check_dlib), _SCRIPT)


@dataclass
class VerificationReport:
    cv2_version: Optional[str] = None
    cv2_cuda_devices: int = 0
    dlib_use_cuda: Optional[bool] = None
    dlib_cuda_devices: Optional[int] = None
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict:
        return {
            "cv2_version": self.cv2_version,
            "cv2_cuda_devices": self.cv2_cuda_devices,
            "dlib_use_cuda": self.dlib_use_cuda,
            "dlib_cuda_devices": self.dlib_cuda_devices,
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


def parse_verification_output(output: str, check_dlib: bool) -> VerificationReport:
    """Build a report from the subprocess output.

    Import failures become errors; an import that works but sees no CUDA
    device is only a warning, since the container may have been started
    without the GPU runtime.
    """
    report = VerificationReport()
    data = None
    for line in reversed(output.splitlines()):
        line = line.strip()
        if line.startswith("{"):
            try:
                data = json.loads(line)
            except ValueError:
                continue
            break
    if data is None:
        report.errors.append("verification script produced no result")
        return report

    if "cv2_error" in data:
        report.errors.append(f"import cv2 failed: {data['cv2_error']}")
    else:
        report.cv2_version = data.get("cv2_version")
        report.cv2_cuda_devices = int(data.get("cv2_cuda_devices") or 0)
        if report.cv2_cuda_devices == 0:
            report.warnings.append("cv2 sees no CUDA device")
        if data.get("cv2_cuda_error"):
            report.warnings.append(f"cv2.cuda unavailable: {data['cv2_cuda_error']}")

    if check_dlib:
        if "dlib_error" in data:
            report.errors.append(f"import dlib failed: {data['dlib_error']}")
        else:
            report.dlib_use_cuda = bool(data.get("dlib_use_cuda"))
            report.dlib_cuda_devices = int(data.get("dlib_cuda_devices") or 0)
            if not report.dlib_use_cuda:
                report.warnings.append("dlib was built without CUDA")
    return report
