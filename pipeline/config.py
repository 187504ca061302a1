"""Configuration defaults and loading.

The build is driven by a nested dictionary, normally read from
``config.yaml``.  Any key missing from the YAML file falls back to
:data:`DEFAULT_CONFIG`, so a partial file only needs to list what it
changes.  Components read their section with ``config.get(...)`` just
like the rest of the code base.

The two feature switches are not part of the YAML file: they come from
the container environment (``INSTALL_HOOK`` / ``INSTALL_FACE``) and are
wrapped in :class:`FeatureFlags`.
"""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

import yaml  # type: ignore

OPENCV_URL = "https://github.com/opencv/opencv/archive/282fcb90dce76a55dc5f31246355fce2761a9eff.zip"
OPENCV_CONTRIB_URL = "https://github.com/opencv/opencv_contrib/archive/4.2.0.zip"
DLIB_URL = "https://github.com/davisking/dlib.git"

DEFAULT_CONFIG: Dict[str, Any] = {
    "paths": {
        "config_dir": "/config",
        "work_dir": "/config/opencv",
        "profile_script": "/etc/profile.d/cuda.sh",
        "ld_conf": "/etc/ld.so.conf.d/cuda.conf",
        "sentinel": "/config/opencv/opencv_ok",
    },
    "requirements": {
        # Compared against kB // 1000, like the container shell scripts.
        "min_disk_free_mb": 15360,
        "min_memory_available_mb": 4096,
        "disk_path": "/",
        "meminfo_path": "/proc/meminfo",
    },
    "features": {
        "hook_env": "INSTALL_HOOK",
        "face_env": "INSTALL_FACE",
    },
    "cuda": {
        "home": "/usr/local/cuda",
        "extra_library_paths": ["/usr/local/cuda/extras/CUPTI/lib64", "/usr/local/lib"],
    },
    "gpu": {
        "nvidia_smi": "/usr/bin/nvidia-smi",
        "require_visible": False,
    },
    "packages": {
        "pip": "pip3",
        "apt_get": "apt-get",
        "uninstall": ["opencv-contrib-python"],
        "uninstall_face": ["face-recognition", "dlib"],
        "apt": [
            "libjpeg-dev",
            "libpng-dev",
            "libtiff-dev",
            "libavcodec-dev",
            "libavformat-dev",
            "libswscale-dev",
            "libv4l-dev",
            "libxvidcore-dev",
            "libx264-dev",
            "libgtk-3-dev",
            "libatlas-base-dev",
            "gfortran",
            "git",
        ],
    },
    "sources": {
        "opencv": {
            "url": OPENCV_URL,
            "archive": "opencv.zip",
            "directory": "opencv",
        },
        "opencv_contrib": {
            "url": OPENCV_CONTRIB_URL,
            "archive": "opencv_contrib.zip",
            "directory": "opencv_contrib",
        },
    },
    "download": {
        "timeout_sec": 60.0,
        "chunk_size": 1 << 20,
    },
    "opencv": {
        "build_dir": "build",
        "cmake_log": "cmake.log",
        "require_cuda": True,
        "require_cudnn": True,
        # 0 means one job per logical CPU.
        "jobs": 0,
        "cmake_options": {
            "CMAKE_BUILD_TYPE": "RELEASE",
            "CMAKE_INSTALL_PREFIX": "/usr/local",
            "INSTALL_PYTHON_EXAMPLES": "OFF",
            "INSTALL_C_EXAMPLES": "OFF",
            "OPENCV_ENABLE_NONFREE": "ON",
            "WITH_CUDA": "ON",
            "WITH_CUDNN": "ON",
            "OPENCV_DNN_CUDA": "ON",
            "ENABLE_FAST_MATH": "1",
            "CUDA_FAST_MATH": "1",
            "WITH_CUBLAS": "1",
            "HAVE_opencv_python3": "ON",
            "PYTHON_EXECUTABLE": "/usr/bin/python3",
            "PYTHON2_EXECUTABLE": "/usr/bin/python2",
            "BUILD_EXAMPLES": "OFF",
        },
    },
    "dlib": {
        "repository": DLIB_URL,
        "branch": "v19.19",
        "directory": "dlib",
        "cmake_options": {
            "DLIB_USE_CUDA": "1",
            "USE_AVX_INSTRUCTIONS": "1",
        },
        "python": "python3",
        "face_package": "face-recognition",
    },
    "cleanup": {
        "archive_pattern": "*.zip",
        "apt_update_hook": "/etc/my_init.d/20_apt_update.sh",
    },
    "verify": {
        "enabled": True,
        "python": "python3",
        "log": "verify.log",
    },
    "logging": {
        "level": "INFO",
        "syslog_tag": "EventServer",
        "syslog_address": "/dev/log",
    },
    "metrics": {
        "textfile": "/config/opencv/opencv_build.prom",
    },
    "run": {
        "quiet_start_delay_sec": 10,
    },
}


def deep_merge(base: Mapping[str, Any], override: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Return a copy of ``base`` with ``override`` merged on top.

    Nested mappings are merged key by key; any other value (lists
    included) in ``override`` replaces the one in ``base``.
    """
    merged = copy.deepcopy(dict(base))
    if not override:
        return merged
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def load_config(path: Optional[str]) -> Dict[str, Any]:
    """Load ``path`` and merge it over :data:`DEFAULT_CONFIG`.

    A missing file is not an error; the defaults are returned.  A file
    whose top level is not a mapping raises :class:`ValueError`.
    """
    if not path or not os.path.isfile(path):
        return deep_merge(DEFAULT_CONFIG, None)
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        data = {}
    if not isinstance(data, Mapping):
        raise ValueError(f"Configuration file {path} must contain a mapping at the top level")
    return deep_merge(DEFAULT_CONFIG, data)


@dataclass(frozen=True)
class FeatureFlags:
    """Container feature switches that decide what gets built."""

    install_hook: bool
    install_face: bool

    @classmethod
    def from_env(cls, config: Mapping[str, Any], environ: Optional[Mapping[str, str]] = None) -> "FeatureFlags":
        env = os.environ if environ is None else environ
        features = config.get("features", {})
        hook_var = features.get("hook_env", "INSTALL_HOOK")
        face_var = features.get("face_env", "INSTALL_FACE")
        return cls(
            install_hook=env.get(hook_var) == "1",
            install_face=env.get(face_var) == "1",
        )
