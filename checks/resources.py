"""Free disk space and available memory probes.

Both probes report kilobytes, the unit ``df`` and ``/proc/meminfo`` use,
so thresholds can be compared with the same ``kB // 1000`` arithmetic as
the container scripts.
"""

from __future__ import annotations

import logging
import shutil

LOGGER = logging.getLogger(__name__)


def free_disk_kb(path: str = "/") -> int:
    """Return the space available to unprivileged users on ``path`` in kB."""
    usage = shutil.disk_usage(path)
    return int(usage.free // 1024)


def available_memory_kb(meminfo_path: str = "/proc/meminfo") -> int:
    """Return ``MemAvailable`` from ``meminfo_path`` in kB.

    Raises :class:`ValueError` when the field is absent, which happens on
    kernels older than 3.14.
    """
    with open(meminfo_path, "r", encoding="ascii", errors="replace") as f:
        for line in f:
            if line.startswith("MemAvailable:"):
                fields = line.split()
                return int(fields[1])
    raise ValueError(f"MemAvailable not found in {meminfo_path}")


def kb_to_mb(kb: int) -> int:
    return int(kb) // 1000
