"""Completion sentinels.

``opencv_ok`` is created by hand once the operator has checked that the
compiled ``cv2`` imports and sees the GPU.  Its presence tells the
container start-up to re-run the build unattended after an image update.
Nothing in this project ever creates it.
"""

from __future__ import annotations

import os


def is_confirmed(path: str) -> bool:
    return os.path.isfile(path)


def confirmation_command(path: str) -> str:
    return f'echo "yes" > {path}'
