"""Logging configuration.

Console logging uses ``logging.basicConfig``.  Progress milestones are
also sent to the system log under the ``EventServer`` tag, where the
container's other services log, so ``grep EventServer /var/log/syslog``
shows how far a build got.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

LOGGER = logging.getLogger(__name__)

# Progress milestones; kept at INFO or below whatever the console level is.
MILESTONE_LOGGER_NAME = "opencv_build"


def configure_logging(
    level: str = "INFO",
    syslog_tag: Optional[str] = "EventServer",
    syslog_address: Optional[str] = "/dev/log",
) -> Optional[logging.Handler]:
    """Configure the root logger and attach syslog when available.

    Returns the syslog handler, or ``None`` when syslog is not used.
    """
    root_level = getattr(logging, str(level).upper(), logging.INFO)
    logging.basicConfig(level=root_level, format=LOG_FORMAT)
    logging.getLogger(MILESTONE_LOGGER_NAME).setLevel(min(root_level, logging.INFO))
    if not syslog_tag or not syslog_address:
        return None
    return attach_syslog(syslog_tag, syslog_address)


def attach_syslog(tag: str, address: str, level: int = logging.INFO) -> Optional[logging.Handler]:
    if not os.path.exists(address):
        LOGGER.debug("Syslog socket %s not found; logging to console only", address)
        return None
    try:
        handler = logging.handlers.SysLogHandler(address=address)
    except OSError as exc:
        LOGGER.warning("Cannot connect to syslog at %s: %s", address, exc)
        return None
    handler.ident = f"{tag}: "
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logging.getLogger().addHandler(handler)
    return handler
