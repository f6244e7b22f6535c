"""
Disk space checks for the working directory.
"""

import logging
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)


@dataclass
class DiskStatus:
    free_mb: int
    has_space: bool


def check_disk_space(path: Union[str, Path], min_free_mb: int) -> DiskStatus:
    """
    Report free space on the filesystem holding `path`.

    The nearest existing parent is measured, so the check works before the
    working directory has been created. An unreadable filesystem is reported
    as having space: the gate must not block submissions on its own errors.
    """
    target = Path(path)
    while not target.exists() and target != target.parent:
        target = target.parent

    try:
        usage = shutil.disk_usage(target)
    except OSError as e:
        logger.warning(f"Could not check disk space for {path}: {e}")
        return DiskStatus(free_mb=-1, has_space=True)

    free_mb = usage.free // (1024 * 1024)
    has_space = free_mb >= min_free_mb
    if not has_space:
        logger.warning(f"Low disk space: {free_mb} MB free, {min_free_mb} MB required")
    return DiskStatus(free_mb=free_mb, has_space=has_space)
