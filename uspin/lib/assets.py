from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)


def is_within(root: str, path: str) -> bool:
    """True when path, with all symlinks resolved, is root or lies below it."""

    real_root = os.path.realpath(root)
    return os.path.commonpath([real_root, os.path.realpath(path)]) == real_root


def copy_file(src: str, dst: str) -> None:
    """Copy a file with its mode and timestamps, creating parent dirs."""

    s = Path(src)
    if not s.exists():
        raise FileNotFoundError(src)
    d = Path(dst)
    d.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(s, d)
    logger.info("Copied %s -> %s", str(s), str(d))
