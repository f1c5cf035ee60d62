from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Dict

from ..errors import CommandError, ConfigError
from .command import run_cmd

logger = logging.getLogger(__name__)


SQUASHFS_COMPRESSION = {
    "gzip": ["-comp", "gzip"],
    "xz": ["-comp", "xz"],
}


def create_sparse_file(filename: str, megabytes: int) -> None:
    """Create a sparse file of the given size.

    Sizes are decimal megabytes (1000 * 1000), not MiB.
    """

    logger.info("Creating sparse file %s (%d MB)", filename, megabytes)
    size = megabytes * 1000 * 1000
    with open(filename, "wb") as f:
        f.truncate(size)


def _format_ext4(filename: str) -> None:
    run_cmd(["mkfs", "-t", "ext4", "-F", filename])
    # No periodic checks during live boot
    run_cmd(["tune2fs", "-c0", "-i0", filename])


def _e2fsck(filename: str, *flags: str) -> None:
    argv = ["e2fsck", "-y", *flags, filename]
    r = run_cmd(argv, check=False)
    # 1 and 2 mean errors were corrected
    if r.returncode >= 4:
        raise CommandError(argv, r.returncode, r.stderr)


def _check_ext4(filename: str) -> None:
    _e2fsck(filename)
    _e2fsck(filename, "-f")


FORMAT_COMMANDS: Dict[str, Callable[[str], None]] = {
    "ext4": _format_ext4,
}

CHECK_COMMANDS: Dict[str, Callable[[str], None]] = {
    "ext4": _check_ext4,
}


def format_as(filename: str, filesystem: str) -> None:
    """Format an image file. Only ever point this at image files."""

    command = FORMAT_COMMANDS.get(filesystem)
    if command is None:
        raise ConfigError(f"Cannot format with unknown filesystem {filesystem!r}")
    logger.info("Formatting %s as %s", filename, filesystem)
    command(filename)


def check_fs(filename: str, filesystem: str) -> None:
    command = CHECK_COMMANDS.get(filesystem)
    if command is None:
        raise ConfigError(f"Cannot check with unknown filesystem {filesystem!r}")
    logger.info("Checking %s filesystem on %s", filesystem, filename)
    command(filename)


def create_squashfs(path: str, output_file: str, compression: str, *, timeout: float | None = None) -> None:
    comp = SQUASHFS_COMPRESSION.get(compression)
    if comp is None:
        raise ConfigError(f"Unknown compression type: {compression}")

    src = Path(path).absolute()
    argv = ["mksquashfs", str(src), output_file]
    if src.is_dir():
        argv.append("-keep-as-directory")
    argv += comp

    run_cmd(argv, cwd=str(src.parent), timeout=timeout)
    logger.info("Created squashfs %s", output_file)


def create_device_node(root: str, path: str, mode: str, major: int, minor: int) -> None:
    node = os.path.join(root, path)
    if os.path.exists(node):
        return
    os.makedirs(os.path.dirname(node), exist_ok=True)
    run_cmd(["mknod", "-m", mode, node, "c", str(major), str(minor)])
