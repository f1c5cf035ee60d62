from __future__ import annotations

import logging
import os
from typing import Sequence

from .command import CmdResult, run_cmd
from .mount import MountManager

logger = logging.getLogger(__name__)

CHROOT_BINDS = ("dev", "proc", "sys")


def chroot_cmd(target_root: str, argv: Sequence[str], *, timeout: float | None = None) -> CmdResult:
    """Run a command inside target root."""

    return run_cmd(["chroot", target_root, *argv], timeout=timeout)


def mount_chroot_binds(mounts: MountManager, target_root: str) -> None:
    # Minimal bind mounts for package scripts and initramfs tooling
    for name in CHROOT_BINDS:
        dst = os.path.join(target_root, name)
        os.makedirs(dst, exist_ok=True)
        if not mounts.is_mounted(dst):
            mounts.bind_mount(f"/{name}", dst)


def umount_chroot_binds(mounts: MountManager, target_root: str) -> None:
    for name in reversed(CHROOT_BINDS):
        dst = os.path.join(target_root, name)
        if mounts.is_mounted(dst):
            mounts.unmount(dst)
