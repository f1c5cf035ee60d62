from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from ..build_config import ImageConfig
from ..lib.chroot import mount_chroot_binds, umount_chroot_binds
from ..lib.command import require_binaries, run_cmd
from ..lib.mount import MountManager
from ..operations import OpKind, Operation
from . import dispatch_operations

logger = logging.getLogger(__name__)

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


class AptManager:
    """Bootstraps a Debian-style root with debootstrap and fills it with apt."""

    name = "apt"

    def __init__(self, mounts: MountManager) -> None:
        self.mounts = mounts
        self.root: Optional[str] = None
        self.suite = "stable"
        self.mirror = "http://deb.debian.org/debian"
        self.timeout: Optional[float] = None
        self.handlers = {
            OpKind.REPO: self._add_repos,
            OpKind.GROUP: self._install_tasks,
            OpKind.PACKAGE: self._install_packages,
        }

    def init(self, config: ImageConfig) -> None:
        require_binaries(["debootstrap"])
        self.suite = config.apt_suite
        self.mirror = config.apt_mirror
        self.timeout = config.command_timeout

    def _chroot(self, argv: Sequence[str]) -> None:
        if self.root is None:
            raise RuntimeError("apt used before init_root()")
        run_cmd(["chroot", self.root, "env", *[f"{k}={v}" for k, v in APT_ENV.items()], *argv], timeout=self.timeout)

    def init_root(self, root: str) -> None:
        self.root = root
        run_cmd(["debootstrap", "--variant=minbase", self.suite, root, self.mirror], timeout=self.timeout)
        mount_chroot_binds(self.mounts, root)

    def apply_operations(self, ops: Sequence[Operation]) -> None:
        dispatch_operations(self.handlers, ops)

    def _add_repos(self, ops: Sequence[Operation]) -> None:
        list_dir = Path(self.root or "") / "etc/apt/sources.list.d"
        list_dir.mkdir(parents=True, exist_ok=True)
        for op in ops:
            (list_dir / f"{op.name}.list").write_text(f"deb {op.uri}\n", encoding="utf-8")
            logger.info("Configured apt repo %s: %s", op.name, op.uri)
        self._chroot(["apt-get", "update"])

    def _install(self, names: List[str], ignore_safety: bool) -> None:
        argv = ["apt-get", "install", "-y", "--no-install-recommends"]
        if ignore_safety:
            argv += ["-o", "Dpkg::Options::=--force-depends"]
        self._chroot([*argv, *names])

    def _install_tasks(self, ops: Sequence[Operation]) -> None:
        # apt's task syntax: "name^"
        self._install([f"{op.name}^" for op in ops], ops[0].ignore_safety)

    def _install_packages(self, ops: Sequence[Operation]) -> None:
        self._install([op.name for op in ops], ops[0].ignore_safety)

    def finalize_root(self) -> None:
        self._chroot(["apt-get", "clean"])
        if self.root:
            umount_chroot_binds(self.mounts, self.root)

    def cleanup(self) -> None:
        if self.root:
            umount_chroot_binds(self.mounts, self.root)
