from __future__ import annotations

import logging
import os
from typing import List, Optional, Sequence

from ..build_config import ImageConfig
from ..lib.command import require_binaries, run_cmd
from ..lib.mount import MountManager
from ..lib.storage import create_device_node
from ..operations import OpKind, Operation
from . import dispatch_operations

logger = logging.getLogger(__name__)

HOST_CACHE_DIR = "/var/cache/eopkg/packages"

ROOT_SKELETON = ["dev", "proc", "sys", "run/lock", "var/lib/eopkg", "var/cache/eopkg/packages"]

# (path, mode, major, minor)
DEVICE_NODES = [
    ("dev/random", "00666", 1, 8),
    ("dev/urandom", "00666", 1, 9),
]


class EopkgManager:
    """Applies operations with the host eopkg against the target root."""

    name = "eopkg"

    def __init__(self, mounts: MountManager) -> None:
        self.mounts = mounts
        self.root: Optional[str] = None
        self.cache_dir: Optional[str] = None
        self.timeout: Optional[float] = None
        self.handlers = {
            OpKind.REPO: self._add_repos,
            OpKind.GROUP: self._install_groups,
            OpKind.PACKAGE: self._install_packages,
        }

    def init(self, config: ImageConfig) -> None:
        require_binaries(["eopkg", "mknod"])
        self.timeout = config.command_timeout

    def _eopkg(self, *args: str) -> None:
        if self.root is None:
            raise RuntimeError("eopkg used before init_root()")
        run_cmd(["eopkg", *args, "-y", "-D", self.root], timeout=self.timeout)

    def init_root(self, root: str) -> None:
        self.root = root
        for d in ROOT_SKELETON:
            os.makedirs(os.path.join(root, d), exist_ok=True)
        for path, mode, major, minor in DEVICE_NODES:
            create_device_node(root, path, mode, major, minor)

        # Share the host package cache so repeat builds don't redownload
        if os.path.isdir(HOST_CACHE_DIR):
            self.cache_dir = os.path.join(root, "var/cache/eopkg/packages")
            self.mounts.bind_mount(HOST_CACHE_DIR, self.cache_dir)

    def apply_operations(self, ops: Sequence[Operation]) -> None:
        dispatch_operations(self.handlers, ops)

    def _add_repos(self, ops: Sequence[Operation]) -> None:
        for op in ops:
            logger.info("Adding repo %s (%s)", op.name, op.uri)
            self._eopkg("add-repo", op.name, op.uri)

    def _install_args(self, ops: Sequence[Operation]) -> List[str]:
        return ["--ignore-safety"] if ops[0].ignore_safety else []

    def _install_groups(self, ops: Sequence[Operation]) -> None:
        args = ["install", *self._install_args(ops)]
        for op in ops:
            args += ["-c", op.name]
        self._eopkg(*args)

    def _install_packages(self, ops: Sequence[Operation]) -> None:
        self._eopkg("install", *self._install_args(ops), *[op.name for op in ops])

    def _release_cache(self) -> None:
        if self.cache_dir and self.mounts.is_mounted(self.cache_dir):
            self.mounts.unmount(self.cache_dir)
        self.cache_dir = None

    def finalize_root(self) -> None:
        self._eopkg("configure-pending")
        self._release_cache()

    def cleanup(self) -> None:
        self._release_cache()
