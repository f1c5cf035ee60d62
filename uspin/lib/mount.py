from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Dict, List, Sequence

from ..errors import CommandError, CommandTimeout, MountFailure, PathAlreadyTracked, UnknownMount
from .command import run_cmd

logger = logging.getLogger(__name__)


UMOUNT_MAX_TRIES = 3
UMOUNT_RETRY_DELAY = 0.5
UMOUNT_TIMEOUT = 60.0


@dataclass(frozen=True)
class MountEntry:
    source: str
    target: str


class MountManager:
    """Mounts filesystems and tracks them so they can all be torn down.

    One instance is created per process and handed to whoever needs to mount
    something. Targets are keyed by absolute path and may only be tracked once.
    All registry access happens under a lock.
    """

    def __init__(
        self,
        *,
        max_tries: int = UMOUNT_MAX_TRIES,
        retry_delay: float = UMOUNT_RETRY_DELAY,
        umount_timeout: float | None = UMOUNT_TIMEOUT,
    ) -> None:
        self.max_tries = max_tries
        self.retry_delay = retry_delay
        self.umount_timeout = umount_timeout
        self._mounts: Dict[str, MountEntry] = {}
        self._lock = threading.RLock()

    @property
    def targets(self) -> List[str]:
        with self._lock:
            return list(self._mounts)

    def is_mounted(self, target: str) -> bool:
        with self._lock:
            return os.path.abspath(target) in self._mounts

    def mount(
        self,
        source: str,
        target: str,
        filesystem: str | None = None,
        *,
        flags: Sequence[str] = (),
        options: Sequence[str] = (),
    ) -> None:
        dpath = os.path.abspath(target)

        with self._lock:
            if dpath in self._mounts:
                raise PathAlreadyTracked(f"Path already known to MountManager: {dpath}")

            argv = ["mount", *flags]
            if filesystem:
                argv += ["-t", filesystem]
            if options:
                argv += ["-o", ",".join(options)]
            argv += [source, dpath]

            try:
                run_cmd(argv)
            except (CommandError, CommandTimeout) as e:
                raise MountFailure(f"Failed to mount {source} at {dpath}: {e}") from e

            self._mounts[dpath] = MountEntry(source=source, target=dpath)
            logger.info("Mounted %s at %s", source, dpath)

    def bind_mount(self, source: str, target: str, *, options: Sequence[str] = ()) -> None:
        self.mount(source, target, flags=["--bind"], options=options)

    def unmount(self, target: str) -> None:
        dpath = os.path.abspath(target)

        with self._lock:
            entry = self._mounts.get(dpath)
            if entry is None:
                raise UnknownMount(f"Attempting to umount unknown path to manager: {dpath}")
            try:
                ok = self._umount_sync(entry)
            finally:
                # Dropped even when every attempt failed.
                del self._mounts[dpath]

        if not ok:
            raise MountFailure(f"Failed to unmount {dpath}")
        logger.info("Unmounted %s", dpath)

    def unmount_all(self) -> None:
        with self._lock:
            # Longest paths first so nested mounts go before their parents.
            keys = sorted(self._mounts, key=len, reverse=True)
            for key in keys:
                try:
                    self.unmount(key)
                except Exception as e:
                    logger.error("Teardown of %s failed: %s", key, e)

    def _try_umount(self, entry: MountEntry, *flags: str) -> bool:
        try:
            r = run_cmd(["umount", *flags, entry.target], check=False, timeout=self.umount_timeout)
        except CommandTimeout as e:
            logger.warning("%s", e)
            return False
        return r.returncode == 0

    def _umount_sync(self, entry: MountEntry) -> bool:
        for attempt in range(self.max_tries):
            if self._try_umount(entry):
                return True
            logger.warning("umount of %s failed (attempt %d/%d)", entry.target, attempt + 1, self.max_tries)
            time.sleep(self.retry_delay)

        if self._try_umount(entry, "-f"):
            return True
        logger.warning("Falling back to lazy detach of %s", entry.target)
        return self._try_umount(entry, "-l")


def find_mount_points(path: str) -> List[str]:
    """Every mount point strictly below path. Symlinks are not followed."""

    found: List[str] = []
    for dirpath, dirnames, _ in os.walk(path):
        for d in list(dirnames):
            full = os.path.join(dirpath, d)
            if os.path.ismount(full):
                found.append(full)
                # Never walk into somebody else's filesystem
                dirnames.remove(d)
    return found
