from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from ..errors import NoKernelFound
from ..lib.assets import is_within

logger = logging.getLogger(__name__)

# Add more as time goes by.
KERNEL_LINKS = ("vmlinuz", "boot/vmlinuz")

MAX_LINK_HOPS = 40


@dataclass
class Kernel:
    version: str
    path: str
    base_name: str
    # Relative to the deploy root, set once copied into place
    target_path: Optional[str] = None
    target_initrd: Optional[str] = None


def _rebase(root: str, chroot_path: str) -> str:
    # normpath stops ".." at "/", same as the kernel does inside a chroot
    return os.path.join(root, os.path.normpath("/" + chroot_path).lstrip("/"))


def resolve_in_root(root: str, path: str) -> str:
    """Follow symlinks in path without escaping root.

    Link targets are interpreted as they would be from inside a chroot at
    root: absolute targets start at root and ".." never climbs above it.
    """

    current = path
    for _ in range(MAX_LINK_HOPS):
        if not os.path.islink(current):
            return current
        link = os.readlink(current)
        if os.path.isabs(link):
            current = _rebase(root, link)
        else:
            parent = os.path.relpath(os.path.dirname(current), root)
            current = _rebase(root, os.path.join(parent, link))
    raise NoKernelFound(f"Too many levels of symbolic links: {path}")


def get_kernel_from_root(root: str) -> Kernel:
    """Find the default kernel in root, i.e. /vmlinuz -> boot/kernel-4.8.10."""

    for rel in KERNEL_LINKS:
        candidate = os.path.join(root, rel)
        if not os.path.lexists(candidate):
            continue
        path = resolve_in_root(root, candidate)
        if not os.path.isfile(path):
            continue
        # Directory links along the way are not rewritten, so check the real file
        if not is_within(root, path):
            logger.warning("Ignoring %s: resolves outside of %s", rel, root)
            continue

        base_name = os.path.basename(path)
        _, sep, version = base_name.partition("-")
        if not sep or not version:
            logger.warning("Don't know how to handle kernel version: %s", base_name)
            continue

        logger.info("Discovered usable kernel %s (version %s)", base_name, version)
        return Kernel(version=version, path=path, base_name=base_name)

    raise NoKernelFound(f"Could not find a valid kernel in {root}")
