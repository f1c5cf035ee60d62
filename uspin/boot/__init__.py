"""Bootloader management.

Loaders advertise a set of capabilities. Builders ask for the first configured
loader that supports every capability they need.
"""

from __future__ import annotations

import enum
import logging
from typing import List, Optional, Protocol, Sequence

from ..build_config import ImageConfig
from ..errors import UnknownLoader
from .kernel import Kernel

logger = logging.getLogger(__name__)


class Capability(enum.IntFlag):
    UEFI = 1 << 0
    LEGACY = 1 << 1
    ISO = 1 << 2
    RAW = 1 << 3


class FileType(str, enum.Enum):
    # Created by xorriso, not a real file on the host
    BOOT_CATALOG = "boot.cat"
    # isolinux.bin style El Torito binary
    BOOT_BINARY = "boot.bin"
    # Hybrid MBR so the ISO also boots from USB
    BOOT_MBR = "boot.mbr"


class ConfigurationSource(Protocol):
    """Implemented by builders so loaders can find their way around."""

    def join_root_path(self, *paths: str) -> str:
        ...

    def join_deploy_path(self, *paths: str) -> str:
        ...

    @property
    def root_device(self) -> str:
        ...

    @property
    def boot_device(self) -> str:
        ...

    @property
    def kernel(self) -> Optional[Kernel]:
        ...


class Loader(Protocol):
    name: str

    def init(self, config: ImageConfig) -> None:
        ...

    @property
    def capabilities(self) -> Capability:
        ...

    def install(self, mode: Capability, source: ConfigurationSource) -> None:
        ...

    def get_special_file(self, file_type: FileType) -> str:
        ...


def new_loader(name: str) -> Loader:
    # Local import, syslinux needs Capability from this module.
    from .syslinux import SyslinuxLoader

    if name == "syslinux":
        return SyslinuxLoader()
    raise UnknownLoader(f"Unknown bootloader configured: {name}")


def init_loaders(config: ImageConfig, names: Sequence[str]) -> List[Loader]:
    """Create and initialise each configured loader, in order.

    Any failure aborts the whole set.
    """

    loaders: List[Loader] = []
    for name in names:
        loader = new_loader(name)
        loader.init(config)
        logger.info("Initialised bootloader %s (%s)", name, loader.capabilities)
        loaders.append(loader)
    return loaders


def get_loader_with_mask(loaders: Sequence[Loader], mask: Capability) -> Optional[Loader]:
    """Return the first loader supporting every bit in mask."""

    for loader in loaders:
        if loader.capabilities & mask == mask:
            return loader
    return None


def have_loader_with_mask(loaders: Sequence[Loader], mask: Capability) -> bool:
    return get_loader_with_mask(loaders, mask) is not None


__all__ = [
    "Capability",
    "ConfigurationSource",
    "FileType",
    "Kernel",
    "Loader",
    "get_loader_with_mask",
    "have_loader_with_mask",
    "init_loaders",
    "new_loader",
]
