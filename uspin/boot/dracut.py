from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from ..lib.chroot import chroot_cmd
from .kernel import Kernel

logger = logging.getLogger(__name__)

LIVEOS_MODULES = ["dmsquash-live", "systemd", "pollcdrom"]

LIVEOS_DRIVERS = [
    "squashfs",
    "ext2",
    "vfat",
    "msdos",
    "sr_mod",
    "sd_mod",
    "ehci_hcd",
    "uhci_hcd",
    "xhci_hcd",
    "xhci_pci",
    "ohci_hcd",
    "usb_storage",
    "usbhid",
    "dm_mod",
    "ata_generic",
    "libata",
]


@dataclass
class Dracut:
    kernel: Kernel
    modules: List[str] = field(default_factory=list)
    drivers: List[str] = field(default_factory=list)
    options: List[str] = field(default_factory=list)
    compression: str = "--lz4"
    # Inside the root, must be absolute
    output_filename: str = ""

    def __post_init__(self) -> None:
        if not self.output_filename:
            self.output_filename = f"/boot/initramfs-{self.kernel.version}.img"

    def argv(self) -> List[str]:
        if not self.output_filename.startswith("/"):
            raise ValueError(f"Invalid dracut output name: {self.output_filename}")

        argv = ["dracut", "--no-hostonly-cmdline", "-N", "--kver", self.kernel.version]
        if self.compression:
            argv.append(self.compression)
        if self.modules:
            argv += ["--add", " ".join(self.modules)]
        if self.drivers:
            argv += ["--add-drivers", " ".join(self.drivers)]
        argv += self.options
        argv.append(self.output_filename)
        return argv

    def run(self, root: str, *, timeout: float | None = None) -> None:
        logger.info("Generating initramfs %s for kernel %s", self.output_filename, self.kernel.version)
        chroot_cmd(root, self.argv(), timeout=timeout)
