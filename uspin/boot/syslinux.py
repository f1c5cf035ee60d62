from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from ..build_config import ImageConfig
from ..errors import HostPrerequisiteMissing, UnsupportedCapability
from ..lib.assets import copy_file
from . import Capability, ConfigurationSource, FileType

logger = logging.getLogger(__name__)

# Solus/Fedora, Arch, then Debian's split layout
DEFAULT_ASSET_DIRS = [
    "/usr/share/syslinux",
    "/usr/lib/syslinux/bios",
    "/usr/lib/ISOLINUX",
    "/usr/lib/syslinux/modules/bios",
    "/usr/lib/syslinux/mbr",
]

ISOLINUX_BIN = "isolinux.bin"
LDLINUX_C32 = "ldlinux.c32"
ISOHYBRID_MBR = "isohdpfx.bin"

# Copied into the ISO; the MBR is read by xorriso straight from the host.
DEPLOY_ASSETS = [ISOLINUX_BIN, LDLINUX_C32]

ISOLINUX_DIR = "isolinux"

ISOLINUX_CFG = (
    "PROMPT 0\n"
    "TIMEOUT 50\n"
    "DEFAULT live\n\n"
    "LABEL live\n"
    "  MENU LABEL Boot {title}\n"
    "  KERNEL /{kernel}\n"
    "  APPEND initrd=/{initrd} root=live:CDLABEL={label} ro rd.live.image quiet\n"
)


class SyslinuxLoader:
    """isolinux for ISO images (legacy BIOS only)."""

    name = "syslinux"

    def __init__(self) -> None:
        self.config: Optional[ImageConfig] = None
        self.assets: Dict[str, str] = {}

    @property
    def capabilities(self) -> Capability:
        return Capability.ISO | Capability.LEGACY

    def _search_dirs(self, config: ImageConfig) -> List[str]:
        return [*config.syslinux_asset_dirs, *DEFAULT_ASSET_DIRS]

    def init(self, config: ImageConfig) -> None:
        """Make sure every host-side asset we need is present."""

        self.config = config
        dirs = self._search_dirs(config)
        for asset in [*DEPLOY_ASSETS, ISOHYBRID_MBR]:
            found = next((os.path.join(d, asset) for d in dirs if os.path.isfile(os.path.join(d, asset))), None)
            if found is None:
                raise HostPrerequisiteMissing(
                    f"syslinux asset {asset} not found. Tried: {', '.join(dirs)}"
                )
            self.assets[asset] = found
        logger.debug("syslinux assets: %s", self.assets)

    def render_config(self, source: ConfigurationSource) -> str:
        kernel = source.kernel
        if kernel is None or not kernel.target_path or not kernel.target_initrd:
            raise RuntimeError("No kernel has been collected for the boot menu")
        title = self.config.branding_title if self.config else "Linux"
        return ISOLINUX_CFG.format(
            title=title,
            kernel=kernel.target_path,
            initrd=kernel.target_initrd,
            label=source.root_device,
        )

    def install(self, mode: Capability, source: ConfigurationSource) -> None:
        if not mode & Capability.ISO:
            raise UnsupportedCapability(f"syslinux cannot install with mode {mode!r}")
        if not self.assets:
            raise RuntimeError("syslinux loader used before init()")

        for asset in DEPLOY_ASSETS:
            copy_file(self.assets[asset], source.join_deploy_path(ISOLINUX_DIR, asset))

        cfg = Path(source.join_deploy_path(ISOLINUX_DIR, "isolinux.cfg"))
        cfg.write_text(self.render_config(source), encoding="utf-8")
        logger.info("Wrote isolinux config: %s", str(cfg))

    def get_special_file(self, file_type: FileType) -> str:
        if file_type == FileType.BOOT_CATALOG:
            return f"{ISOLINUX_DIR}/boot.cat"
        if file_type == FileType.BOOT_BINARY:
            return f"{ISOLINUX_DIR}/{ISOLINUX_BIN}"
        if file_type == FileType.BOOT_MBR:
            return self.assets.get(ISOHYBRID_MBR, "")
        return ""
