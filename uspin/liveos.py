from __future__ import annotations

import logging
import os
import shutil
from typing import TYPE_CHECKING, List, Optional

from .boot import Capability, FileType, Loader, get_loader_with_mask, have_loader_with_mask, init_loaders
from .boot.dracut import LIVEOS_DRIVERS, LIVEOS_MODULES, Dracut
from .boot.kernel import Kernel, get_kernel_from_root
from .builder import BuilderState
from .errors import InvalidTransition, NoUsableBootloader, UnsafeWorkspace
from .lib.assets import copy_file, is_within
from .lib.chroot import mount_chroot_binds, umount_chroot_binds
from .lib.command import require_binaries, run_cmd
from .lib.mount import MountManager, find_mount_points
from .lib.storage import check_fs, create_sparse_file, create_squashfs, format_as

if TYPE_CHECKING:
    from .image_spec import ImageSpec

logger = logging.getLogger(__name__)

REQUIRED_BINARIES = ["mksquashfs", "xorriso", "mount", "umount", "chroot"]

FILESYSTEM_BINARIES = {
    "ext4": ["mkfs", "tune2fs", "e2fsck"],
}

# Primary bootloader for an ISO must do ISO and legacy boot
ISO_LOADER_MASK = Capability.ISO | Capability.LEGACY

DRACUT_OUTPUT = "/live.img"


class LiveOSBuilder:
    """Builds LiveCD style ISO images that also boot from USB.

    The root filesystem lives in LiveOS/rootfs.img, which is wrapped in a
    squashfs and shipped on the ISO next to the kernel, initrd and isolinux.
    """

    def __init__(self, mounts: MountManager, *, workspace: str = "./workspace") -> None:
        self.mounts = mounts
        self.state = BuilderState.CREATED
        self.spec: Optional["ImageSpec"] = None
        self.loaders: List[Loader] = []
        self.kernel: Optional[Kernel] = None
        self.timeout: Optional[float] = None

        self.workspace = os.path.abspath(workspace)
        self.rootfs_dir = self.join_path("rootfs")
        self.deploy_dir = self.join_path("deploy")
        # Inside the ISO
        self.liveos_dir = self.join_path("deploy", "LiveOS")
        # Inside the workspace only, squashed into liveos_dir
        self.live_staging_dir = self.join_path("LiveOS")
        self.rootfs_img = self.join_path("LiveOS", "rootfs.img")

    def _advance(self, expected: BuilderState, new: BuilderState) -> None:
        if self.state != expected:
            raise InvalidTransition(
                f"Cannot move to {new.name}: builder is {self.state.name}, expected {expected.name}"
            )
        self.state = new

    @property
    def _config(self):
        if self.spec is None:
            raise InvalidTransition("Builder has not been initialised")
        return self.spec.config

    def init(self, spec: "ImageSpec") -> None:
        if self.state != BuilderState.CREATED:
            raise InvalidTransition(f"Builder already initialised ({self.state.name})")

        config = spec.config
        # Before touching anything on disk
        require_binaries([*REQUIRED_BINARIES, *FILESYSTEM_BINARIES.get(config.liveos_rootfs_format, [])])

        self.loaders = init_loaders(config, config.liveos_bootloaders)
        if not have_loader_with_mask(self.loaders, ISO_LOADER_MASK):
            raise NoUsableBootloader("No usable bootloader found. Need ISO|Legacy")

        self.spec = spec
        self.timeout = config.command_timeout
        self._advance(BuilderState.CREATED, BuilderState.INITIALIZED)

    def join_path(self, *paths: str) -> str:
        return os.path.join(self.workspace, *paths)

    def join_deploy_path(self, *paths: str) -> str:
        return os.path.join(self.deploy_dir, *paths)

    def join_root_path(self, *paths: str) -> str:
        return os.path.join(self.rootfs_dir, *paths)

    @property
    def root_dir(self) -> str:
        return self.rootfs_dir

    @property
    def root_device(self) -> str:
        # ISO loaders find the root by volume label
        return self._config.liveos_label

    @property
    def boot_device(self) -> str:
        return ""

    def _check_purge(self) -> None:
        """Refuse to purge anything that isn't just our own scratch tree."""

        ws = self.workspace
        protected = {"/": "/", "working directory": os.getcwd()}
        if self.spec is not None:
            protected["spin file directory"] = self.spec.base_dir
        for what, path in protected.items():
            if is_within(ws, path):
                raise UnsafeWorkspace(f"Refusing to purge workspace {ws}: it contains the {what} ({path})")

        stale = find_mount_points(ws)
        if stale:
            raise UnsafeWorkspace(
                f"Refusing to purge workspace {ws}: still mounted: {', '.join(sorted(stale))}"
            )

    def prepare_workspace(self) -> None:
        self._advance(BuilderState.INITIALIZED, BuilderState.WORKSPACE_READY)

        if os.path.isdir(self.workspace):
            self._check_purge()
            logger.info("Purging existing workspace %s", self.workspace)
            shutil.rmtree(self.workspace)

        for d in [self.workspace, self.rootfs_dir, self.deploy_dir, self.liveos_dir, self.live_staging_dir]:
            os.makedirs(d, mode=0o755, exist_ok=True)

    def create_storage(self) -> None:
        self._advance(BuilderState.WORKSPACE_READY, BuilderState.STORAGE_CREATED)
        config = self._config
        create_sparse_file(self.rootfs_img, config.liveos_rootfs_size)
        format_as(self.rootfs_img, config.liveos_rootfs_format)

    def mount_storage(self) -> None:
        self._advance(BuilderState.STORAGE_CREATED, BuilderState.STORAGE_MOUNTED)
        self.mounts.mount(
            self.rootfs_img,
            self.rootfs_dir,
            self._config.liveos_rootfs_format,
            options=["loop"],
        )

    def collect_assets(self) -> None:
        """Copy the kernel out of the root and build a live initrd for it."""

        self._advance(BuilderState.STORAGE_MOUNTED, BuilderState.ASSETS_COLLECTED)

        kernel = get_kernel_from_root(self.rootfs_dir)
        self.kernel = kernel

        bootbase = self._config.liveos_bootdir
        bootdir = self.join_deploy_path(bootbase)
        os.makedirs(bootdir, mode=0o755, exist_ok=True)

        copy_file(kernel.path, os.path.join(bootdir, "kernel"))
        # Required by the bootloaders
        kernel.target_path = os.path.join(bootbase, "kernel")
        kernel.target_initrd = os.path.join(bootbase, "initrd.img")

        drac = Dracut(
            kernel=kernel,
            modules=list(LIVEOS_MODULES),
            drivers=list(LIVEOS_DRIVERS),
            output_filename=DRACUT_OUTPUT,
        )
        mount_chroot_binds(self.mounts, self.rootfs_dir)
        try:
            drac.run(self.rootfs_dir, timeout=self.timeout)
        finally:
            umount_chroot_binds(self.mounts, self.rootfs_dir)

        drac_source = self.join_root_path(DRACUT_OUTPUT.lstrip("/"))
        copy_file(drac_source, os.path.join(bootdir, "initrd.img"))
        os.remove(drac_source)

    def unmount_storage(self) -> None:
        # Last point the storage is directly accessible, so check it here.
        self._advance(BuilderState.ASSETS_COLLECTED, BuilderState.STORAGE_UNMOUNTED)
        self.mounts.unmount(self.rootfs_dir)
        check_fs(self.rootfs_img, self._config.liveos_rootfs_format)

    def _primary_loader(self) -> Loader:
        loader = get_loader_with_mask(self.loaders, ISO_LOADER_MASK)
        if loader is None:
            raise NoUsableBootloader("No usable bootloader found. Need ISO|Legacy")
        return loader

    def install_bootloader(self) -> None:
        self._primary_loader().install(ISO_LOADER_MASK, self)

    def iso_command(self) -> List[str]:
        config = self._config
        output = os.path.abspath(config.liveos_filename)
        volume_id = config.liveos_label
        argv = [
            "xorriso",
            "-no_rc",  # startup files may skew ISO generation
            "-as",
            "mkisofs",
            "-iso-level",
            "3",
            "-full-iso9660-filenames",
            "-volid",
            volume_id,
            "-appid",
            volume_id,
        ]

        loader = self._primary_loader()
        bootbin = loader.get_special_file(FileType.BOOT_BINARY)
        bootcat = loader.get_special_file(FileType.BOOT_CATALOG)
        mbr = loader.get_special_file(FileType.BOOT_MBR)

        if bootbin and bootcat:
            argv += [
                "-eltorito-boot",
                bootbin,
                "-eltorito-catalog",
                bootcat,
                "-no-emul-boot",
                "-boot-load-size",
                "4",
                "-boot-info-table",
            ]
        # USB booting
        if mbr:
            argv += ["-isohybrid-mbr", mbr]

        argv += ["-output", output, "."]
        return argv

    def spin_iso(self) -> None:
        run_cmd(self.iso_command(), cwd=self.deploy_dir, timeout=self.timeout)
        logger.info("Wrote %s", os.path.abspath(self._config.liveos_filename))

    def finalize_image(self) -> None:
        self._advance(BuilderState.STORAGE_UNMOUNTED, BuilderState.FINALIZED)

        squash = os.path.join(self.liveos_dir, "squashfs.img")
        create_squashfs(self.live_staging_dir, squash, self._config.liveos_compression, timeout=self.timeout)
        self.install_bootloader()
        self.spin_iso()

    def cleanup(self) -> None:
        """Tear down every tracked mount. Never raises."""

        logger.info("Cleaning up")
        try:
            self.mounts.unmount_all()
        except Exception:
            logger.exception("Cleanup failed")
