import os

import pytest

from uspin.boot import (
    Capability,
    FileType,
    get_loader_with_mask,
    have_loader_with_mask,
    init_loaders,
    new_loader,
)
from uspin.boot.dracut import Dracut
from uspin.boot.kernel import Kernel, get_kernel_from_root
from uspin.boot.syslinux import SyslinuxLoader
from uspin.build_config import ImageConfig
from uspin.errors import HostPrerequisiteMissing, NoKernelFound, UnknownLoader, UnsupportedCapability


class FakeLoader:
    def __init__(self, name, caps):
        self.name = name
        self.capabilities = caps


def _config(tmp_path, **syslinux):
    return ImageConfig(
        raw={
            "image": {"type": "liveos", "packages": "packages"},
            "branding": {"title": "Test OS"},
            "liveos": {"filename": "out.iso", "label": "TestOS"},
            "syslinux": syslinux,
        }
    )


def _syslinux_assets(tmp_path):
    d = tmp_path / "syslinux"
    d.mkdir()
    for name in ["isolinux.bin", "ldlinux.c32", "isohdpfx.bin"]:
        (d / name).write_bytes(b"\x00" * 16)
    return d


def test_mask_selection():
    loaders = [FakeLoader("iso", Capability.ISO | Capability.LEGACY)]
    assert get_loader_with_mask(loaders, Capability.ISO | Capability.LEGACY) is loaders[0]
    assert have_loader_with_mask(loaders, Capability.ISO)
    assert get_loader_with_mask(loaders, Capability.ISO | Capability.LEGACY | Capability.UEFI) is None


def test_mask_selection_first_match_wins():
    loaders = [
        FakeLoader("uefi", Capability.UEFI),
        FakeLoader("a", Capability.ISO | Capability.LEGACY | Capability.UEFI),
        FakeLoader("b", Capability.ISO | Capability.LEGACY),
    ]
    assert get_loader_with_mask(loaders, Capability.ISO).name == "a"
    assert not have_loader_with_mask(loaders, Capability.RAW)


def test_unknown_loader():
    with pytest.raises(UnknownLoader):
        new_loader("grub")


def test_syslinux_init_missing_assets(tmp_path):
    empty = tmp_path / "empty"
    empty.mkdir()
    loader = SyslinuxLoader()
    loader._search_dirs = lambda config: [str(empty)]
    with pytest.raises(HostPrerequisiteMissing):
        loader.init(_config(tmp_path))


def test_init_loaders_and_special_files(tmp_path):
    assets = _syslinux_assets(tmp_path)
    loaders = init_loaders(_config(tmp_path, asset_dirs=[str(assets)]), ["syslinux"])
    loader = loaders[0]

    assert loader.capabilities == Capability.ISO | Capability.LEGACY
    assert loader.get_special_file(FileType.BOOT_CATALOG) == "isolinux/boot.cat"
    assert loader.get_special_file(FileType.BOOT_BINARY) == "isolinux/isolinux.bin"
    assert loader.get_special_file(FileType.BOOT_MBR) == str(assets / "isohdpfx.bin")


class FakeSource:
    def __init__(self, deploy):
        self.deploy = deploy
        self.root_device = "TestOS"
        self.boot_device = ""
        self.kernel = Kernel(
            version="4.9.0",
            path="/x",
            base_name="kernel-4.9.0",
            target_path="boot/kernel",
            target_initrd="boot/initrd.img",
        )

    def join_deploy_path(self, *paths):
        return os.path.join(self.deploy, *paths)

    def join_root_path(self, *paths):
        return os.path.join("/nonexistent", *paths)


def test_syslinux_install(tmp_path):
    assets = _syslinux_assets(tmp_path)
    loader = SyslinuxLoader()
    loader.init(_config(tmp_path, asset_dirs=[str(assets)]))
    deploy = tmp_path / "deploy"

    loader.install(Capability.ISO | Capability.LEGACY, FakeSource(str(deploy)))

    assert (deploy / "isolinux/isolinux.bin").exists()
    assert (deploy / "isolinux/ldlinux.c32").exists()
    assert not (deploy / "isolinux/isohdpfx.bin").exists()
    cfg = (deploy / "isolinux/isolinux.cfg").read_text()
    assert "MENU LABEL Boot Test OS" in cfg
    assert "KERNEL /boot/kernel" in cfg
    assert "initrd=/boot/initrd.img root=live:CDLABEL=TestOS" in cfg


def test_syslinux_rejects_raw_install(tmp_path):
    loader = SyslinuxLoader()
    loader.init(_config(tmp_path, asset_dirs=[str(_syslinux_assets(tmp_path))]))
    with pytest.raises(UnsupportedCapability):
        loader.install(Capability.RAW, FakeSource(str(tmp_path / "deploy")))


def test_kernel_from_absolute_symlink(tmp_path):
    root = tmp_path / "root"
    (root / "boot").mkdir(parents=True)
    (root / "boot/kernel-4.8.10-1.current").write_bytes(b"k")
    os.symlink("/boot/kernel-4.8.10-1.current", root / "vmlinuz")

    kernel = get_kernel_from_root(str(root))

    assert kernel.version == "4.8.10-1.current"
    assert kernel.base_name == "kernel-4.8.10-1.current"
    assert kernel.path == str(root / "boot/kernel-4.8.10-1.current")


def test_kernel_from_relative_boot_symlink(tmp_path):
    root = tmp_path / "root"
    (root / "boot").mkdir(parents=True)
    (root / "boot/vmlinuz-6.1.0-13-amd64").write_bytes(b"k")
    os.symlink("vmlinuz-6.1.0-13-amd64", root / "boot/vmlinuz")

    assert get_kernel_from_root(str(root)).version == "6.1.0-13-amd64"


def test_kernel_link_cannot_climb_out_of_root(tmp_path):
    root = tmp_path / "rootfs"
    root.mkdir()
    (tmp_path / "host").mkdir()
    (tmp_path / "host/kernel-9.9.9").write_bytes(b"host")
    os.symlink("../host/kernel-9.9.9", root / "vmlinuz")

    with pytest.raises(NoKernelFound):
        get_kernel_from_root(str(root))


def test_kernel_dotdot_stops_at_root(tmp_path):
    root = tmp_path / "rootfs"
    (root / "boot").mkdir(parents=True)
    (root / "boot/kernel-5.0.1").write_bytes(b"k")
    (tmp_path / "boot").mkdir()
    (tmp_path / "boot/kernel-5.0.1").write_bytes(b"host")
    os.symlink("../../boot/kernel-5.0.1", root / "vmlinuz")

    kernel = get_kernel_from_root(str(root))

    assert kernel.path == str(root / "boot/kernel-5.0.1")


def test_kernel_behind_directory_link_outside_root(tmp_path):
    root = tmp_path / "rootfs"
    root.mkdir()
    host = tmp_path / "host"
    host.mkdir()
    (host / "kernel-9.9.9").write_bytes(b"host")
    os.symlink("kernel-9.9.9", host / "vmlinuz")
    os.symlink(str(host), root / "boot")

    with pytest.raises(NoKernelFound):
        get_kernel_from_root(str(root))


def test_no_kernel(tmp_path):
    with pytest.raises(NoKernelFound):
        get_kernel_from_root(str(tmp_path))


def test_dracut_argv():
    k = Kernel(version="4.9.0", path="/boot/kernel-4.9.0", base_name="kernel-4.9.0")
    d = Dracut(kernel=k, modules=["dmsquash-live"], drivers=["squashfs", "sr_mod"], output_filename="/live.img")
    assert d.argv() == [
        "dracut",
        "--no-hostonly-cmdline",
        "-N",
        "--kver",
        "4.9.0",
        "--lz4",
        "--add",
        "dmsquash-live",
        "--add-drivers",
        "squashfs sr_mod",
        "/live.img",
    ]
    assert Dracut(kernel=k).output_filename == "/boot/initramfs-4.9.0.img"
