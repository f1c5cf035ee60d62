import pytest

from uspin.errors import MountFailure, PathAlreadyTracked, UnknownMount
from uspin.lib import mount as mount_mod
from uspin.lib.command import CmdResult
from uspin.lib.mount import MountManager


class FakeRunner:
    def __init__(self, failing=()):
        self.calls = []
        # argv tuples that should fail
        self.failing = set(failing)

    def __call__(self, argv, *, check=True, timeout=None, **kwargs):
        argv = list(argv)
        self.calls.append(argv)
        rc = 1 if tuple(argv) in self.failing else 0
        if check and rc:
            from uspin.errors import CommandError

            raise CommandError(argv, rc)
        return CmdResult(argv=argv, returncode=rc, stdout="", stderr="")


@pytest.fixture
def runner(monkeypatch):
    r = FakeRunner()
    monkeypatch.setattr(mount_mod, "run_cmd", r)
    monkeypatch.setattr(mount_mod.time, "sleep", lambda s: None)
    return r


def test_mount_registers_absolute_target(runner, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    m = MountManager()
    m.mount("rootfs.img", "rootfs", "ext4", options=["loop"])
    target = str(tmp_path / "rootfs")
    assert runner.calls == [["mount", "-t", "ext4", "-o", "loop", "rootfs.img", target]]
    assert m.targets == [target]
    assert m.is_mounted("rootfs")


def test_mount_same_target_twice_fails(runner):
    m = MountManager()
    m.mount("/dev/loop0", "/mnt/a", "ext4")
    with pytest.raises(PathAlreadyTracked):
        m.mount("/dev/loop1", "/mnt/a/../a", "ext4")
    assert len(runner.calls) == 1


def test_failed_mount_is_not_tracked(monkeypatch):
    r = FakeRunner(failing=[("mount", "--bind", "/proc", "/mnt/proc")])
    monkeypatch.setattr(mount_mod, "run_cmd", r)
    m = MountManager()
    with pytest.raises(MountFailure):
        m.bind_mount("/proc", "/mnt/proc")
    assert m.targets == []


def test_unmount_unknown_path(runner):
    with pytest.raises(UnknownMount):
        MountManager().unmount("/nowhere")


def test_unmount_all_deepest_first(runner):
    m = MountManager()
    for target in ["/a", "/a/b/c", "/a/b"]:
        m.bind_mount("/src", target)
    runner.calls.clear()

    m.unmount_all()

    assert runner.calls == [["umount", "/a/b/c"], ["umount", "/a/b"], ["umount", "/a"]]
    assert m.targets == []


def test_unmount_escalates_to_force_then_lazy(monkeypatch):
    r = FakeRunner(failing=[("umount", "/mnt/x"), ("umount", "-f", "/mnt/x")])
    monkeypatch.setattr(mount_mod, "run_cmd", r)
    sleeps = []
    monkeypatch.setattr(mount_mod.time, "sleep", sleeps.append)

    m = MountManager(max_tries=3, retry_delay=0.25)
    m.bind_mount("/src", "/mnt/x")
    m.unmount("/mnt/x")

    assert r.calls[1:] == [
        ["umount", "/mnt/x"],
        ["umount", "/mnt/x"],
        ["umount", "/mnt/x"],
        ["umount", "-f", "/mnt/x"],
        ["umount", "-l", "/mnt/x"],
    ]
    assert sleeps == [0.25, 0.25, 0.25]
    assert not m.is_mounted("/mnt/x")


def test_unmount_drops_entry_even_when_everything_fails(monkeypatch):
    r = FakeRunner(
        failing=[("umount", "/mnt/x"), ("umount", "-f", "/mnt/x"), ("umount", "-l", "/mnt/x")]
    )
    monkeypatch.setattr(mount_mod, "run_cmd", r)
    monkeypatch.setattr(mount_mod.time, "sleep", lambda s: None)

    m = MountManager()
    m.bind_mount("/src", "/mnt/x")
    with pytest.raises(MountFailure):
        m.unmount("/mnt/x")
    assert m.targets == []


def test_unmount_all_logs_and_continues(monkeypatch):
    r = FakeRunner(
        failing=[("umount", "/a/b"), ("umount", "-f", "/a/b"), ("umount", "-l", "/a/b")]
    )
    monkeypatch.setattr(mount_mod, "run_cmd", r)
    monkeypatch.setattr(mount_mod.time, "sleep", lambda s: None)

    m = MountManager()
    m.bind_mount("/src", "/a")
    m.bind_mount("/src", "/a/b")
    m.unmount_all()

    assert ["umount", "/a"] in r.calls
    assert m.targets == []
