import pytest

from uspin.build_config import ImageConfig
from uspin.errors import NotEnoughOps
from uspin.image_spec import ImageSpec
from uspin.operations import OpBlock, OpStack, PackageOp, RepoOp
from uspin.orchestrator import ImageSpin


class FakeBuilder:
    root_dir = "/workspace/rootfs"

    def __init__(self, calls, fail_at=None):
        self.calls = calls
        self.fail_at = fail_at

    def _do(self, name):
        self.calls.append(f"builder.{name}")
        if name == self.fail_at:
            raise RuntimeError(f"{name} failed")

    def init(self, spec):
        self._do("init")

    def prepare_workspace(self):
        self._do("prepare_workspace")

    def create_storage(self):
        self._do("create_storage")

    def mount_storage(self):
        self._do("mount_storage")

    def collect_assets(self):
        self._do("collect_assets")

    def unmount_storage(self):
        self._do("unmount_storage")

    def finalize_image(self):
        self._do("finalize_image")

    def cleanup(self):
        self.calls.append("builder.cleanup")


class FakeManager:
    def __init__(self, calls, fail_at=None):
        self.calls = calls
        self.fail_at = fail_at
        self.blocks = []

    def _do(self, name):
        self.calls.append(f"pkg.{name}")
        if name == self.fail_at:
            raise RuntimeError(f"{name} failed")

    def init(self, config):
        self._do("init")

    def init_root(self, root):
        self.root = root
        self._do("init_root")

    def apply_operations(self, ops):
        if not ops:
            raise NotEnoughOps("empty")
        self.blocks.append(list(ops))
        self._do("apply_operations")

    def finalize_root(self):
        self._do("finalize_root")

    def cleanup(self):
        self.calls.append("pkg.cleanup")


def _spec():
    stack = OpStack(
        blocks=(
            OpBlock(ops=(RepoOp("Solus", "https://example.com/index"),)),
            OpBlock(ops=(PackageOp("nano"), PackageOp("vim"))),
        )
    )
    return ImageSpec(stack=stack, config=ImageConfig(raw={}), base_dir="/")


def test_build_sequence():
    calls = []
    builder = FakeBuilder(calls)
    manager = FakeManager(calls)

    result = ImageSpin(_spec(), builder, manager).build()

    assert calls == [
        "builder.init",
        "pkg.init",
        "builder.prepare_workspace",
        "builder.create_storage",
        "builder.mount_storage",
        "pkg.init_root",
        "pkg.apply_operations",
        "pkg.apply_operations",
        "pkg.finalize_root",
        "pkg.cleanup",
        "builder.collect_assets",
        "builder.unmount_storage",
        "builder.finalize_image",
        "builder.cleanup",
    ]
    assert manager.root == "/workspace/rootfs"
    assert manager.blocks == [[RepoOp("Solus", "https://example.com/index")], [PackageOp("nano"), PackageOp("vim")]]
    assert result.ran_stages[-1] == "finalize_image"


@pytest.mark.parametrize("fail_at", ["prepare_workspace", "mount_storage", "collect_assets", "finalize_image"])
def test_builder_failure_still_cleans_up_once(fail_at):
    calls = []
    with pytest.raises(RuntimeError):
        ImageSpin(_spec(), FakeBuilder(calls, fail_at=fail_at), FakeManager(calls)).build()

    assert calls.count("builder.cleanup") == 1
    assert calls[-1] == "builder.cleanup"
    assert calls.index(f"builder.{fail_at}") == len(calls) - 2


def test_package_failure_cleans_up_both():
    calls = []
    with pytest.raises(RuntimeError):
        ImageSpin(_spec(), FakeBuilder(calls), FakeManager(calls, fail_at="apply_operations")).build()

    assert calls[-2:] == ["pkg.cleanup", "builder.cleanup"]
    assert "builder.collect_assets" not in calls
    assert calls.count("pkg.apply_operations") == 1


def test_init_failure_skips_cleanup():
    calls = []
    with pytest.raises(RuntimeError):
        ImageSpin(_spec(), FakeBuilder(calls, fail_at="init"), FakeManager(calls)).build()
    assert calls == ["builder.init"]
