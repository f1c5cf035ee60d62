from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Protocol

from .build_config import IMAGE_TYPE_LIVEOS
from .errors import UnknownImageType
from .lib.mount import MountManager

if TYPE_CHECKING:
    from .image_spec import ImageSpec


class BuilderState(enum.IntEnum):
    CREATED = 0
    INITIALIZED = 1
    WORKSPACE_READY = 2
    STORAGE_CREATED = 3
    STORAGE_MOUNTED = 4
    ASSETS_COLLECTED = 5
    STORAGE_UNMOUNTED = 6
    FINALIZED = 7


class Builder(Protocol):
    """Contract for image builders. Stages run strictly in this order."""

    state: BuilderState

    def init(self, spec: "ImageSpec") -> None:
        ...

    def prepare_workspace(self) -> None:
        ...

    def create_storage(self) -> None:
        ...

    def mount_storage(self) -> None:
        ...

    @property
    def root_dir(self) -> str:
        ...

    def collect_assets(self) -> None:
        ...

    def unmount_storage(self) -> None:
        ...

    def finalize_image(self) -> None:
        ...

    def cleanup(self) -> None:
        ...


def new_builder(image_type: str, mounts: MountManager, *, workspace: str = "./workspace") -> Builder:
    from .liveos import LiveOSBuilder

    if image_type == IMAGE_TYPE_LIVEOS:
        return LiveOSBuilder(mounts, workspace=workspace)
    raise UnknownImageType(f"Unknown builder: {image_type}")
