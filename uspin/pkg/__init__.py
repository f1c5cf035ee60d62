"""Package manager implementations.

A package manager is only used once the builder has a mounted root. Every
method of the contract is called, in order: init, init_root, apply_operations
once per block, finalize_root, cleanup. Implementations should not expect to
live past that.
"""

from __future__ import annotations

import logging
from typing import Callable, Mapping, Protocol, Sequence

from ..build_config import ImageConfig
from ..errors import NotEnoughOps, UnknownOperationVariant, UnknownPackageManager
from ..lib.mount import MountManager
from ..operations import OpKind, Operation

logger = logging.getLogger(__name__)


PACKAGE_MANAGER_EOPKG = "eopkg"
PACKAGE_MANAGER_APT = "apt"


class Manager(Protocol):
    name: str

    def init(self, config: ImageConfig) -> None:
        ...

    def init_root(self, root: str) -> None:
        ...

    def apply_operations(self, ops: Sequence[Operation]) -> None:
        ...

    def finalize_root(self) -> None:
        ...

    def cleanup(self) -> None:
        ...


Handler = Callable[[Sequence[Operation]], None]


def dispatch_operations(handlers: Mapping[OpKind, Handler], ops: Sequence[Operation]) -> None:
    """Hand a block to the handler for its kind.

    Blocks are homogeneous, so the first operation decides.
    """

    ops = list(ops)
    if not ops:
        raise NotEnoughOps("Internal error: 0 operations passed to apply_operations")
    handler = handlers.get(ops[0].kind)
    if handler is None:
        raise UnknownOperationVariant(f"Unknown or unsupported operation requested: {ops[0].kind}")
    handler(ops)


def new_manager(name: str, mounts: MountManager) -> Manager:
    from .apt import AptManager
    from .eopkg import EopkgManager

    if name == PACKAGE_MANAGER_EOPKG:
        return EopkgManager(mounts)
    if name == PACKAGE_MANAGER_APT:
        return AptManager(mounts)
    raise UnknownPackageManager(f"Unknown package manager: {name}")
