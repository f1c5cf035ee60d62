"""Operations read from a packages file.

Operations come in three kinds, told apart by their ``kind`` field. Runs of
compatible operations are grouped into blocks so a package manager can apply a
whole block in one go.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Union


class OpKind(str, enum.Enum):
    REPO = "repo"
    GROUP = "group"
    PACKAGE = "package"


@dataclass(frozen=True)
class RepoOp:
    name: str
    uri: str
    kind: OpKind = field(default=OpKind.REPO, init=False)


@dataclass(frozen=True)
class GroupOp:
    name: str
    ignore_safety: bool = False
    kind: OpKind = field(default=OpKind.GROUP, init=False)


@dataclass(frozen=True)
class PackageOp:
    name: str
    ignore_safety: bool = False
    kind: OpKind = field(default=OpKind.PACKAGE, init=False)


Operation = Union[RepoOp, GroupOp, PackageOp]


def compatible(a: Operation, b: Operation) -> bool:
    """Whether two operations may share a block.

    Repos never stack, not even with other repos.
    """

    if a.kind == OpKind.REPO or b.kind == OpKind.REPO:
        return False
    if a.kind != b.kind:
        return False
    return a.ignore_safety == b.ignore_safety


@dataclass(frozen=True)
class OpBlock:
    ops: tuple

    def __len__(self) -> int:
        return len(self.ops)

    def __iter__(self):
        return iter(self.ops)

    @property
    def kind(self) -> OpKind:
        return self.ops[0].kind


@dataclass(frozen=True)
class OpStack:
    blocks: tuple = ()

    def __len__(self) -> int:
        return len(self.blocks)

    def __iter__(self):
        return iter(self.blocks)

    @property
    def operations(self) -> List[Operation]:
        return [op for block in self.blocks for op in block]
