"""Parser for .spin package files.

Format:
- Blank lines and lines starting with ``#`` are ignored.
- ``name = uri`` declares a repository.
- ``@name`` installs a group/component, anything else installs a package.
- A leading ``~`` sets ignore_safety for that one line. It must come first,
  i.e. ``~@system.base``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List

from .errors import MissingRepoValue, SpecFormatError
from .operations import GroupOp, OpBlock, OpStack, Operation, PackageOp, RepoOp, compatible

logger = logging.getLogger(__name__)


COMMENT_CHARACTER = "#"
REPO_SPLIT_CHARACTER = "="
SAFETY_CHARACTER = "~"
GROUP_CHARACTER = "@"


class SpecParser:
    def __init__(self) -> None:
        self.blocks: List[OpBlock] = []
        self._current: List[Operation] = []

    def _close_block(self) -> None:
        if self._current:
            self.blocks.append(OpBlock(ops=tuple(self._current)))
        self._current = []

    def push_operation(self, op: Operation) -> None:
        if self._current and not compatible(op, self._current[0]):
            self._close_block()
        self._current.append(op)

    def parse_line(self, line: str, lineno: int) -> None:
        line = line.strip()
        if not line or line.startswith(COMMENT_CHARACTER):
            return

        if REPO_SPLIT_CHARACTER in line:
            name, _, value = line.partition(REPO_SPLIT_CHARACTER)
            name = name.strip()
            value = value.strip()
            if not name:
                raise SpecFormatError(f"Missing name for repo declaration {line!r}", lineno)
            if not value:
                raise MissingRepoValue(f"Missing value for repo declaration {name!r}", lineno)
            self.push_operation(RepoOp(name=name, uri=value))
            return

        name = line
        ignore_safety = name.startswith(SAFETY_CHARACTER)
        if ignore_safety:
            name = name[len(SAFETY_CHARACTER):]
        is_group = name.startswith(GROUP_CHARACTER)
        if is_group:
            name = name[len(GROUP_CHARACTER):]

        # A bare marker would hand an empty name to the package manager
        if not name:
            raise SpecFormatError(f"Missing package or group name in {line!r}", lineno)

        if is_group:
            op: Operation = GroupOp(name=name, ignore_safety=ignore_safety)
        else:
            op = PackageOp(name=name, ignore_safety=ignore_safety)
        self.push_operation(op)

    def finish(self) -> OpStack:
        self._close_block()
        stack = OpStack(blocks=tuple(self.blocks))
        self.blocks = []
        return stack

    def parse(self, path: str) -> OpStack:
        text = Path(path).read_text(encoding="utf-8")
        for lineno, line in enumerate(text.splitlines(), start=1):
            self.parse_line(line, lineno)
        stack = self.finish()
        logger.info("Parsed %s: %d operations in %d blocks", path, len(stack.operations), len(stack))
        return stack


def parse(path: str) -> OpStack:
    return SpecParser().parse(path)
