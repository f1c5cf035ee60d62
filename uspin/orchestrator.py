from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Sequence, Tuple

from .builder import Builder
from .image_spec import ImageSpec
from .pkg import Manager

logger = logging.getLogger(__name__)


Stage = Tuple[str, Callable[[], None]]


@dataclass
class BuildResult:
    ran_stages: List[str] = field(default_factory=list)


def run_stages(stages: Sequence[Stage], result: BuildResult) -> None:
    """Run stages in order; the first failure stops the rest."""

    for stage_id, fn in stages:
        logger.info("Running stage %s", stage_id)
        fn()
        result.ran_stages.append(stage_id)


class ImageSpin:
    """Drives one image build from start to finish.

    The builder's cleanup runs exactly once, whatever happens after both the
    builder and the package manager have been initialised.
    """

    def __init__(self, spec: ImageSpec, builder: Builder, packager: Manager) -> None:
        self.spec = spec
        self.builder = builder
        self.packager = packager

    def install_packages(self) -> None:
        try:
            self.packager.init_root(self.builder.root_dir)
            for block in self.spec.stack:
                logger.info("Applying %d %s operation(s)", len(block), block.kind.value)
                self.packager.apply_operations(list(block))
            logger.info("Finalizing package operations")
            self.packager.finalize_root()
        finally:
            try:
                self.packager.cleanup()
            except Exception:
                logger.exception("Package manager cleanup failed")

    def build(self) -> BuildResult:
        result = BuildResult()

        run_stages(
            [
                ("init_builder", lambda: self.builder.init(self.spec)),
                ("init_package_manager", lambda: self.packager.init(self.spec.config)),
            ],
            result,
        )

        try:
            run_stages(
                [
                    ("prepare_workspace", self.builder.prepare_workspace),
                    ("create_storage", self.builder.create_storage),
                    ("mount_storage", self.builder.mount_storage),
                    ("install_packages", self.install_packages),
                    ("collect_assets", self.builder.collect_assets),
                    ("unmount_storage", self.builder.unmount_storage),
                    ("finalize_image", self.builder.finalize_image),
                ],
                result,
            )
        except Exception:
            logger.exception("Image build failed")
            raise
        finally:
            self.builder.cleanup()

        return result
