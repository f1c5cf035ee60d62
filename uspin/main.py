from __future__ import annotations

import argparse
import logging
import os
from typing import Optional

from .builder import new_builder
from .image_spec import load_image_spec
from .lib.mount import MountManager
from .logging_utils import DEFAULT_LOG_PATH, configure_logging
from .orchestrator import ImageSpin
from .pkg import new_manager

logger = logging.getLogger(__name__)


def run(spin_file: str, *, workspace: str = "./workspace") -> None:
    logger.info("Loading .spin file %s", spin_file)
    spec = load_image_spec(spin_file)

    mounts = MountManager()
    builder = new_builder(spec.config.image_type, mounts, workspace=workspace)
    packager = new_manager(spec.config.package_manager, mounts)

    ImageSpin(spec, builder, packager).build()


def main(argv: Optional[list[str]] = None) -> int:
    p = argparse.ArgumentParser(prog="uspin")
    p.add_argument("spin_file", nargs="?", help="Path to the image .spin file")
    p.add_argument("--log", default=DEFAULT_LOG_PATH, help="Path to build log")
    p.add_argument("--workspace", default="./workspace", help="Scratch directory (purged on start)")
    p.add_argument("--debug", action="store_true", help="Show debug output on the console")

    args = p.parse_args(argv)

    if not args.spin_file:
        p.print_usage()
        return 1

    log_path = configure_logging(log_path=args.log, debug=args.debug)
    logger.info("Build log: %s", log_path)

    if os.geteuid() != 0:
        logger.error("uspin requires root privileges (euid=%d)", os.geteuid())
        return 1

    try:
        run(args.spin_file, workspace=args.workspace)
    except Exception as e:
        logger.error("Build failed: %s", e)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
