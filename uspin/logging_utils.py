from __future__ import annotations

import logging
from pathlib import Path
from typing import List

DEFAULT_LOG_PATH = "/var/log/uspin.log"
FALLBACK_LOG_NAME = "uspin.log"

FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
CONSOLE_FORMAT = "%(levelname)s: %(message)s"

_installed: List[logging.Handler] = []


def _open_log(path: Path) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(FILE_FORMAT))
    return handler


def configure_logging(log_path: str = DEFAULT_LOG_PATH, *, debug: bool = False) -> str:
    """Send the full build log to a file and progress to the console.

    The file always gets DEBUG records, which includes the output of every
    command that was run. ``debug`` only makes the console as verbose. When
    log_path cannot be opened (no /var/log in a container, not root yet),
    ./uspin.log is used instead.

    Calling this again replaces the handlers from the previous call. Returns
    the path actually being written.
    """

    root = logging.getLogger()
    for h in _installed:
        root.removeHandler(h)
        h.close()
    _installed.clear()

    requested = Path(log_path)
    try:
        file_handler = _open_log(requested)
        chosen = requested
    except OSError as e:
        chosen = Path.cwd() / FALLBACK_LOG_NAME
        file_handler = _open_log(chosen)
        fallback_reason = str(e)
    else:
        fallback_reason = ""

    console = logging.StreamHandler()
    console.setLevel(logging.DEBUG if debug else logging.INFO)
    console.setFormatter(logging.Formatter(CONSOLE_FORMAT))

    for h in (file_handler, console):
        root.addHandler(h)
        _installed.append(h)
    root.setLevel(logging.DEBUG)

    if fallback_reason:
        logging.getLogger(__name__).warning(
            "Cannot write %s (%s), logging to %s", requested, fallback_reason, chosen
        )
    return str(chosen)
