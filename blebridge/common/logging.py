# blebridge/common/logging.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def configure_logging(level: str | int = "INFO", *, log_file: Optional[Path] = None) -> None:
    """
    Attach console (and optional file) handlers to the root logger (idempotent).
    Kept out of library modules; only the CLI calls this.
    """
    root = logging.getLogger()
    numeric = logging.getLevelName(level.upper()) if isinstance(level, str) else int(level)
    if not isinstance(numeric, int):
        numeric = logging.INFO

    formatter = logging.Formatter(LOG_FORMAT)

    has_console = any(
        isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
        for h in root.handlers
    )
    if not has_console:
        sh = logging.StreamHandler()
        sh.setFormatter(formatter)
        root.addHandler(sh)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        target = str(log_file.resolve())
        if not any(
            isinstance(h, logging.FileHandler) and getattr(h, "baseFilename", None) == target
            for h in root.handlers
        ):
            fh = logging.FileHandler(log_file, encoding="utf-8", delay=True)
            fh.setFormatter(formatter)
            root.addHandler(fh)

    root.setLevel(numeric)
