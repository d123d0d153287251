"""Central logging configuration."""
from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
import os
import sys
from pathlib import Path

LOG_DIR = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")) / "linkedit" / "logs"
LOG_FILE = LOG_DIR / "linkedit.log"


def configure_logging(level: int | str = logging.INFO, log_dir: Path | None = None) -> Path:
    """Configure both console and rotating file logging.

    Returns the path of the log file in use.
    """

    target_dir = log_dir or LOG_DIR
    target_dir.mkdir(parents=True, exist_ok=True)
    log_file = target_dir / LOG_FILE.name

    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)

    file_handler = RotatingFileHandler(log_file, maxBytes=512_000, backupCount=5)
    file_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    root_logger.setLevel(level)

    if not root_logger.handlers:
        root_logger.addHandler(console_handler)
        root_logger.addHandler(file_handler)
    return log_file

