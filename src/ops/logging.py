"""
Logging setup: one rotating log file plus the console.
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler

# Libraries that log every request or download chunk at INFO.
NOISY_LOGGERS = ("uvicorn.access", "PIL", "urllib3")


def setup_logging(log_path: str, log_level: str, max_bytes: int = 5 * 1024 * 1024, backups: int = 3) -> None:
    os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(threadName)s - %(levelname)s - %(message)s",
        handlers=[
            RotatingFileHandler(log_path, maxBytes=max_bytes, backupCount=backups),
            logging.StreamHandler(),
        ],
    )
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
