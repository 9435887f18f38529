"""Logging configuration for the CalcLang service."""

import logging
import os
import sys
from typing import Optional


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> None:
    """Configure root logging once for the process.

    Args:
        level: logging level name; defaults to ``CALCLANG_LOG_LEVEL`` or INFO.
        log_file: optional path to a log file. If None, logs go to stdout.
    """
    level = (level or os.environ.get("CALCLANG_LOG_LEVEL") or "INFO").upper()
    numeric_level = getattr(logging, level, logging.INFO)

    config = {
        'level': numeric_level,
        'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    }
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        config['filename'] = log_file
    else:
        config['stream'] = sys.stdout

    logging.basicConfig(**config)
    logging.getLogger(__name__).info("Logging initialized at %s level", level)
