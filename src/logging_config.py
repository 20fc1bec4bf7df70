"""Logging configuration for WOFlow.

Gate actions (release, completion, reopen) are logged by ``src.gates`` and
stay at INFO even when the root level is raised, so the gate trail survives
a quiet deployment.
"""

import logging
import os
import sys
from pathlib import Path
from typing import Optional

GATE_LOGGER = "src.gates"
NOISY_LOGGERS = ("aiosqlite", "httpx", "schedule")


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[Path] = None,
    gate_log_level: str = "INFO",
) -> logging.Logger:
    """Configure application logging."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger(GATE_LOGGER).setLevel(getattr(logging, gate_log_level.upper()))

    return logging.getLogger("woflow")


def setup_logging_from_env() -> logging.Logger:
    """``WOFLOW_LOG_LEVEL``, ``WOFLOW_LOG_FILE`` and ``WOFLOW_GATE_LOG_LEVEL``."""
    log_file = os.getenv("WOFLOW_LOG_FILE")
    return setup_logging(
        log_level=os.getenv("WOFLOW_LOG_LEVEL", "INFO"),
        log_file=Path(log_file) if log_file else None,
        gate_log_level=os.getenv("WOFLOW_GATE_LOG_LEVEL", "INFO"),
    )
