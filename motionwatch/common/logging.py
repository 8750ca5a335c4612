# motionwatch/common/logging.py
from __future__ import annotations
import logging, os
from logging.handlers import RotatingFileHandler
from typing import Optional

LOGGER_NAME = "motionwatch"

_LEVELS = {
    "CRITICAL": logging.CRITICAL,
    "ERROR": logging.ERROR,
    "WARNING": logging.WARNING,
    "INFO": logging.INFO,
    "DEBUG": logging.DEBUG,
}

def _level(name: Optional[str]) -> int:
    name = (name or os.getenv("LOG_LEVEL", "INFO")).upper()
    return _LEVELS.get(name, logging.INFO)

def get_logger(name: str = LOGGER_NAME, log_dir: Optional[str] = None, level: Optional[str] = None) -> logging.Logger:
    """
    The timestamped log stream every pipeline decision is reported on:
      - stdout (console)
      - <log_dir>/<name>.log (rotating: 5MB x 5 files), log_dir from $LOG_DIR or "logs"
    Idempotent: modules share one configured logger per name.
    """
    logger = logging.getLogger(name)
    if logger.handlers:  # already configured
        return logger

    log_dir = log_dir or os.getenv("LOG_DIR", "logs")
    os.makedirs(log_dir, exist_ok=True)

    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s - %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    handlers = [
        RotatingFileHandler(
            filename=os.path.join(log_dir, f"{name}.log"),
            maxBytes=5_000_000,
            backupCount=5,
            encoding="utf-8",
        ),
        logging.StreamHandler(),
    ]
    for h in handlers:
        h.setFormatter(fmt)
        logger.addHandler(h)

    set_level(logger, level)
    logger.propagate = False
    return logger

def set_level(logger: logging.Logger, level: Optional[str]) -> None:
    """Re-level a configured logger; runtime.log_level in the config wins over $LOG_LEVEL."""
    log_level = _level(level)
    logger.setLevel(log_level)
    for h in logger.handlers:
        h.setLevel(log_level)
