"""Logging setup shared by the CLI and long-running callers."""
import logging
import os
from datetime import datetime


def setup_logging(level=logging.INFO, log_dir="data/logs"):
    """
    Configure root logging.
    - Console handler at `level`, short format
    - File handler at DEBUG, JSON-like lines in <log_dir>/charsheet_{date}.log
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    os.makedirs(log_dir, exist_ok=True)

    log_file = os.path.join(log_dir, f"charsheet_{datetime.now().strftime('%Y%m%d')}.log")

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    # avoid duplicated handlers on repeated setup
    root.handlers.clear()

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
    root.addHandler(console)

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(
            '{"time":"%(asctime)s","level":"%(levelname)s","module":"%(name)s","message":"%(message)s"}'
        )
    )
    root.addHandler(file_handler)

    logging.getLogger(__name__).debug("Logging initialized -> %s", log_file)
    return log_file
