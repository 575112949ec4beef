from __future__ import annotations

import datetime as _dt
import logging
import sys
import time
from pathlib import Path
from typing import Optional

from .config import MAX_LOG_AGE_DAYS

LOG_FORMAT = "[%(asctime)s.%(msecs)03d] [%(levelname)s] [%(name)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_HANDLER_TAG = "_talkflow_handler"


def log_file_name(day: Optional[_dt.date] = None) -> str:
    day = day or _dt.date.today()
    return f"talkflow-{day.isoformat()}.log"


def prune_old_logs(log_dir: Path, max_age_days: int = MAX_LOG_AGE_DAYS) -> int:
    if not log_dir.exists():
        return 0
    cutoff = time.time() - max_age_days * 86400
    removed = 0
    for path in log_dir.glob("talkflow-*.log"):
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
                removed += 1
        except OSError:
            continue
    return removed


def configure_logging(level: str = "INFO", log_dir: Optional[Path] = None) -> logging.Logger:
    """Install stderr and daily-file handlers on the ``talkflow`` logger.

    Calling this again replaces the handlers installed by a previous call.
    """
    root = logging.getLogger("talkflow")
    root.setLevel(level.upper())
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_TAG, False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    setattr(stream_handler, _HANDLER_TAG, True)
    root.addHandler(stream_handler)

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        prune_old_logs(log_dir)
        file_handler = logging.FileHandler(log_dir / log_file_name(), encoding="utf-8")
        file_handler.setFormatter(formatter)
        setattr(file_handler, _HANDLER_TAG, True)
        root.addHandler(file_handler)

    return root
