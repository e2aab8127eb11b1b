import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

logger = logging.getLogger("orderwatch")

LOG_FILE: Optional[Path] = None


def setup_logging(log_dir: Path, diag: bool = False) -> Path:
    """Send watcher logs to stdout and to a timestamped file under log_dir. Returns the file path."""
    global LOG_FILE
    log_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    LOG_FILE = log_dir / f"terminal_{timestamp}.log"

    formatter = logging.Formatter("[%(asctime)s] %(levelname)s - %(message)s", "%H:%M:%S")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    file_handler = logging.FileHandler(LOG_FILE, mode="w", encoding="utf-8")
    file_handler.setFormatter(formatter)
    stream_handler = logging.StreamHandler(stream=sys.stdout)
    stream_handler.setFormatter(formatter)
    logger.addHandler(file_handler)
    logger.addHandler(stream_handler)
    logger.setLevel(logging.DEBUG if diag else logging.INFO)
    logger.propagate = False
    return LOG_FILE


def log(msg: str) -> None:
    logger.info(f"[WATCH] {msg}")


def log_warning(msg: str) -> None:
    logger.warning(f"[WATCH] ⚠️ {msg}")


def log_error(msg: str, exc_info: bool = False) -> None:
    logger.error(f"[WATCH] ❌ {msg}", exc_info=exc_info)


def log_debug(msg: str) -> None:
    """Only emitted when WATCH_DIAG is enabled."""
    logger.debug(f"[WATCH] 🔧 {msg}")
