# status: complete

import logging
import os
from pathlib import Path

_configured = False


def _default_logs_dir() -> Path:
    override = os.getenv("RELAYCHAT_LOG_DIR")
    if override:
        return Path(override)
    return Path(__file__).resolve().parents[2] / "logs"


def setup_logger(logs_dir=None, level=None):
    """Setup simple logger that outputs to logs/relaychat.log"""
    global _configured
    if _configured:
        return

    logs_dir = Path(logs_dir) if logs_dir else _default_logs_dir()
    logs_dir.mkdir(parents=True, exist_ok=True)

    level_name = (level or os.getenv("RELAYCHAT_LOG_LEVEL", "DEBUG")).upper()
    log_level = getattr(logging, level_name, logging.DEBUG)

    file_handler = logging.FileHandler(logs_dir / "relaychat.log", encoding='utf-8')
    file_handler.setLevel(log_level)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(log_level)

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s | %(levelname)s | %(name)s | %(message)s',
        handlers=[file_handler, stream_handler]
    )

    # urllib3 logs every streamed chunk at DEBUG
    logging.getLogger("urllib3").setLevel(logging.INFO)
    _configured = True


def get_logger(name):
    """Get logger for a module"""
    return logging.getLogger(name)


setup_logger()
