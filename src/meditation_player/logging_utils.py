"""Logging helpers."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FILE_NAME = "meditation-player.log"
LOG_MAX_BYTES = 1_000_000
LOG_BACKUP_COUNT = 3
CONSOLE_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# Session fields the playback controller attaches via ``extra=``.
PLAYBACK_FIELDS = ("track_index", "generation", "mode")

_RECORD_ATTRS = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime", "taskName"}


class JsonLogFormatter(logging.Formatter):
    """One JSON object per record.

    Playback session fields are grouped under ``playback`` so a log file can
    be filtered by track or load generation; any other ``extra=`` values land
    in ``context``.
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        playback: dict[str, object] = {}
        context: dict[str, object] = {}
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key.startswith("_"):
                continue
            target = playback if key in PLAYBACK_FIELDS else context
            target[key] = _json_safe(value)
        if playback:
            payload["playback"] = playback
        if context:
            payload["context"] = context
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=True)


def _json_safe(value: object) -> object:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_json_safe(item) for item in value]
    return repr(value)


def setup_logging(
    log_dir: Path,
    level: str | int = "INFO",
    log_file: Path | None = None,
    console: bool = True,
) -> None:
    """Route the root logger to a rotating JSON file.

    The Textual view owns the terminal, so the player passes
    ``console=False``; ``doctor`` keeps the console handler.
    """
    numeric = logging.getLevelName(level.upper()) if isinstance(level, str) else level
    if not isinstance(numeric, int):
        numeric = logging.INFO

    log_path = log_file or log_dir / LOG_FILE_NAME
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        log_path,
        maxBytes=LOG_MAX_BYTES,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setFormatter(JsonLogFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric)
    root_logger.handlers.clear()
    root_logger.addHandler(file_handler)
    if console:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        root_logger.addHandler(stream_handler)
