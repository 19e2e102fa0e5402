"""
logging_config.py

Purpose:
  One place to wire stdlib logging for the service.

Handlers:
  - stderr, human readable.
  - `LOG_DIR/enst.jsonl` (optional), one JSON object per line. The demo
    routes tail this file.
"""
from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from typing import Optional

LOG_FILE_NAME = "enst.jsonl"

_TEXT_FORMAT = "[%(asctime)s][%(levelname)s] %(name)s: %(message)s"


class JsonLinesFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def configure_logging(level: str = "INFO", log_dir: Optional[str] = None) -> logging.Logger:
    root = logging.getLogger("enst")
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    # Idempotent: create_app() may run several times in one process (tests).
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    stream = logging.StreamHandler()
    stream.setFormatter(logging.Formatter(_TEXT_FORMAT))
    root.addHandler(stream)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(os.path.join(log_dir, LOG_FILE_NAME), encoding="utf-8")
        file_handler.setFormatter(JsonLinesFormatter())
        root.addHandler(file_handler)

    return root
