from __future__ import annotations

import json
import logging
import os
import sys
import time
from typing import Optional


# Server loggers that install their own handlers; they are re-pointed at root
SERVER_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")


class JsonFormatter(logging.Formatter):
    """
    One JSON object per line:
      { "t": 1700000000000, "lvl": "INFO", "name": "sources.proxy", "msg": "Cached upstream image",
        "extra": {"uri": "...", "digest": "..."} }
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "t": int(time.time() * 1000),
            "lvl": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        ctx = getattr(record, "extra", None)
        if isinstance(ctx, dict):
            payload["extra"] = ctx
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        # paths, enums and digests in `extra` are not all JSON-native
        return json.dumps(payload, ensure_ascii=False, default=str)


def _level_from_name(name: str) -> int:
    lvl = logging.getLevelName(name.upper())
    return lvl if isinstance(lvl, int) else logging.INFO


def setup_logging(level: Optional[str] = None) -> None:
    """
    Install the JSON handler on the root logger.

    Safe to call repeatedly: the handler is installed once, and later calls
    with an explicit `level` only change the level. Without one, the level
    comes from env LOG_LEVEL, else INFO.
    """
    root = logging.getLogger()
    if getattr(root, "_iiif_configured", False):
        if level:
            root.setLevel(_level_from_name(level))
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(_level_from_name(level or os.environ.get("LOG_LEVEL") or "INFO"))

    for name in SERVER_LOGGERS:
        lg = logging.getLogger(name)
        lg.handlers.clear()
        lg.propagate = True
    root._iiif_configured = True  # type: ignore[attr-defined]


def get_logger(name: str) -> logging.Logger:
    setup_logging()
    return logging.getLogger(name)
