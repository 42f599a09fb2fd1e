"""Root logger configuration with JSON line output."""

from __future__ import annotations

import json
import logging
import sys
import time


class JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter.

    Emits one object per line:
      {"t": 1700000000000, "lvl": "INFO", "name": "mod", "msg": "text"}
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "t": int(time.time() * 1000),
            "lvl": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger once with JSON formatting.

    Repeated calls only adjust the level. Unknown level names fall back
    to INFO.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR).
    """
    root = logging.getLogger()
    lvl = logging.getLevelName(level.upper())
    if not isinstance(lvl, int):
        lvl = logging.INFO

    if getattr(root, "_globestamp_configured", False):
        root.setLevel(lvl)
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root.addHandler(handler)
    root.setLevel(lvl)
    root._globestamp_configured = True  # type: ignore[attr-defined]
