from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone

from .context import conversation_id_ctx, request_id_ctx, user_id_ctx

# Third-party loggers that are too chatty at INFO. httpx also logs full URLs,
# which carry the SerpAPI key as a query parameter.
_QUIET_LOGGERS = ("httpx", "httpcore", "urllib3", "PIL")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": request_id_ctx.get(),
        }
        user_id = user_id_ctx.get()
        if user_id:
            payload["user_id"] = user_id
        conversation_id = conversation_id_ctx.get()
        if conversation_id:
            payload["conversation_id"] = conversation_id
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def configure_logging(level: str | int = logging.INFO) -> None:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper() if isinstance(level, str) else level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
