from __future__ import annotations

import json
import logging
import re
from datetime import UTC, datetime

_STRUCTURED_FIELDS = (
    "request_id",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "keyword_id",
    "provider",
    "error_code",
    "reason_code",
    "run_status",
    "consumed",
)

# SerpAPI takes the key as a query parameter, so URLs in log lines can carry it.
_SECRET_PARAM = re.compile(r"(?i)\b(api_key|token|key)=([^&\s\"']+)")

# Client libraries that log full request URLs at INFO.
_CHATTY_LOGGERS = ("httpx", "httpcore")


def redact_secrets(text: str) -> str:
    return _SECRET_PARAM.sub(r"\1=***", text)


class RedactingFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_secrets(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "timestamp": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update({name: getattr(record, name) for name in _STRUCTURED_FIELDS if hasattr(record, name)})
        if record.exc_info:
            payload["exception"] = redact_secrets(self.formatException(record.exc_info))
        return json.dumps(payload, default=str)


def configure_logging(*, log_level: str, app_env: str) -> None:
    handler = logging.StreamHandler()
    handler.addFilter(RedactingFilter())
    if app_env.lower() == "production":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root.addHandler(handler)
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
