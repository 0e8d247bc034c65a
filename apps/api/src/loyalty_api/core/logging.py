from __future__ import annotations

import json
import logging
import sys
from typing import Any, Dict, TextIO

from loguru import logger
from opentelemetry import trace


# Attributes every stdlib LogRecord carries; anything else was passed via ``extra=``.
_STDLIB_RECORD_FIELDS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message",
    "asctime",
}

_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "httpx": logging.WARNING,
    "apscheduler.executors.default": logging.INFO,
}


class InterceptHandler(logging.Handler):
    """Route stdlib records (uvicorn, sqlalchemy, apscheduler) through Loguru."""

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk past the logging module so Loguru reports the real call site.
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        extra = {key: value for key, value in vars(record).items() if key not in _STDLIB_RECORD_FIELDS}
        message = record.getMessage().replace("{", "{{").replace("}", "}}")
        logger.bind(stdlib_logger=record.name, **extra).opt(
            depth=depth,
            exception=record.exc_info,
        ).log(level, message)


class JsonLogSink:
    """Loguru sink writing one JSON object per line with trace correlation."""

    def __init__(self, *, service_name: str, environment: str, version: str, stream: TextIO | None = None) -> None:
        self._static = {"service": service_name, "environment": environment, "version": version}
        self._stream = stream or sys.stdout

    def __call__(self, message: "logger.Message") -> None:
        self._stream.write(json.dumps(self.build_payload(message.record), default=str) + "\n")
        self._stream.flush()

    def build_payload(self, record: Dict[str, Any]) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "timestamp": record["time"].isoformat(),
            "level": record["level"].name.lower(),
            "message": record["message"],
            "logger": record["extra"].get("stdlib_logger", record["name"]),
            **self._static,
        }

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            payload["trace_id"] = f"{span_context.trace_id:032x}"
            payload["span_id"] = f"{span_context.span_id:016x}"

        payload.update({key: value for key, value in record["extra"].items() if key != "stdlib_logger"})

        if record["exception"] is not None:
            exc_type, exc_value, _ = record["exception"]
            payload["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "value": str(exc_value) if exc_value else None,
            }
        return payload


def configure_logging(*, service_name: str, environment: str, version: str, level: str = "INFO") -> None:
    """Send Loguru and stdlib logging to a single structured JSON sink."""

    logger.remove()
    logger.add(
        JsonLogSink(service_name=service_name, environment=environment, version=version),
        level=level,
        backtrace=False,
        diagnose=False,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name, quiet_level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)


__all__ = ["InterceptHandler", "JsonLogSink", "configure_logging"]
