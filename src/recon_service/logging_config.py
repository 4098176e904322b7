from __future__ import annotations

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")
inspection_id: ContextVar[str] = ContextVar("inspection_id", default="")

_TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] cid=%(correlation_id)s %(message)s"


@contextmanager
def inspection_scope(value: str) -> Iterator[None]:
    """Tag every record logged inside the block with ``inspection_id``."""
    token = inspection_id.set(value)
    try:
        yield
    finally:
        inspection_id.reset(token)


class RequestContextFilter(logging.Filter):
    """Copies the request-scoped ids onto each record so any formatter can use them."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id.get()
        record.inspection_id = inspection_id.get()
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        cid = getattr(record, "correlation_id", None) or correlation_id.get()
        iid = getattr(record, "inspection_id", None) or inspection_id.get()
        entry: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": cid,
        }
        if iid:
            entry["inspection_id"] = iid
        if record.exc_info and record.exc_info[1]:
            entry["exception"] = self.formatException(record.exc_info)
        extra_data = getattr(record, "extra_data", None)
        if extra_data is not None:
            entry["data"] = extra_data
        return json.dumps(entry, default=str)


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for existing in list(root.handlers):
        root.removeHandler(existing)

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestContextFilter())
    handler.setFormatter(JSONFormatter() if fmt == "json" else logging.Formatter(_TEXT_FORMAT))
    root.addHandler(handler)
    # httpx logs every marketplace request line at INFO.
    logging.getLogger("httpx").setLevel(logging.WARNING)
