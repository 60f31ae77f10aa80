"""JSON log output and INFO sampling for the shop loggers.

Every shop logger passes an ``event`` name (``stock.movement_recorded``,
``order.status_changed``...) plus identifiers through ``extra``. The
formatter puts them on one JSON line; the filter samples by that event name.
"""

import json
import logging
import random
from datetime import datetime, timezone

# Attributes every LogRecord carries; anything else came in through `extra`
_RECORD_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", None, None).__dict__) | {"message", "asctime"}


def record_event(record: logging.LogRecord) -> str:
    """The record's event name, falling back to the raw message."""
    return getattr(record, "event", None) or str(record.msg)


def record_extras(record: logging.LogRecord) -> dict:
    return {key: value for key, value in record.__dict__.items() if key not in _RECORD_ATTRS}


class JsonFormatter(logging.Formatter):
    """One JSON object per record.

    Base keys are ``time`` (ISO-8601 UTC), ``level``, ``logger``, ``event``
    and ``message``; the record's extras follow. Values json can't encode
    (datetimes, Decimals, model instances) are written as ``str(value)``.
    """

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            "level": record.levelname,
            "logger": record.name,
            "event": record_event(record),
            "message": record.getMessage(),
        }
        for key, value in record_extras(record).items():
            payload.setdefault(key, value)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


class SamplingFilter(logging.Filter):
    """Keep only a `rate` fraction of records at the sampled `levels`.

    Records whose event is listed in `allow_events` are never dropped, nor are
    records at other levels (warnings and errors pass untouched).
    """

    def __init__(self, rate: float = 1.0, levels: list[str] | None = None, allow_events: list[str] | None = None):
        super().__init__()
        self.rate = min(max(float(rate), 0.0), 1.0)
        self.levels = set(levels or ["INFO"])
        self.allow_events = set(allow_events or [])

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        if record.levelname not in self.levels:
            return True
        if record_event(record) in self.allow_events:
            return True
        return random.random() < self.rate
