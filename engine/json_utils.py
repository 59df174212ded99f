import json
import logging
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from enum import Enum


def _default(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    return str(value)


def safe_json_dumps(payload, **kwargs):
    kwargs.setdefault("ensure_ascii", False)
    return json.dumps(payload, default=_default, **kwargs)


def safe_json(payload):
    """Round-trip ``payload`` through JSON so it only holds plain types."""
    return json.loads(safe_json_dumps(payload))


def log_event(level, message, logger=None, **fields):
    payload = {"message": message, **fields}
    target = logger or logging.getLogger()
    try:
        target.log(level, safe_json_dumps(payload, sort_keys=True))
    except Exception as exc:
        target.log(level, f"log_event_serialization_failed: {exc} message={message}")
