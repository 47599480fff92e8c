# infra/logging.py
"""
Structured JSON event lines for look jobs and source adapters.

Every record carries an ``event`` name and a ``request_id`` (the look id when
the caller has one). Credential-looking fields are redacted before the line
is written so adapter failures can be logged with their full context.
"""
import logging
import json
import uuid

logging.basicConfig(level=logging.INFO, format="%(message)s")

_events = logging.getLogger("runwaytwin.events")

REDACTED_FIELDS = ("token", "api_key", "authorization", "password", "secret")
MAX_MESSAGE_LENGTH = 500


def _record(event: str, fields: dict) -> dict:
    rec = {"event": event, "request_id": fields.pop("request_id", None) or str(uuid.uuid4())}
    for key, value in fields.items():
        if any(marker in key.lower() for marker in REDACTED_FIELDS):
            value = "***"
        elif isinstance(value, str) and len(value) > MAX_MESSAGE_LENGTH:
            value = value[:MAX_MESSAGE_LENGTH] + "..."
        rec[key] = value
    return rec


def log_event(event: str, **kwargs):
    """Log a job or adapter event; generates a request_id if none is given."""
    _events.info(json.dumps(_record(event, kwargs), default=str))


def log_error(error: str, **kwargs):
    """Log a failure event, e.g. an adapter call that raised."""
    rec = _record("error", kwargs)
    rec["error"] = error
    _events.error(json.dumps(rec, default=str))
