"""
Logging configuration for NFT to the Future.

JSON log lines for the service, a per-request id carried in a context
variable, and ``events``: one logging call per step of a capsule's life.
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

request_id_var: ContextVar[str] = ContextVar('request_id', default='')

EVENTS_LOGGER = "nftfuture.events"


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, with event fields merged in at top level."""

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        line: Dict[str, Any] = {
            "timestamp": created.strftime('%Y-%m-%dT%H:%M:%S.') + f"{created.microsecond // 1000:03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        rid = request_id_var.get()
        if rid:
            line["request_id"] = rid
        line.update(getattr(record, "extra_fields", None) or {})
        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)
        return json.dumps(line, default=str)


class EventLogger:
    """
    Capsule lifecycle events.

    Each record carries ``event_type`` plus the event's own fields in
    ``extra_fields``; secrets and plaintext never go into them.
    """

    def __init__(self, name: str = EVENTS_LOGGER):
        self._logger = logging.getLogger(name)

    def _emit(self, level: int, event_type: str, summary: str, **fields) -> None:
        if self._logger.isEnabledFor(level):
            fields["event_type"] = event_type
            self._logger.log(level, "%s: %s", event_type, summary, extra={"extra_fields": fields})

    def capsule_requested(self, sender: Optional[str], unlock_at: Optional[int], leaves: int) -> None:
        self._emit(logging.INFO, "CAPSULE_REQUESTED", "Time capsule requested",
                   sender=sender, unlock_at=unlock_at, leaves=leaves)

    def action_completed(self, image_url: Optional[str]) -> None:
        self._emit(logging.INFO, "ACTION_COMPLETED", "Remote action completed", has_image=bool(image_url))

    def action_failed(self, error: str) -> None:
        self._emit(logging.ERROR, "ACTION_FAILED", f"Remote action failed: {error}", error=error)

    def pin_failed(self, what: str, error: str) -> None:
        self._emit(logging.WARNING, "PIN_FAILED", f"Pinning {what} failed", what=what, error=error)

    def capsule_assembled(self, json_url: Optional[str], external_url: Optional[str]) -> None:
        self._emit(logging.INFO, "CAPSULE_ASSEMBLED", "Token metadata assembled",
                   json_url=json_url, external_url=external_url)

    def read_rejected(self, cid: str, reason: str) -> None:
        self._emit(logging.INFO, "READ_REJECTED", f"Read rejected: {reason}", cid=cid, reason=reason)

    def message_revealed(self, cid: str) -> None:
        self._emit(logging.INFO, "MESSAGE_REVEALED", f"Message {cid} revealed", cid=cid)

    def message_locked(self, cid: str, reason: str) -> None:
        self._emit(logging.INFO, "MESSAGE_LOCKED", f"Message {cid} still locked", cid=cid, reason=reason)

    def session_retry(self, attempt: int, error: str) -> None:
        self._emit(logging.WARNING, "SESSION_RETRY",
                   f"Session rejected on attempt {attempt}, re-authenticating", attempt=attempt, error=error)


def configure_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
) -> None:
    """
    Route the root logger to stdout, and optionally a file.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: JSON lines when true, plain text otherwise
        log_file: Extra file destination
    """
    if json_format:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter('%(asctime)s %(levelname)s [%(name)s] %(message)s')

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    for handler in handlers:
        handler.setFormatter(formatter)

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level.upper())


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind ``request_id`` (or a fresh one) to the current context and return it."""
    rid = request_id or uuid.uuid4().hex
    request_id_var.set(rid)
    return rid


events = EventLogger()
