"""Structured Logging — JSON lines carrying the acting user and the touched records.

Invariants:
    - Every line has timestamp (record time, UTC), level, logger and message
    - actor_id / actor_role come from the request context, set once per request
      by api/dependencies.get_actor; explicit `extra=` values win over context
    - Record ids (request_id, donor_id, stock_entry_id, requester_id) are emitted
      as strings, counters (transitioned) as numbers

Design Decisions:
    - ContextVar + logging.Filter: service code logs record ids only and never
      threads the actor through every call
    - setup_logging called once on startup via lifespan; text format for local runs
"""

import json
import logging
from contextvars import ContextVar
from datetime import datetime, timezone

_actor: ContextVar[tuple[str, str] | None] = ContextVar("bloodmatch_actor", default=None)

_RECORD_FIELDS = (
    "request_id", "requester_id", "donor_id", "stock_entry_id",
    "actor_id", "actor_role", "error_code", "path", "transitioned",
)


def bind_actor(actor_id, role) -> None:
    """Attach the caller to every log line emitted in the current context."""
    _actor.set((str(actor_id), getattr(role, "value", str(role))))


class ActorContextFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        bound = _actor.get()
        if bound is not None:
            if getattr(record, "actor_id", None) is None:
                record.actor_id = bound[0]
            if getattr(record, "actor_role", None) is None:
                record.actor_role = bound[1]
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        line = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in _RECORD_FIELDS:
            value = getattr(record, key, None)
            if value is None:
                continue
            line[key] = value if isinstance(value, (bool, int, float)) else str(value)
        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)
        return json.dumps(line, ensure_ascii=False)


def setup_logging(level: str = "INFO", fmt: str = "json") -> None:
    handler = logging.StreamHandler()
    handler.addFilter(ActorContextFilter())
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s [%(actor_id)s] %(message)s",
            defaults={"actor_id": "-"},
        ))
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
    # APScheduler logs every job run at INFO
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
