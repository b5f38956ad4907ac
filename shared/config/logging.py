"""
Structured logging for the presence gateway.

Every logger handed out by get_logger() accepts keyword fields:

    logger.info("User joined", connection_id=conn.id, room_length=5)

The fields travel on the record as ``record.fields`` and are rendered by the
formatter picked in setup_logging(): one JSON object per line in production,
a coloured ``key=value`` line everywhere else. Records also carry the id of
the connection being served (shared.infrastructure.correlation).
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from shared.config.settings import settings


def _fields(record: logging.LogRecord) -> dict[str, Any]:
    return getattr(record, "fields", None) or {}


def _bound_connection(record: logging.LogRecord) -> str | None:
    connection_id = getattr(record, "connection_id", None)
    if connection_id and connection_id != "-":
        return connection_id
    return None


class JsonLineFormatter(logging.Formatter):
    """One flat JSON object per record, for log shippers."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        connection_id = _bound_connection(record)
        if connection_id:
            entry["conn"] = connection_id

        for key, value in _fields(record).items():
            # Reserved keys win over same-named fields
            entry.setdefault(key, value)

        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        if settings.debug:
            entry["src"] = f"{record.module}:{record.lineno}"

        return json.dumps(entry, default=str, ensure_ascii=False)


class ConsoleFormatter(logging.Formatter):
    """Coloured single-line output for local runs."""

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[1;31m",
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelno, "")
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        parts = [f"{self.DIM}{clock}{self.RESET}", f"{color}{record.levelname[:4]}{self.RESET}"]

        connection_id = _bound_connection(record)
        if connection_id:
            parts.append(f"{self.DIM}<{connection_id[:8]}>{self.RESET}")
        parts.append(f"{record.name}: {record.getMessage()}")

        fields = _fields(record)
        if fields:
            parts.append(" ".join(f"{k}={self._render(v)}" for k, v in fields.items()))

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line

    @staticmethod
    def _render(value: Any) -> str:
        if isinstance(value, str) and (not value or " " in value):
            return repr(value)
        return str(value)


class StructuredLogger(logging.Logger):
    """
    Logger whose level methods accept arbitrary keyword fields.

    The standard keywords (exc_info, extra, stack_info, stacklevel) keep
    their usual meaning; everything else is collected into record.fields.
    """

    def _log(
        self,
        level: int,
        msg: object,
        args: Any,
        exc_info: Any = None,
        extra: dict[str, Any] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **fields: Any,
    ) -> None:
        extra = dict(extra) if extra else {}
        extra["fields"] = fields
        super()._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            # Skip this frame when locating the caller
            stacklevel=stacklevel + 1,
        )


logging.setLoggerClass(StructuredLogger)


def setup_logging(level: int | None = None) -> None:
    """
    Install the gateway's handler on the root logger.

    Call once from the application lifespan. Replaces any handlers already
    on the root logger.

    Args:
        level: Explicit level. Defaults to DEBUG when settings.debug is set,
               INFO otherwise.
    """
    # Deferred: correlation is part of shared.infrastructure
    from shared.infrastructure.correlation import ConnectionIdFilter

    if level is None:
        level = logging.DEBUG if settings.debug else logging.INFO

    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(ConnectionIdFilter())
    if settings.environment == "production":
        handler.setFormatter(JsonLineFormatter())
    else:
        handler.setFormatter(ConsoleFormatter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    # uvicorn logs every upgrade request on the access logger
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    for noisy in ("websockets", "wsproto"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    """
    Return the structured logger for ``name``.

    Usage:
        logger = get_logger(__name__)
        logger.warning("Error sending ping", connection_id=conn.id, error=str(e))
    """
    return logging.getLogger(name)  # type: ignore[return-value]


presence_logger = get_logger("presence_gateway")

# Connection audit trail: one line per lifecycle event or policy action
audit_logger = get_logger("presence_gateway.audit")


def audit_connection_event(
    event_type: str,
    endpoint: str,
    connection_id: str | None = None,
    **fields: Any,
) -> None:
    """
    Record a connection lifecycle event (CONNECT, JOIN, DISCONNECT, ...).

    None-valued fields are dropped so unjoined connections do not log an
    empty room.
    """
    audit_logger.info(
        f"audit {event_type.lower()}",
        event_type=event_type,
        endpoint=endpoint,
        connection_id=connection_id,
        **{key: value for key, value in fields.items() if value is not None},
    )


def audit_rate_limit(endpoint: str, connection_id: str, limit: int, window: float) -> None:
    """Record a connection closed for exceeding the inbound frame limit."""
    audit_logger.warning(
        "audit rate_limited",
        event_type="RATE_LIMITED",
        endpoint=endpoint,
        connection_id=connection_id,
        limit=limit,
        window_seconds=window,
    )
