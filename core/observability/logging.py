"""
Structured logging for tenant provisioning.

Every record carries the correlation IDs of the provisioning attempt it
belongs to, taken from a context variable so concurrent attempts for
different tenants never mix:

- tenant_id: Tenant being provisioned
- workflow_id / workflow_run_id: Temporal execution driving the attempt
- activity_name: Activity currently running
- stage: workspace, database, table, field, database_token, rollback, link
- table_key: Table currently being created or linked

Usage:
    from core.observability.logging import get_logger, with_correlation

    logger = get_logger(__name__)

    with with_correlation(tenant_id="acme", stage="table", table_key="images"):
        logger.info("Created table", extra_fields={"table_id": 641})

Environment variables (read by configure_logging when no argument is given):
    LOG_LEVEL: DEBUG, INFO, WARNING or ERROR (default INFO)
    LOG_FORMAT: "json" for one JSON object per line, otherwise human-readable
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional


# =============================================================================
# Correlation Context
# =============================================================================

@dataclass(frozen=True)
class CorrelationContext:
    """Correlation IDs for one provisioning attempt."""
    tenant_id: Optional[str] = None
    workflow_id: Optional[str] = None
    workflow_run_id: Optional[str] = None
    activity_name: Optional[str] = None
    stage: Optional[str] = None
    table_key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Set fields only."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    def merge(self, **kwargs) -> "CorrelationContext":
        """Copy with the given (non-None) fields replaced."""
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})

    def short(self) -> str:
        """Compact "tenant/workflow/stage/table" label for human-readable logs."""
        parts = [
            self.tenant_id,
            self.workflow_id[:12] if self.workflow_id else None,
            self.stage,
            self.table_key,
        ]
        return "/".join(p for p in parts if p) or "-"


_correlation_context: ContextVar[CorrelationContext] = ContextVar(
    "correlation_context",
    default=CorrelationContext(),
)


def get_correlation_context() -> CorrelationContext:
    return _correlation_context.get()


@contextmanager
def with_correlation(**kwargs) -> Iterator[CorrelationContext]:
    """Add correlation IDs for the duration of the block.

    Nested blocks inherit the outer IDs; leaving a block restores them.
    """
    token = _correlation_context.set(get_correlation_context().merge(**kwargs))
    try:
        yield _correlation_context.get()
    finally:
        _correlation_context.reset(token)


# =============================================================================
# Formatters
# =============================================================================

def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return getattr(record, "extra_fields", None) or {}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record.

    {"timestamp": "...+00:00", "level": "INFO", "logger": "core.provisioning.provisioner",
     "message": "Created table Images", "tenant_id": "acme", "stage": "table",
     "table_key": "images", "table_id": 641}
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(get_correlation_context().to_dict())
        entry.update(_extra_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Single-line records for local development.

    2025-03-01 12:00:00 [INFO ] core.provisioning.provisioner [acme/table/images]: Created table Images table_id=641
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        line = (
            f"{timestamp} [{record.levelname:5}] {record.name} "
            f"[{get_correlation_context().short()}]: {record.getMessage()}"
        )
        extra = _extra_fields(record)
        if extra:
            line += " " + " ".join(f"{k}={v}" for k, v in extra.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# =============================================================================
# Logger
# =============================================================================

class CorrelatedLogger:
    """Thin wrapper over a stdlib logger that accepts ``extra_fields``.

    Correlation IDs are added by the formatters, so the wrapper only has to
    carry per-call fields (table ids, field ids, counts) to the record.
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @property
    def name(self) -> str:
        return self._logger.name

    def _log(self, level: int, msg: str, *args, extra_fields: Optional[Dict[str, Any]] = None, exc_info=None):
        if self._logger.isEnabledFor(level):
            self._logger.log(
                level,
                msg,
                *args,
                exc_info=exc_info,
                extra={"extra_fields": extra_fields or {}},
                stacklevel=3,
            )

    def debug(self, msg: str, *args, **kwargs):
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        kwargs["exc_info"] = True
        self._log(logging.ERROR, msg, *args, **kwargs)

    def setLevel(self, level):
        self._logger.setLevel(level)

    def isEnabledFor(self, level) -> bool:
        return self._logger.isEnabledFor(level)


_loggers: Dict[str, CorrelatedLogger] = {}
_configured = False

_APP_LOGGERS = ("activities", "workflows", "workers", "api", "core", "connectors", "scripts")


def configure_logging(
    level: Optional[int] = None,
    json_format: Optional[bool] = None,
    include_temporal: bool = True,
):
    """Install one stdout handler on the root logger (first call only).

    Args:
        level: Logging level (default from LOG_LEVEL, else INFO)
        json_format: JSON output (default from LOG_FORMAT == "json")
        include_temporal: Also set the Temporal SDK loggers to INFO
    """
    global _configured
    if _configured:
        return

    if level is None:
        level = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
        if not isinstance(level, int):
            level = logging.INFO
    if json_format is None:
        json_format = os.getenv("LOG_FORMAT", "").lower() == "json"

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(handler)

    for name in _APP_LOGGERS:
        logging.getLogger(name).setLevel(level)

    # aiohttp and uvicorn access logs drown out provisioning steps
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    if include_temporal:
        logging.getLogger("temporalio").setLevel(logging.INFO)

    _configured = True


def get_logger(name: str) -> CorrelatedLogger:
    """Correlated logger for a module (typically ``__name__``)."""
    logger = _loggers.get(name)
    if logger is None:
        if not _configured:
            configure_logging()
        logger = _loggers[name] = CorrelatedLogger(logging.getLogger(name))
    return logger


# =============================================================================
# Activity helpers
# =============================================================================

def log_activity_start(activity_name: str, **kwargs):
    get_logger(f"activities.{activity_name}").info(
        f"Activity started: {activity_name}", extra_fields=kwargs
    )


def log_activity_complete(activity_name: str, duration_ms: Optional[float] = None, **kwargs):
    extra = dict(kwargs)
    if duration_ms is not None:
        extra["duration_ms"] = duration_ms
    get_logger(f"activities.{activity_name}").info(
        f"Activity completed: {activity_name}", extra_fields=extra
    )


def log_activity_error(activity_name: str, error: str, **kwargs):
    get_logger(f"activities.{activity_name}").error(
        f"Activity failed: {activity_name} - {error}", extra_fields=kwargs
    )
