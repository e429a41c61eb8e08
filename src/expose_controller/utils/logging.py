# ABOUTME: Structured logging with correlation IDs for the expose controller
# ABOUTME: Implements audit logging of every exposure write and skip

"""
Structured logging with correlation IDs and audit trails.

=============================================================================
WHAT IS THIS FILE?
=============================================================================

1. STRUCTURED LOGGING: every log line is an event name plus key/value pairs,
   rendered either for a terminal or as JSON lines for a log aggregator.

2. CORRELATION IDs: the event source assigns a fresh ID to each service event
   it delivers, so every line written while reconciling that event (config
   read, strategy dispatch, ingress create, annotation write) can be grouped:

    {"correlation_id": "a1b2c3d4", "event": "Reconciling service", "service": "default/web"}
    {"correlation_id": "a1b2c3d4", "event": "Exposed service using ingress rule", ...}
    {"correlation_id": "a1b2c3d4", "event": "Added exposeUrl annotation", ...}

3. AUDIT LOGGING: a record of every change the controller makes to the
   cluster (ingress/route created, updated, deleted; service type changed;
   annotation written) and of every skip or failure.

=============================================================================
CONTEXT VARIABLES (contextvars)
=============================================================================

The correlation ID is stored in a ContextVar rather than passed through every
function. The event loop is single-threaded, but the liveness listener runs
in its own thread; a ContextVar keeps the two from seeing each other's IDs.
"""

from __future__ import annotations

import json
import logging
import uuid
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from collections.abc import MutableMapping
    from pathlib import Path


# =============================================================================
# CORRELATION ID MANAGEMENT
# =============================================================================

correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


def new_correlation_id() -> str:
    """
    Open a new correlation scope and return its ID.

    The event source calls this once per delivered event, so everything the
    engine logs while handling that event shares one 8-character ID.
    """
    cid = uuid.uuid4().hex[:8]
    correlation_id.set(cid)
    return cid


def current_correlation_id() -> str | None:
    """ID of the event being handled, or None outside of event handling."""
    return correlation_id.get() or None


def add_correlation_id(
    logger: structlog.types.WrappedLogger,  # noqa: ARG001 - Required by structlog Processor API
    method_name: str,  # noqa: ARG001 - Required by structlog Processor API
    event_dict: MutableMapping[str, Any],
) -> MutableMapping[str, Any]:
    """
    structlog processor stamping the current event's correlation ID.

    Lines logged outside event handling (startup, shutdown, watch restarts)
    carry no ID; an explicit ``correlation_id=`` keyword is left untouched.
    """
    cid = correlation_id.get()
    if cid:
        event_dict.setdefault("correlation_id", cid)
    return event_dict


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================


def _renderers(json_output: bool) -> list[structlog.types.Processor]:
    if json_output:
        # Tracebacks become a string field instead of a multi-line dump
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer()]


def configure_logging(level: str = "INFO", json_output: bool = False) -> None:
    """
    Configure structlog for the controller process.

    Every line passes through: contextvars merge, log level, UTC ISO
    timestamp, correlation ID, then the console or JSON renderer. Output goes
    to stdout, where the container runtime collects it.

    Args:
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL. Unknown names mean INFO.
        json_output: Render JSON lines instead of colored console output.
    """
    threshold = logging.getLevelNamesMapping().get(level.upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            add_correlation_id,
            *_renderers(json_output),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(threshold),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# =============================================================================
# AUDIT LOGGER
# =============================================================================


class AuditLogger:
    """
    Trail of every change the controller makes to the cluster.

    WHAT WE RECORD:
    ---------------
    - action: "expose", "retract" or "annotate"
    - target: "namespace/name" of the service
    - result: "created", "updated", "deleted", "annotated", "skipped", "error"
    - details: strategy, host, URL, skip reason or error message
    - correlation_id: the service event that caused the change, if any

    EXAMPLE FILE ENTRIES:
    ---------------------
    {"timestamp": "2024-01-15T10:30:00+00:00", "action": "expose",
     "target": "default/web", "result": "created", "correlation_id": "abc12345",
     "details": {"strategy": "ingress", "host": "web.default.example.com"}}

    {"timestamp": "2024-01-15T10:30:05+00:00", "action": "expose",
     "target": "default/web", "result": "skipped", "correlation_id": "def67890",
     "details": {"reason": "Routes are only available on OpenShift"}}

    Without a file, the same record is emitted as an ``audit`` event on
    stdout with the details flattened into key/value pairs.
    """

    def __init__(self, log_path: Path | None = None) -> None:
        """
        Args:
            log_path: JSON-lines file to append to. The parent directory must
                exist. None sends entries through structlog instead.
        """
        self._log_path = log_path
        self._logger = structlog.get_logger("audit")

    def log(
        self,
        action: str,
        target: str,
        result: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Record one action against one service."""
        if self._log_path is None:
            self._logger.info(
                "audit",
                action=action,
                target=target,
                result=result,
                **(details or {}),
            )
            return

        entry: dict[str, Any] = {
            "timestamp": datetime.now(UTC).isoformat(),
            "action": action,
            "target": target,
            "result": result,
        }
        cid = current_correlation_id()
        if cid:
            entry["correlation_id"] = cid
        if details:
            entry["details"] = details

        with self._log_path.open("a") as f:
            f.write(json.dumps(entry) + "\n")

    def log_skipped(self, action: str, target: str, reason: str) -> None:
        """Record an action that was deliberately not performed."""
        self.log(action, target, "skipped", {"reason": reason})

    def log_error(self, action: str, target: str, error: str) -> None:
        """Record an action that failed against the API server."""
        self.log(action, target, "error", {"error": error})
