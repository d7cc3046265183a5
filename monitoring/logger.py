# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - STRUCTURED LOGGING
# =============================================================================
"""
Structured Logging Module

Consistent, structured logging for the orchestrator, the agents and the
analysis flow. structlog renders every record, including the ones emitted
through ``logging.getLogger(__name__)`` in the rest of the codebase, via
``structlog.stdlib.ProcessorFormatter``.

Features:
    - JSON or console output
    - Session context (session_id, stage, cycle) bound through contextvars
    - Sensitive data masking (API keys, n8n credentials)
    - File output with rotation
    - JSONL audit trail for gate violations, transitions and agent runs
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import sys
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
from structlog.contextvars import bind_contextvars, unbind_contextvars, merge_contextvars


# =============================================================================
# SENSITIVE DATA MASKING
# =============================================================================

# Keys whose values should be masked
SENSITIVE_KEYS = frozenset([
    "token", "api_key", "password", "secret", "credential_data",
    "private_key", "access_token", "refresh_token", "authorization",
    "anthropic_api_key", "openai_api_key", "n8n_api_key", "x_n8n_api_key",
])


def _is_sensitive(key: str) -> bool:
    """Check if a key name indicates sensitive data."""
    key_lower = key.lower().replace("-", "_")
    return any(s in key_lower for s in SENSITIVE_KEYS)


def _mask_value(value: Any) -> str:
    """Mask a sensitive value, keeping first/last 4 chars if long enough."""
    if not isinstance(value, str):
        return "****"
    if len(value) > 8:
        return value[:4] + "****" + value[-4:]
    return "****"


def mask_sensitive_data(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Structlog processor that masks sensitive data in log events.

    Recursively processes dictionaries to mask values whose keys
    match known sensitive patterns.
    """

    def _process(d: Dict[str, Any]) -> Dict[str, Any]:
        result = {}
        for key, value in d.items():
            if _is_sensitive(str(key)):
                result[key] = _mask_value(value)
            elif isinstance(value, dict):
                result[key] = _process(value)
            else:
                result[key] = value
        return result

    return _process(event_dict)


def mask_dict(data: Dict[str, Any]) -> Dict[str, Any]:
    """Mask sensitive data in an arbitrary dict (audit events, tool params)."""
    return mask_sensitive_data(None, "", data)


# =============================================================================
# LOGGING SETUP
# =============================================================================


def _build_formatter(fmt: str, mask_sensitive: bool) -> structlog.stdlib.ProcessorFormatter:
    """ProcessorFormatter that renders both structlog and stdlib records."""
    pre_chain = [
        merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]

    processors: list = [structlog.stdlib.ProcessorFormatter.remove_processors_meta]
    if mask_sensitive:
        processors.append(mask_sensitive_data)

    if fmt == "json":
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer(default=str))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=pre_chain,
        processors=processors,
    )


def setup_logging(
    level: str = "INFO",
    fmt: str = "text",
    log_file: Optional[str] = None,
    log_dir: Optional[str] = None,
    mask_sensitive: bool = True,
    max_bytes: int = 50 * 1024 * 1024,  # 50 MB
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: Output format, ``"json"`` or ``"text"``.
        log_file: Explicit log file path. Overrides *log_dir*.
        log_dir: Directory for log files. When set (and *log_file* is
            ``None``), logs are written to ``<log_dir>/orchestrator.log``.
        mask_sensitive: Mask sensitive values in logs.
        max_bytes: Max file size before rotation.
        backup_count: Number of rotated files to keep.

    Returns:
        Root logger instance.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    resolved_log_file: Optional[str] = log_file
    if resolved_log_file is None and log_dir is not None:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        resolved_log_file = str(Path(log_dir) / "orchestrator.log")

    structlog.configure(
        processors=[
            merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.setLevel(numeric_level)

    # Remove existing handlers to avoid duplicates on re-init
    root.handlers.clear()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(_build_formatter(fmt, mask_sensitive))
    root.addHandler(console)

    if resolved_log_file:
        Path(resolved_log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            resolved_log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(_build_formatter("json", mask_sensitive))
        root.addHandler(file_handler)

    # Suppress noisy third-party loggers
    for name in ("urllib3", "httpx", "httpcore", "anthropic", "openai"):
        logging.getLogger(name).setLevel(logging.WARNING)

    return root


def get_logger(name: str) -> Any:
    """Return a structlog logger bound to *name*."""
    return structlog.get_logger(name)


# =============================================================================
# LOG CONTEXT MANAGER
# =============================================================================


class LogContext:
    """
    Context manager that binds key-value pairs to all logs emitted
    inside the block.

    Usage::

        with LogContext(session_id="session_abc", stage="build"):
            logger.info("Invoking builder")
    """

    def __init__(self, **kwargs: Any):
        self.context = kwargs

    def __enter__(self) -> "LogContext":
        bind_contextvars(**self.context)
        return self

    def __exit__(self, *args: Any) -> None:
        unbind_contextvars(*self.context.keys())


@contextmanager
def log_context(**kwargs: Any):
    """Functional alias for :class:`LogContext`."""
    ctx = LogContext(**kwargs)
    ctx.__enter__()
    try:
        yield ctx
    finally:
        ctx.__exit__(None, None, None)


# =============================================================================
# AUDIT LOGGER
# =============================================================================


class AuditLogger:
    """
    Logger for audit trail events.

    Records structured events to a JSONL file (one JSON object per line)
    for debugging and post-mortem analysis.

    Event categories:
        - ``stage_transition``: Session stage changes
        - ``agent_execution``: Agent invocations
        - ``gate_violation``: Failed gate checks
        - ``fix_attempt``: Builder fix outcomes
        - ``error``: Unexpected failures

    Usage::

        audit = AuditLogger("./logs/audit.jsonl")
        audit.log_stage_transition("session_x", "build", "validate")
    """

    def __init__(
        self,
        output_path: str = "./logs/audit.jsonl",
        max_bytes: int = 100 * 1024 * 1024,  # 100 MB
        backup_count: int = 10,
    ):
        self.output_path = output_path
        self._logger = logging.getLogger(f"audit.{Path(output_path).resolve()}")
        self._logger.setLevel(logging.INFO)
        self._logger.propagate = False  # don't echo to root logger

        if not self._logger.handlers:
            Path(output_path).parent.mkdir(parents=True, exist_ok=True)
            handler = logging.handlers.RotatingFileHandler(
                output_path,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            handler.setFormatter(logging.Formatter("%(message)s"))
            self._logger.addHandler(handler)

    # -----------------------------------------------------------------
    # Event writers
    # -----------------------------------------------------------------

    def _write_event(self, event_type: str, data: Dict[str, Any]) -> None:
        """Write a single audit event."""
        event = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "event_type": event_type,
            **mask_dict(data),
        }
        self._logger.info(json.dumps(event, default=str))

    def log_stage_transition(
        self,
        session_id: str,
        from_stage: str,
        to_stage: str,
        cycle: int = 0,
    ) -> None:
        """Log a session stage change."""
        self._write_event("stage_transition", {
            "session_id": session_id,
            "from_stage": from_stage,
            "to_stage": to_stage,
            "cycle": cycle,
        })

    def log_agent_execution(
        self,
        agent_role: str,
        session_id: str,
        success: bool,
        duration: float,
        calls_logged: int = 0,
        output_summary: str = "",
    ) -> None:
        """Log an agent invocation."""
        self._write_event("agent_execution", {
            "agent_role": agent_role,
            "session_id": session_id,
            "success": success,
            "duration_seconds": round(duration, 2),
            "calls_logged": calls_logged,
            "output_summary": output_summary,
        })

    def log_gate_violation(
        self,
        session_id: str,
        gate: str,
        reason: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log a failed gate check."""
        self._write_event("gate_violation", {
            "session_id": session_id,
            "gate": gate,
            "reason": reason,
            "context": context or {},
        })

    def log_fix_attempt(
        self,
        session_id: str,
        cycle: int,
        approach: str,
        result: str,
        nodes_affected: List[str],
    ) -> None:
        """Log a builder fix outcome."""
        self._write_event("fix_attempt", {
            "session_id": session_id,
            "cycle": cycle,
            "approach": approach,
            "result": result,
            "nodes_affected": nodes_affected,
        })

    def log_error(
        self,
        component: str,
        error_type: str,
        message: str,
        session_id: Optional[str] = None,
    ) -> None:
        """Log an error event."""
        self._write_event("error", {
            "component": component,
            "error_type": error_type,
            "message": message,
            "session_id": session_id,
        })


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    # Setup
    "setup_logging",
    "get_logger",
    # Data masking
    "mask_sensitive_data",
    "mask_dict",
    # Context
    "LogContext",
    "log_context",
    # Audit
    "AuditLogger",
]
