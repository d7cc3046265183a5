# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - MONITORING PACKAGE
# =============================================================================
"""
Monitoring Package

Logging, audit trail and metrics for the n8n agent orchestrator.

Components:
    - Logger: structlog-rendered logging with sensitive data masking
    - Audit: JSONL trail of transitions, agent runs and gate violations
    - Metrics: Prometheus counters and histograms

Usage:
    from monitoring import setup_logging, MetricsCollector, AuditLogger

    setup_logging(level="INFO", fmt="json", log_dir="./logs")

    metrics = MetricsCollector()
    metrics.record_gate_result("GATE_3", passed=False)

    audit = AuditLogger("./logs/audit.jsonl")
    audit.log_gate_violation("session_x", "GATE_3", "REJECTED: ...")
"""

# Logger
from monitoring.logger import (
    setup_logging,
    get_logger,
    AuditLogger,
    LogContext,
    log_context,
    mask_sensitive_data,
    mask_dict,
)

# Metrics
from monitoring.metrics import (
    MetricsCollector,
    create_metrics_collector,
    estimate_cost,
    LLM_PRICING,
)


__all__ = [
    # Logger
    "setup_logging",
    "get_logger",
    "AuditLogger",
    "LogContext",
    "log_context",
    "mask_sensitive_data",
    "mask_dict",
    # Metrics
    "MetricsCollector",
    "create_metrics_collector",
    "estimate_cost",
    "LLM_PRICING",
]
