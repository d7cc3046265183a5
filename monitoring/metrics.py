# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - METRICS COLLECTION
# =============================================================================
"""
Metrics Collection Module

Prometheus metrics for the orchestrator. Each collector owns its own
``CollectorRegistry`` so several orchestrator instances (or test runs) can
coexist in one process.

Metric Categories:
    - Session metrics: Terminal outcomes, QA cycles per session
    - Agent metrics: Invocation counts and durations per role
    - Gate metrics: Pass/fail per gate
    - QA metrics: Validation statuses
    - LLM metrics: Token usage and estimated cost
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, Optional

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
    start_http_server,
)

logger = logging.getLogger(__name__)


# =============================================================================
# LLM COST ESTIMATOR
# =============================================================================

# Pricing per 1K tokens (USD)
LLM_PRICING: Dict[str, Dict[str, float]] = {
    # Anthropic
    "claude-opus-4-20250514": {"input": 0.015, "output": 0.075},
    "claude-sonnet-4-20250514": {"input": 0.003, "output": 0.015},
    "claude-3-5-haiku-20241022": {"input": 0.001, "output": 0.005},
    # OpenAI
    "gpt-4o": {"input": 0.005, "output": 0.015},
    "gpt-4o-mini": {"input": 0.00015, "output": 0.0006},
}

# Fallback pricing for unknown models
_DEFAULT_PRICING = {"input": 0.01, "output": 0.03}


def estimate_cost(model: str, input_tokens: int, output_tokens: int) -> float:
    """
    Estimate the dollar cost of an LLM call.

    Args:
        model: Model identifier.
        input_tokens: Number of input tokens.
        output_tokens: Number of output tokens.

    Returns:
        Estimated cost in USD.
    """
    rates = LLM_PRICING.get(model)
    if rates is None:
        for key in LLM_PRICING:
            if model.startswith(key.rsplit("-", 1)[0]):
                rates = LLM_PRICING[key]
                break
    if rates is None:
        rates = _DEFAULT_PRICING

    return (input_tokens * rates["input"] + output_tokens * rates["output"]) / 1000


# =============================================================================
# METRICS COLLECTOR
# =============================================================================


class MetricsCollector:
    """
    Central metrics collector for the orchestrator.

    Usage::

        metrics = MetricsCollector()
        metrics.record_agent_execution("builder", 12.5, success=True)
        metrics.record_gate_result("GATE_5", passed=False)
        metrics.record_session_finished("blocked", cycles=7)
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        self.config = config or {}
        self.registry = CollectorRegistry()
        self._start_time = time.monotonic()
        self._lock = threading.Lock()

        self._qa_pass_count = 0
        self._qa_total_count = 0

        self._init_prometheus()

    def _init_prometheus(self) -> None:
        # Session metrics
        self.sessions_total = Counter(
            "orchestrator_sessions_total",
            "Sessions that reached a terminal stage",
            ["outcome"],
            registry=self.registry,
        )
        self.session_cycles = Histogram(
            "orchestrator_session_cycles",
            "QA cycles used per session",
            buckets=[0, 1, 2, 3, 4, 5, 6, 7, 8],
            registry=self.registry,
        )

        # Agent metrics
        self.agent_executions = Counter(
            "orchestrator_agent_executions_total",
            "Agent invocations",
            ["agent_role", "result"],
            registry=self.registry,
        )
        self.agent_duration = Histogram(
            "orchestrator_agent_duration_seconds",
            "Agent invocation duration",
            ["agent_role"],
            buckets=[1, 5, 10, 30, 60, 90, 120],
            registry=self.registry,
        )

        # Gate metrics
        self.gate_results = Counter(
            "orchestrator_gate_results_total",
            "Gate evaluations",
            ["gate", "result"],
            registry=self.registry,
        )

        # QA metrics
        self.qa_results = Counter(
            "orchestrator_qa_results_total",
            "QA validation statuses",
            ["status"],
            registry=self.registry,
        )

        # LLM metrics
        self.llm_tokens = Counter(
            "orchestrator_llm_tokens_total",
            "LLM tokens used",
            ["agent_role", "token_type"],
            registry=self.registry,
        )
        self.llm_cost = Counter(
            "orchestrator_llm_cost_dollars",
            "Estimated LLM cost in dollars",
            ["model"],
            registry=self.registry,
        )

    # -- Session metrics --------------------------------------------------

    def record_session_finished(self, outcome: str, cycles: int) -> None:
        """Record a session reaching complete or blocked."""
        self.sessions_total.labels(outcome=outcome).inc()
        self.session_cycles.observe(float(cycles))

    # -- Agent metrics ----------------------------------------------------

    def record_agent_execution(
        self, agent_role: str, duration: float, success: bool
    ) -> None:
        """Record an agent invocation."""
        result = "success" if success else "failure"
        self.agent_executions.labels(agent_role=agent_role, result=result).inc()
        self.agent_duration.labels(agent_role=agent_role).observe(duration)

    # -- Gate metrics -----------------------------------------------------

    def record_gate_result(self, gate: str, passed: bool) -> None:
        self.gate_results.labels(gate=gate, result="pass" if passed else "fail").inc()

    # -- QA metrics -------------------------------------------------------

    def record_qa_result(self, status: str) -> None:
        """Record a QA status (PASS, FAIL, BLOCKED)."""
        self.qa_results.labels(status=status).inc()
        with self._lock:
            self._qa_total_count += 1
            if status == "PASS":
                self._qa_pass_count += 1

    # -- LLM metrics ------------------------------------------------------

    def record_llm_usage(
        self,
        model: str,
        agent_role: str,
        input_tokens: int,
        output_tokens: int,
    ) -> None:
        """Record token counts for one agent invocation."""
        self.llm_tokens.labels(agent_role=agent_role, token_type="input").inc(input_tokens)
        self.llm_tokens.labels(agent_role=agent_role, token_type="output").inc(output_tokens)
        self.llm_cost.labels(model=model).inc(
            estimate_cost(model, input_tokens, output_tokens)
        )

    def get_uptime(self) -> float:
        """Return seconds since this collector was created."""
        return time.monotonic() - self._start_time

    # =====================================================================
    # EXPORT / SNAPSHOT
    # =====================================================================

    def start_http_server(self, port: int = 8080) -> None:
        """Expose this collector's registry over HTTP."""
        start_http_server(port, registry=self.registry)
        logger.info(f"Metrics HTTP server started on port {port}")

    def export(self) -> bytes:
        """Prometheus text exposition of the registry."""
        return generate_latest(self.registry)

    def sample(self, name: str, labels: Optional[Dict[str, str]] = None) -> float:
        """Current value of one sample, 0.0 when it was never recorded."""
        value = self.registry.get_sample_value(name, labels or {})
        return value if value is not None else 0.0

    def snapshot(self) -> Dict[str, Any]:
        """Plain dict snapshot, used for the end-of-run log line."""
        return {
            "uptime_seconds": round(self.get_uptime(), 1),
            "qa_total": self._qa_total_count,
            "qa_pass_rate": round(self._qa_pass_count / self._qa_total_count, 4)
            if self._qa_total_count > 0
            else None,
            "sessions_complete": self.sample(
                "orchestrator_sessions_total", {"outcome": "complete"}
            ),
            "sessions_blocked": self.sample(
                "orchestrator_sessions_total", {"outcome": "blocked"}
            ),
        }


def create_metrics_collector(
    config: Optional[Dict[str, Any]] = None,
) -> MetricsCollector:
    """
    Create a MetricsCollector from the ``metrics`` config section.

    Starts the HTTP exporter only when a port is configured.
    """
    config = config or {}
    collector = MetricsCollector(config)

    port = config.get("port")
    if port:
        try:
            collector.start_http_server(int(port))
        except OSError as e:
            logger.warning(f"Could not start metrics server on port {port}: {e}")

    return collector


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "MetricsCollector",
    "create_metrics_collector",
    "estimate_cost",
    "LLM_PRICING",
]
