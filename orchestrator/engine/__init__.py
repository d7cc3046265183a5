# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - ORCHESTRATOR ENGINE PACKAGE
# =============================================================================
"""
Orchestrator Engine Package

Core engine components shared by the orchestrator and the agents:

1. session_store: Session lifecycle, persistence and mutation API
2. gate_enforcer: Escalation levels and the six enforcement gates
3. retry: Exponential-backoff retry with named profiles
4. workflow_graph: LangGraph state machine (import it directly; it pulls
   in the nodes and therefore the agents)

Usage:
    from orchestrator.engine import SessionStore, GateEnforcer

    store = SessionStore.from_config({"backend": "file", "dir": "./sessions"})
    gates = GateEnforcer(max_cycles=7)

    from orchestrator.engine.workflow_graph import create_workflow_engine
    engine = create_workflow_engine(runtime)
"""

from orchestrator.engine.session_store import (
    SessionStore,
    SessionBackend,
    FileSessionBackend,
    RedisSessionBackend,
    SessionStoreError,
    SessionNotFoundError,
    SessionBackendError,
    InvalidStageTransitionError,
)

from orchestrator.engine.gate_enforcer import (
    GateEnforcer,
    GateResult,
    GateViolation,
    Escalation,
    EscalationLevel,
    MAX_CYCLES,
    get_escalation_level,
)

from orchestrator.engine.retry import (
    RetryConfig,
    RetryExhaustedError,
    RETRY_CONFIGS,
    retry,
    retry_sync,
)

__all__ = [
    # Session store
    "SessionStore",
    "SessionBackend",
    "FileSessionBackend",
    "RedisSessionBackend",
    "SessionStoreError",
    "SessionNotFoundError",
    "SessionBackendError",
    "InvalidStageTransitionError",
    # Gates
    "GateEnforcer",
    "GateResult",
    "GateViolation",
    "Escalation",
    "EscalationLevel",
    "MAX_CYCLES",
    "get_escalation_level",
    # Retry
    "RetryConfig",
    "RetryExhaustedError",
    "RETRY_CONFIGS",
    "retry",
    "retry_sync",
]
