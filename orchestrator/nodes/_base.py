# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - NODE BASE MODULE
# =============================================================================
"""
Shared types, context, and utilities for all workflow nodes.

Every node in the workflow shares:
- NodeContext: Access to services (session store, gates, agents, audit)
- GraphState: The state dict flowing through the graph
- Helper functions for stage transitions, gate bookkeeping and the
  terminal bookkeeping every exit path performs
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, TYPE_CHECKING

from orchestrator.engine.gate_enforcer import GateResult
from orchestrator.models import Session, Stage

if TYPE_CHECKING:
    from agents.base.agent_interface import BaseAgent
    from orchestrator.context import AgentTeam, RuntimeContext
    from orchestrator.engine.gate_enforcer import GateEnforcer
    from orchestrator.engine.session_store import SessionStore

logger = logging.getLogger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================


class OrchestratorError(Exception):
    """Base exception for orchestration failures."""
    pass


class BlueprintRejectedError(OrchestratorError):
    """The user rejected the blueprint in interactive mode."""
    pass


class ResumeError(OrchestratorError):
    """A session cannot be resumed."""
    pass


# =============================================================================
# NODE CONTEXT
# =============================================================================


@dataclass
class NodeContext:
    """
    Shared context passed to every node.

    Thin view over the RuntimeContext with the accessors nodes use.
    ``post_mortems`` keeps each session's analyst report so a post-mortem
    retried after a failure does not ask the Analyst twice.
    """
    runtime: 'RuntimeContext'
    post_mortems: Dict[str, Any] = field(default_factory=dict)

    @property
    def store(self) -> 'SessionStore':
        return self.runtime.session_store

    @property
    def gates(self) -> 'GateEnforcer':
        return self.runtime.gate_enforcer

    @property
    def agents(self) -> 'AgentTeam':
        return self.runtime.agents

    @property
    def max_cycles(self) -> int:
        return self.runtime.max_cycles

    @property
    def interactive(self) -> bool:
        return self.runtime.interactive

    def session(self, state: Dict[str, Any]) -> Session:
        return self.store.get(state["session_id"])


# =============================================================================
# SHARED HELPERS
# =============================================================================


async def enter_stage(ctx: NodeContext, state: Dict[str, Any], stage: Stage) -> None:
    """Move the session to *stage*, auditing the transition."""
    session = ctx.session(state)
    if session.stage == stage:
        state["stage"] = stage.value
        return

    previous = await ctx.store.update_stage(session.id, stage)
    state["stage"] = stage.value
    logger.info(f"[{session.id}] {previous.value} -> {stage.value}")
    if ctx.runtime.audit:
        ctx.runtime.audit.log_stage_transition(session.id, previous.value, stage.value, session.cycle)


def record_gate(ctx: NodeContext, state: Dict[str, Any], result: GateResult) -> GateResult:
    """Count a gate outcome and audit it when it failed."""
    if ctx.runtime.metrics:
        ctx.runtime.metrics.record_gate_result(result.gate, result.passed)
    if not result.passed:
        logger.warning(f"{result.gate} failed: {result.message}")
        if ctx.runtime.audit:
            ctx.runtime.audit.log_gate_violation(
                state["session_id"], result.gate, result.message or "", result.data
            )
    return result


def add_history_entry(
    state: Dict[str, Any],
    node: str,
    action: str,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    """Add an entry to the graph trail."""
    trail = list(state.get("trail", []))
    trail.append({
        "timestamp": datetime.utcnow().isoformat(),
        "node": node,
        "action": action,
        "details": details or {},
    })
    state["trail"] = trail


def finish(ctx: NodeContext, state: Dict[str, Any], outcome: str, response: str) -> None:
    """Set the terminal outcome and user-facing response."""
    state["outcome"] = outcome
    state["response"] = response
    if ctx.runtime.metrics:
        session = ctx.store.get(state["session_id"])
        ctx.runtime.metrics.record_session_finished(outcome, session.cycle)


async def rollback_workflow(ctx: NodeContext, state: Dict[str, Any], reason: str) -> bool:
    """
    Restore the snapshot taken before the last Builder fix.

    Returns True only when a snapshot existed and was written back.
    """
    snapshots = ctx.runtime.snapshots
    workflow_id = state.get("workflow_id") or ""
    if snapshots is None or snapshots.latest(workflow_id) is None:
        return False

    result = await snapshots.rollback(workflow_id)
    add_history_entry(state, "rollback", "restored" if result.success else "failed", {
        "reason": reason,
        "version_id": result.version_id,
        "error": result.error,
    })
    if result.success:
        logger.warning(f"Rolled back {workflow_id}: {reason}")
    return result.success


def last_payload(agent: 'BaseAgent', session_id: str) -> Optional[Dict[str, Any]]:
    """Data of the agent's latest successful result on the session."""
    result = agent.session_store.get_agent_result(session_id, agent.ROLE)
    if result is None or not result.success:
        return None
    return dict(result.data)


def names(items: List[Dict[str, Any]], key: str = "name") -> List[str]:
    return [str(item.get(key)) for item in items if item.get(key)]


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "OrchestratorError",
    "BlueprintRejectedError",
    "ResumeError",
    "NodeContext",
    "enter_stage",
    "record_gate",
    "add_history_entry",
    "finish",
    "rollback_workflow",
    "last_payload",
    "names",
]
