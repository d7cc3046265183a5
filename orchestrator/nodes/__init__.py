# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - LANGGRAPH NODES PACKAGE
# =============================================================================
"""
LangGraph Nodes Package

This package contains all node implementations for the LangGraph workflow.
Each node is one phase of a build session.

Node Contract:
    Each node function must:
    1. Accept (state: Dict, ctx: NodeContext) as arguments
    2. Return the updated state Dict
    3. Move the session stage through ``enter_stage`` so transitions are audited
    4. Log all significant actions
    5. Set ``outcome``/``response`` via ``finish`` when the session ends

Usage:
    from orchestrator.nodes import NodeContext, clarification_node

    ctx = NodeContext(runtime=runtime)
    state = await clarification_node(state, ctx)
"""

# Base module
from orchestrator.nodes._base import (
    BlueprintRejectedError,
    NodeContext,
    OrchestratorError,
    ResumeError,
    add_history_entry,
    enter_stage,
    finish,
    last_payload,
    record_gate,
    rollback_workflow,
)

# Node implementations
from orchestrator.nodes.clarification_node import clarification_node, clarification_router
from orchestrator.nodes.research_node import research_node
from orchestrator.nodes.decision_node import (
    BLUEPRINT_REJECTED_MESSAGE,
    decision_node,
    decision_router,
    validate_blueprint,
)
from orchestrator.nodes.credentials_node import credentials_node
from orchestrator.nodes.implementation_node import implementation_node
from orchestrator.nodes.build_node import build_node, build_router
from orchestrator.nodes.qa_node import qa_node, qa_router
from orchestrator.nodes.fix_node import fix_node, make_fix_router
from orchestrator.nodes.post_mortem_node import BLOCKED_PREFIX, post_mortem_node
from orchestrator.nodes.done_node import done_node


__all__ = [
    # Base
    "NodeContext",
    "OrchestratorError",
    "BlueprintRejectedError",
    "ResumeError",
    "add_history_entry",
    "enter_stage",
    "finish",
    "last_payload",
    "record_gate",
    "rollback_workflow",
    # Nodes
    "clarification_node",
    "research_node",
    "decision_node",
    "credentials_node",
    "implementation_node",
    "build_node",
    "qa_node",
    "fix_node",
    "post_mortem_node",
    "done_node",
    # Routers
    "clarification_router",
    "decision_router",
    "build_router",
    "qa_router",
    "make_fix_router",
    # Validators
    "validate_blueprint",
    # Messages
    "BLUEPRINT_REJECTED_MESSAGE",
    "BLOCKED_PREFIX",
]
