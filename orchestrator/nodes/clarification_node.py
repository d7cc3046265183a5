# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - CLARIFICATION NODE
# =============================================================================
"""
Clarification Node Implementation

Entry point for a build request. The Architect turns the request into
requirements and decides whether research is needed. Conversational
requests (greetings, help, questions) end the session here.

Workflow Position:
    [START] --> CLARIFICATION --(conversational)--> DONE
                              --(build request)---> RESEARCH
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from orchestrator.models import HistoryEntry, Requirements, Stage
from orchestrator.nodes._base import NodeContext, add_history_entry, enter_stage, finish

logger = logging.getLogger(__name__)

DEFAULT_CONVERSATIONAL_RESPONSE = "How can I help you build an n8n workflow?"


# =============================================================================
# NODE IMPLEMENTATION
# =============================================================================


async def clarification_node(
    state: Dict[str, Any],
    ctx: NodeContext,
) -> Dict[str, Any]:
    """
    Clarify the user request.

    Stores explicit requirements (node count, verbatim constraints) on the
    session so the blueprint check can enforce them later.
    """
    session_id = state["session_id"]
    request = state.get("request", "")
    logger.info(f"Clarification node: {session_id}")

    await enter_stage(ctx, state, Stage.CLARIFICATION)
    if request and not state.get("resumed"):
        await ctx.store.add_history_entry(session_id, HistoryEntry(role="user", content=request))

    clarification = await ctx.agents.architect.clarify(session_id, request)
    state["clarification"] = clarification.to_dict()

    if clarification.node_count or clarification.explicit_requirements:
        await ctx.store.set_requirements(
            session_id,
            Requirements(
                node_count=clarification.node_count,
                explicit_requirements=clarification.explicit_requirements,
            ),
        )
        logger.info(f"Requirements stored: node_count={clarification.node_count}")

    if clarification.is_conversational:
        await enter_stage(ctx, state, Stage.COMPLETE)
        finish(ctx, state, "complete", clarification.response or DEFAULT_CONVERSATIONAL_RESPONSE)
        add_history_entry(state, "clarification", "conversational")
        return state

    add_history_entry(state, "clarification", "clarified", {
        "complexity": clarification.complexity.value,
        "needs_research": clarification.needs_research,
    })
    return state


def clarification_router(state: Dict[str, Any]) -> str:
    """
    Determine path after clarification.

    Returns:
        - "conversational" when the session already has a response
        - "build_request" otherwise
    """
    if state.get("outcome"):
        return "conversational"
    return "build_request"


__all__ = ["clarification_node", "clarification_router", "DEFAULT_CONVERSATIONAL_RESPONSE"]
