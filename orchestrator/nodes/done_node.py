# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - DONE NODE
# =============================================================================
"""
Done Node Implementation

Terminal node for sessions that ended without a post-mortem. Completed
sessions are archived; a session blocked by the blueprint check stays
active so ``resume`` can still run its post-mortem.

Workflow Position:
    CLARIFICATION (conversational) / QA (PASS) / DECISION (invalid) --> DONE --> [END]
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from orchestrator.nodes._base import NodeContext, add_history_entry

logger = logging.getLogger(__name__)


async def done_node(
    state: Dict[str, Any],
    ctx: NodeContext,
) -> Dict[str, Any]:
    session_id = state["session_id"]
    outcome = state.get("outcome", "complete")
    logger.info(f"Done node: {session_id} ({outcome})")

    if outcome == "complete":
        await ctx.store.archive(session_id)
    else:
        await ctx.store.persist(ctx.session(state))

    add_history_entry(state, "done", outcome)
    return state


__all__ = ["done_node"]
