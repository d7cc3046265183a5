# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - BUILD NODE
# =============================================================================
"""
Build Node Implementation

The Builder creates the workflow from the blueprint. A build that yields
no workflow id is a hard failure: the session is blocked and goes to the
post-mortem without a retry.

Workflow Position:
    IMPLEMENTATION --> BUILD --(workflow id)--> QA
                             --(no id)------> POST_MORTEM
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from orchestrator.models import Stage
from orchestrator.nodes._base import NodeContext, add_history_entry, enter_stage, record_gate
from orchestrator.results import BlueprintResult

logger = logging.getLogger(__name__)


async def build_node(
    state: Dict[str, Any],
    ctx: NodeContext,
) -> Dict[str, Any]:
    session_id = state["session_id"]
    await enter_stage(ctx, state, Stage.BUILD)

    blueprint = BlueprintResult.from_dict(state.get("blueprint", {}))
    build = await ctx.agents.builder.build(session_id, blueprint)
    state["build"] = build.to_dict()

    record_gate(ctx, state, ctx.gates.check_mutation_calls(ctx.session(state)))

    if not build.workflow_id:
        logger.error("Build failed - no workflow id")
        await enter_stage(ctx, state, Stage.BLOCKED)
        state["block_reason"] = "Build produced no workflow id"
        add_history_entry(state, "build", "no_workflow_id")
        return state

    await ctx.store.set_workflow_id(session_id, build.workflow_id)
    state["workflow_id"] = build.workflow_id
    add_history_entry(state, "build", "built", {"workflow_id": build.workflow_id})
    logger.info(f"Workflow {build.workflow_id} built")
    return state


def build_router(state: Dict[str, Any]) -> str:
    """
    Returns:
        - "built" when a workflow id exists
        - "failed" otherwise
    """
    return "built" if state.get("build", {}).get("workflow_id") else "failed"


__all__ = ["build_node", "build_router"]
