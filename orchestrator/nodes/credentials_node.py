# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - CREDENTIALS NODE
# =============================================================================
"""
Credentials Node Implementation

Workflow Position:
    DECISION --> CREDENTIALS --> IMPLEMENTATION

The Researcher lists matching credentials on the instance and the
Architect reconciles them with what the blueprint needs. Missing
credentials do not stop the build; they are reported and QA will surface
them as BLOCKED if the workflow cannot run without them.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from orchestrator.models import Stage
from orchestrator.nodes._base import NodeContext, add_history_entry, enter_stage
from orchestrator.results import BlueprintResult

logger = logging.getLogger(__name__)


async def credentials_node(
    state: Dict[str, Any],
    ctx: NodeContext,
) -> Dict[str, Any]:
    session_id = state["session_id"]
    await enter_stage(ctx, state, Stage.CREDENTIALS)

    blueprint = BlueprintResult.from_dict(state.get("blueprint", {}))
    needed = blueprint.credentials_needed or []
    if not needed:
        logger.info("No credentials needed")
        add_history_entry(state, "credentials", "none_needed")
        return state

    discovered = await ctx.agents.researcher.discover_credentials(session_id, needed)
    selection = await ctx.agents.architect.select_credentials(session_id, discovered, needed)
    state["credentials"] = selection.to_dict()

    if selection.missing:
        logger.warning(f"Missing credentials: {', '.join(selection.missing)}")
    add_history_entry(state, "credentials", "resolved", {
        "discovered": len(discovered),
        "missing": selection.missing,
    })
    return state


__all__ = ["credentials_node"]
