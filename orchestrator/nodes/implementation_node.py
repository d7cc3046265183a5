# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - IMPLEMENTATION NODE
# =============================================================================
"""
Implementation Node Implementation

Pass-through: the research findings already gathered become the build
guidance. No agent call is made here.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from orchestrator.models import Stage
from orchestrator.nodes._base import NodeContext, add_history_entry, enter_stage

logger = logging.getLogger(__name__)


async def implementation_node(
    state: Dict[str, Any],
    ctx: NodeContext,
) -> Dict[str, Any]:
    await enter_stage(ctx, state, Stage.IMPLEMENTATION)
    state["guidance"] = dict(state.get("findings", {}))
    add_history_entry(state, "implementation", "guidance_ready")
    logger.info("Build guidance ready")
    return state


__all__ = ["implementation_node"]
