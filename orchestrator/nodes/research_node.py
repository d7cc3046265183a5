# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - RESEARCH NODE
# =============================================================================
"""
Research Node Implementation

Runs the Researcher's search when clarification asked for it and has the
hypothesis validated; otherwise passes the requirements through as an
already-validated hypothesis.

Workflow Position:
    CLARIFICATION --> RESEARCH --> DECISION
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from orchestrator.models import Stage
from orchestrator.nodes._base import NodeContext, add_history_entry, enter_stage, record_gate
from orchestrator.results import ClarificationResult, ResearchFindings

logger = logging.getLogger(__name__)


async def research_node(
    state: Dict[str, Any],
    ctx: NodeContext,
) -> Dict[str, Any]:
    session_id = state["session_id"]
    clarification = ClarificationResult.from_dict(state.get("clarification", {}))

    if not clarification.needs_research:
        findings = ResearchFindings.pass_through(clarification.requirements)
        state["findings"] = findings.to_dict()
        add_history_entry(state, "research", "skipped")
        return state

    await enter_stage(ctx, state, Stage.RESEARCH)
    query = clarification.research_query or state.get("request", "")
    findings = await ctx.agents.researcher.search(session_id, query)

    if findings.hypothesis:
        validation = await ctx.agents.researcher.validate_hypothesis(session_id, findings.hypothesis)
        findings.hypothesis_validated = validation.validated
    record_gate(ctx, state, ctx.gates.validate_hypothesis(findings))

    state["findings"] = findings.to_dict()
    add_history_entry(state, "research", "researched", {
        "fit_score": findings.fit_score,
        "hypothesis_validated": findings.hypothesis_validated,
    })
    logger.info(f"Research complete. Fit score: {findings.fit_score}")
    return state


__all__ = ["research_node"]
