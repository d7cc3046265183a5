# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - POST-MORTEM NODE
# =============================================================================
"""
Post-Mortem Node Implementation

Terminal blocked state (L4). The Analyst reconstructs what happened,
proposes learnings and context updates and writes them; the session is
archived and the user gets the report.

The Analyst runs at most once per session; a failure to write the report
file is logged and does not stop the session from being archived.

Workflow Position:
    BUILD (no id) / QA (BLOCKED) / FIX (cycles exhausted) / any error
        --> POST_MORTEM --> [END]
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from agents.base.output_handler import OutputHandler
from orchestrator.models import Stage
from orchestrator.nodes._base import NodeContext, add_history_entry, enter_stage, finish

logger = logging.getLogger(__name__)

BLOCKED_PREFIX = "BLOCKED: Workflow could not be completed."


async def post_mortem_node(
    state: Dict[str, Any],
    ctx: NodeContext,
) -> Dict[str, Any]:
    """
    Run the post-mortem and archive the session.

    Args:
        state: Current workflow state
        ctx: Node execution context

    Returns:
        Final blocked state with the user report in ``response``
    """
    session_id = state["session_id"]
    session = ctx.session(state)
    logger.warning(f"Post-mortem for {session_id}: {state.get('block_reason', 'unknown reason')}")

    if not session.stage.is_terminal:
        await enter_stage(ctx, state, Stage.BLOCKED)

    analyst = ctx.agents.analyst
    written: List[Optional[str]] = []
    updated: List[bool] = []
    report = ctx.post_mortems.get(session_id)
    if report is None:
        report = await analyst.post_mortem(session_id, session.workflow_id or "unknown")
        ctx.post_mortems[session_id] = report
        written = [analyst.write_learning(learning) for learning in report.proposed_learnings]
        updated = [analyst.update_context(update) for update in report.context_updates]
    else:
        logger.info(f"Reusing post-mortem already produced for {session_id}")

    user_report = analyst.generate_user_report(report, ctx.store.get_fix_attempts(session_id))
    try:
        OutputHandler(ctx.runtime.reports_dir).write_text(f"POST-MORTEM-{session_id}.md", user_report)
    except OSError as e:
        logger.warning(f"Could not write post-mortem report for {session_id}: {e}")

    finish(ctx, state, "blocked", f"{BLOCKED_PREFIX}\n\n{user_report}")
    add_history_entry(state, "post_mortem", "archived", {
        "learnings": sum(1 for w in written if w),
        "context_updates": sum(1 for u in updated if u),
    })
    state["stage"] = Stage.BLOCKED.value
    await ctx.store.archive(session_id)
    return state


__all__ = ["post_mortem_node", "BLOCKED_PREFIX"]
