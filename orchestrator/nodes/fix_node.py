# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - FIX NODE
# =============================================================================
"""
Fix Node Implementation

Handles a QA FAIL: checks the gates that guard the Builder, runs the
missing investigation if a gate asks for one, snapshots the workflow, then
has the Builder fix only the nodes in the edit scope. Every fix is recorded
as a fix attempt so later prompts can list it under ALREADY TRIED.

The Builder is skipped (attempt recorded as ``skipped``) when GATE_1 or
GATE_2 still fail after the investigation, or when no snapshot could be
taken of the workflow.

Workflow Position:
    QA --(fail)--> FIX --(cycles left)--> QA
                       --(exhausted)---> POST_MORTEM
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from orchestrator.engine.gate_enforcer import GateResult
from orchestrator.models import AgentRole, CallType, FixAttempt, FixOutcome, Stage
from orchestrator.nodes._base import (
    NodeContext,
    add_history_entry,
    enter_stage,
    last_payload,
    record_gate,
    rollback_workflow,
)
from orchestrator.results import QAReport

logger = logging.getLogger(__name__)

INVESTIGATION_GATES = ("GATE_1", "GATE_2")


# =============================================================================
# HELPERS
# =============================================================================


def _builder_gates(ctx: NodeContext, state: Dict[str, Any], report: QAReport) -> List[GateResult]:
    _, violations = ctx.gates.check_all_gates(
        ctx.session(state),
        AgentRole.BUILDER,
        has_failed_execution=report.has_failed_execution(),
    )
    return violations


def _mutated_this_cycle(ctx: NodeContext, state: Dict[str, Any]) -> bool:
    session = ctx.session(state)
    return any(
        call.type == CallType.MUTATION and call.cycle == session.cycle
        for call in ctx.store.get_calls(session.id, AgentRole.BUILDER)
    )


async def _log_attempt(ctx: NodeContext, state: Dict[str, Any], attempt: FixAttempt) -> None:
    session_id = state["session_id"]
    await ctx.store.log_fix_attempt(session_id, attempt)
    if ctx.runtime.audit:
        ctx.runtime.audit.log_fix_attempt(
            session_id, attempt.cycle, attempt.approach, attempt.result.value, attempt.nodes_affected
        )
    add_history_entry(state, "fix", attempt.result.value, {
        "cycle": attempt.cycle,
        "result": attempt.result.value,
        "nodes": attempt.nodes_affected,
    })
    logger.info(f"Fix attempt {attempt.cycle}: {attempt.result.value}")


async def _skip_fix(ctx: NodeContext, state: Dict[str, Any], report: QAReport, reason: str) -> Dict[str, Any]:
    logger.warning(f"Builder skipped: {reason}")
    await _log_attempt(ctx, state, FixAttempt(
        cycle=ctx.session(state).cycle,
        approach=f"Skipped: {reason}",
        result=FixOutcome.SKIPPED,
        nodes_affected=list(report.edit_scope),
        error_type=report.errors[0].code if report.errors and report.errors[0].code else None,
    ))
    return state


# =============================================================================
# NODE IMPLEMENTATION
# =============================================================================


async def fix_node(
    state: Dict[str, Any],
    ctx: NodeContext,
) -> Dict[str, Any]:
    """
    Apply a scoped Builder fix for the latest QA report.

    Args:
        state: Current workflow state
        ctx: Node execution context

    Returns:
        Updated state with the fix's ``build`` result
    """
    session_id = state["session_id"]
    workflow_id = state["workflow_id"]
    report = QAReport.from_dict(state.get("qa_report", {}))
    error_summary = report.error_summary()

    record_gate(ctx, state, ctx.gates.check_mutation_calls(ctx.session(state)))

    violations = _builder_gates(ctx, state, report)
    if any(v.gate in INVESTIGATION_GATES for v in violations):
        logger.info("Builder gates require investigation, running execution analysis")
        await ctx.agents.researcher.analyze_execution(session_id, workflow_id, error_summary=error_summary)
        violations = _builder_gates(ctx, state, report)
    for violation in violations:
        record_gate(ctx, state, violation)

    unresolved = [v for v in violations if v.gate in INVESTIGATION_GATES]
    if unresolved:
        for violation in unresolved:
            ctx.gates.record_violation(violation, reason=f"Builder skipped: {violation.message}")
        return await _skip_fix(ctx, state, report, unresolved[0].message or f"{unresolved[0].gate} failed")

    if ctx.runtime.snapshots is not None:
        snapshot = await ctx.runtime.snapshots.take(workflow_id)
        if not snapshot.success:
            return await _skip_fix(ctx, state, report, f"Snapshot failed: {snapshot.error}")

    await enter_stage(ctx, state, Stage.BUILD)
    build = await ctx.agents.builder.fix(
        session_id,
        workflow_id,
        report.edit_scope,
        error_summary,
        guidance=last_payload(ctx.agents.researcher, session_id),
    )
    state["build"] = build.to_dict()

    mutated = _mutated_this_cycle(ctx, state)
    applied = build.verification.expected_changes_applied and mutated
    if mutated and not applied:
        await rollback_workflow(ctx, state, "Fix did not apply the expected changes")

    await _log_attempt(ctx, state, FixAttempt(
        cycle=ctx.session(state).cycle,
        approach=build.approach or f"Fix: {error_summary[:100] or 'unspecified errors'}",
        result=FixOutcome.SUCCESS if applied else FixOutcome.FAILED,
        nodes_affected=list(report.edit_scope),
        error_type=report.errors[0].code if report.errors and report.errors[0].code else None,
    ))
    return state


def make_fix_router(max_cycles: int):
    """Router sending the loop back to QA until *max_cycles* is reached."""

    def fix_router(state: Dict[str, Any]) -> str:
        """
        Returns:
            - "retry" if cycles remain
            - "exhausted" otherwise
        """
        if state.get("cycle", 0) < max_cycles:
            return "retry"
        return "exhausted"

    return fix_router


__all__ = ["fix_node", "make_fix_router", "INVESTIGATION_GATES"]
