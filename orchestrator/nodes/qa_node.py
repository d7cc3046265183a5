# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - QA NODE
# =============================================================================
"""
QA Node Implementation

One QA cycle: advance the cycle counter, run the escalation the cycle
requires, validate, and enforce live testing before a PASS is accepted.

A PASS is then confirmed by the external test hook when one is
configured; a FAIL that reports a regression restores the snapshot taken
before the last fix.

Escalation by cycle:
    1-3  L1  QA validates, Builder fixes
    4-5  L2  Researcher analyzes executions first
    6-7  L3  Researcher deep-dives over every prior fix attempt first

Workflow Position:
    BUILD/FIX --> QA --(PASS)----> DONE
                     --(FAIL)----> FIX
                     --(BLOCKED)-> POST_MORTEM

NO WORKFLOW IS COMPLETE WITHOUT A REAL TEST EXECUTION.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from orchestrator.engine.gate_enforcer import EscalationLevel, get_escalation_level
from orchestrator.models import Stage
from orchestrator.nodes._base import (
    NodeContext,
    add_history_entry,
    enter_stage,
    finish,
    record_gate,
    rollback_workflow,
)
from orchestrator.results import QAReport, QAStatus, ValidationIssue

logger = logging.getLogger(__name__)


# =============================================================================
# HELPERS
# =============================================================================


async def run_escalation(ctx: NodeContext, state: Dict[str, Any], level: EscalationLevel) -> None:
    """Investigator action required before QA at L2/L3."""
    session_id = state["session_id"]
    workflow_id = state["workflow_id"]
    researcher = ctx.agents.researcher
    logger.info(f"Running {level.value} escalation")

    if level == EscalationLevel.L2:
        previous = QAReport.from_dict(state.get("qa_report", {}))
        await researcher.analyze_execution(session_id, workflow_id, error_summary=previous.error_summary())
    elif level == EscalationLevel.L3:
        attempts = ctx.store.get_fix_attempts(session_id)
        await researcher.deep_dive(
            session_id,
            workflow_id,
            [a.approach for a in attempts],
            ctx.store.format_already_tried(session_id),
        )


async def enforce_live_test(ctx: NodeContext, state: Dict[str, Any], report: QAReport) -> QAReport:
    """
    Accept a PASS only with a real execution behind it.

    A PASS without ``live_test_executed`` forces a test run; the PASS
    stands only if that run executed and every test succeeded.
    """
    gate = record_gate(ctx, state, ctx.gates.check_live_testing(report))
    if gate.passed:
        return report

    await enter_stage(ctx, state, Stage.TEST)
    run = await ctx.agents.qa.test_workflow(state["session_id"], state["workflow_id"])

    if run.all_passed:
        report.live_test_executed = True
        report.test_results = run.test_results
        return report

    report.status = QAStatus.FAIL
    report.test_results = run.test_results
    if run.executed:
        failures = "; ".join(t.error or t.test_type for t in run.test_results if not t.success)
        message = f"Live test failed: {failures}"
    else:
        message = "Live test was not executed"
    report.errors.append(ValidationIssue(code="LIVE_TEST_FAILED", message=message))
    logger.warning(message)
    return report


async def run_external_test(ctx: NodeContext, state: Dict[str, Any], report: QAReport) -> QAReport:
    """
    Confirm a PASS with the configured external test, if any.

    A failed external test turns the PASS into a FAIL and restores the
    snapshot taken before the last fix.
    """
    tester = ctx.runtime.external_tester
    if tester is None or not tester.enabled:
        return report

    result = await tester.run()
    add_history_entry(state, "external_test", "passed" if result.success else "failed", result.to_dict())
    if result.success:
        return report

    message = result.error or "External test failed"
    logger.warning(f"External test failed: {message}")
    report.status = QAStatus.FAIL
    report.errors.append(ValidationIssue(code="EXTERNAL_TEST_FAILED", message=message))
    await rollback_workflow(ctx, state, "External test failed")
    return report


# =============================================================================
# NODE IMPLEMENTATION
# =============================================================================


async def qa_node(
    state: Dict[str, Any],
    ctx: NodeContext,
) -> Dict[str, Any]:
    """
    Run one QA cycle against the built workflow.

    Args:
        state: Current workflow state
        ctx: Node execution context

    Returns:
        Updated state with ``qa_report``
    """
    session_id = state["session_id"]
    workflow_id = state["workflow_id"]

    cycle = await ctx.store.increment_cycle(session_id)
    state["cycle"] = cycle
    escalation = get_escalation_level(cycle, ctx.max_cycles)
    logger.info(f"QA cycle {cycle}/{ctx.max_cycles} ({escalation.level.value})")

    if escalation.level in (EscalationLevel.L2, EscalationLevel.L3):
        await run_escalation(ctx, state, escalation.level)

    await enter_stage(ctx, state, Stage.VALIDATE)
    report = await ctx.agents.qa.validate(session_id, workflow_id)
    report = await enforce_live_test(ctx, state, report)
    if report.status == QAStatus.PASS:
        report = await run_external_test(ctx, state, report)
    elif report.regression_detected:
        await rollback_workflow(ctx, state, "QA detected a regression")
    state["qa_report"] = report.to_dict()

    if ctx.runtime.metrics:
        ctx.runtime.metrics.record_qa_result(report.status.value)
    add_history_entry(state, "qa", "validated", {
        "cycle": cycle,
        "status": report.status.value,
        "errors": len(report.errors),
    })

    if report.status == QAStatus.PASS:
        await enter_stage(ctx, state, Stage.COMPLETE)
        finish(ctx, state, "complete", f"SUCCESS: Workflow {workflow_id} is ready")
        logger.info("Workflow validated successfully")
    elif report.status == QAStatus.BLOCKED:
        await enter_stage(ctx, state, Stage.BLOCKED)
        state["block_reason"] = report.error_summary() or "QA reported BLOCKED"
    else:
        logger.info(f"QA FAIL - {len(report.errors)} errors")

    return state


def qa_router(state: Dict[str, Any]) -> str:
    """
    Determine path after QA.

    Returns:
        - "pass" if QA passed
        - "blocked" if QA reported an unfixable workflow
        - "fail" otherwise
    """
    status = state.get("qa_report", {}).get("status", QAStatus.FAIL.value)
    if status == QAStatus.PASS.value:
        return "pass"
    if status == QAStatus.BLOCKED.value:
        return "blocked"
    return "fail"


__all__ = ["qa_node", "qa_router", "run_escalation", "enforce_live_test", "run_external_test"]
