# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - GATE ENFORCER TESTS
# =============================================================================

from datetime import datetime, timedelta

import pytest

from orchestrator.engine.gate_enforcer import EscalationLevel, GateEnforcer, get_escalation_level
from orchestrator.models import AgentResult, AgentRole, LoggedCall, Session, Stage
from orchestrator.results import QAReport, QAStatus, ResearchFindings

NOW = datetime(2026, 1, 1, 12, 0, 0)


@pytest.fixture
def gates():
    return GateEnforcer(freshness_seconds=300, clock=lambda: NOW)


def researcher_result(age_seconds=0, **data):
    return AgentResult(
        agent_role=AgentRole.RESEARCHER,
        success=True,
        data=data,
        timestamp=NOW - timedelta(seconds=age_seconds),
    )


@pytest.mark.parametrize("cycle,level", [
    (1, EscalationLevel.L1),
    (3, EscalationLevel.L1),
    (4, EscalationLevel.L2),
    (5, EscalationLevel.L2),
    (6, EscalationLevel.L3),
    (7, EscalationLevel.L3),
    (8, EscalationLevel.L4),
    (12, EscalationLevel.L4),
])
def test_escalation_levels(cycle, level):
    assert get_escalation_level(cycle).level == level


def test_l4_involves_only_the_analyst():
    assert get_escalation_level(8).agents == [AgentRole.ANALYST]


# =============================================================================
# GATE 1
# =============================================================================


def test_gate1_passes_early_cycles(gates):
    assert gates.check_progressive_escalation(Session(id="s", cycle=3), AgentRole.BUILDER).passed


def test_gate1_blocks_builder_without_recent_research(gates):
    result = gates.check_progressive_escalation(Session(id="s", cycle=4), AgentRole.BUILDER)
    assert not result.passed
    assert result.data["require_agent"] == "researcher"
    assert result.data["escalation"] == "L2"


def test_gate1_blocks_on_stale_research(gates):
    session = Session(id="s", cycle=6, agent_results={AgentRole.RESEARCHER: researcher_result(age_seconds=301)})
    result = gates.check_progressive_escalation(session, AgentRole.BUILDER)
    assert not result.passed
    assert result.data["escalation"] == "L3"


def test_gate1_accepts_fresh_research(gates):
    session = Session(id="s", cycle=5, agent_results={AgentRole.RESEARCHER: researcher_result(age_seconds=10)})
    assert gates.check_progressive_escalation(session, AgentRole.BUILDER).passed


def test_gate1_only_guards_the_builder(gates):
    assert gates.check_progressive_escalation(Session(id="s", cycle=5), AgentRole.QA).passed


def test_gate1_blocks_past_max_cycles(gates):
    result = gates.check_progressive_escalation(Session(id="s", cycle=8), AgentRole.QA)
    assert not result.passed
    assert result.data == {"escalation": "L4", "trigger_analyst": True}
    assert gates.get_violations()[-1].gate == "GATE_1"


def test_gate1_uses_configured_max_cycles():
    gates = GateEnforcer(clock=lambda: NOW, max_cycles=3)

    assert gates.check_progressive_escalation(Session(id="s", cycle=3), AgentRole.QA).passed
    result = gates.check_progressive_escalation(Session(id="s", cycle=4), AgentRole.QA)
    assert not result.passed
    assert "Maximum 3 cycles exceeded (current: 4)" in result.message


@pytest.mark.parametrize("cycle,level", [
    (3, EscalationLevel.L1),
    (4, EscalationLevel.L4),
])
def test_escalation_levels_follow_max_cycles(cycle, level):
    assert get_escalation_level(cycle, max_cycles=3).level == level


def test_record_violation_keeps_the_reason(gates):
    result = gates.check_execution_analysis(Session(id="s", cycle=1), has_failed_execution=True)
    gates.clear_violations()

    gates.record_violation(result, reason="Builder skipped")

    violations = gates.get_violations()
    assert [(v.gate, v.reason) for v in violations] == [("GATE_2", "Builder skipped")]
    assert violations[0].context["require_agent"] == "researcher"


# =============================================================================
# GATE 2
# =============================================================================


def _execution_call(mode, cycle=2):
    return LoggedCall.create("list_executions", AgentRole.RESEARCHER, {"mode": mode}, cycle=cycle)


def test_gate2_ignored_without_failed_execution(gates):
    assert gates.check_execution_analysis(Session(id="s", cycle=2), has_failed_execution=False).passed


def test_gate2_requires_both_modes_this_cycle(gates):
    session = Session(id="s", cycle=2, logged_calls=[_execution_call("summary"), _execution_call("filtered", cycle=1)])
    result = gates.check_execution_analysis(session, has_failed_execution=True)
    assert not result.passed
    assert "Two-step" in result.message


def test_gate2_requires_validated_hypothesis(gates):
    session = Session(
        id="s",
        cycle=2,
        logged_calls=[_execution_call("summary"), _execution_call("filtered")],
        agent_results={AgentRole.RESEARCHER: researcher_result(hypothesis_validated=False)},
    )
    result = gates.check_execution_analysis(session, has_failed_execution=True)
    assert not result.passed
    assert result.data == {"require_validation": True}


def test_gate2_passes_with_full_analysis(gates):
    session = Session(
        id="s",
        cycle=2,
        logged_calls=[_execution_call("summary"), _execution_call("filtered")],
        agent_results={AgentRole.RESEARCHER: researcher_result(hypothesis_validated=True)},
    )
    assert gates.check_execution_analysis(session, has_failed_execution=True).passed


# =============================================================================
# GATE 3
# =============================================================================


def test_gate3_rejects_untested_pass(gates):
    result = gates.check_live_testing(QAReport(status=QAStatus.PASS, live_test_executed=False))
    assert not result.passed
    assert result.message == "REJECTED: QA PASS requires real workflow testing."


@pytest.mark.parametrize("report", [
    QAReport(status=QAStatus.PASS, live_test_executed=True),
    QAReport(status=QAStatus.FAIL, live_test_executed=False),
    QAReport(status=QAStatus.BLOCKED, live_test_executed=False),
])
def test_gate3_passes_otherwise(gates, report):
    assert gates.check_live_testing(report).passed


# =============================================================================
# GATE 5
# =============================================================================


def test_gate5_rejects_builder_without_calls(gates):
    result = gates.check_mutation_calls(Session(id="s"))
    assert not result.passed
    assert result.message == "REJECTED: Builder must log mutation calls."


def test_gate5_rejects_read_only_builder(gates):
    session = Session(id="s", logged_calls=[LoggedCall.create("get_workflow", AgentRole.BUILDER)])
    result = gates.check_mutation_calls(session)
    assert not result.passed
    assert result.data["mutation_calls"] == 0


def test_gate5_counts_mutations(gates):
    session = Session(id="s", logged_calls=[
        LoggedCall.create("get_workflow", AgentRole.BUILDER),
        LoggedCall.create("update_partial_workflow", AgentRole.BUILDER),
        LoggedCall.create("list_executions", AgentRole.RESEARCHER),
    ])
    result = gates.check_mutation_calls(session)
    assert result.passed
    assert result.data == {"total_calls": 2, "mutation_calls": 1}


def test_gate5_skips_other_roles(gates):
    assert gates.check_mutation_calls(Session(id="s"), AgentRole.QA).passed


# =============================================================================
# GATE 6
# =============================================================================


def test_gate6_requires_hypothesis(gates):
    assert not gates.validate_hypothesis(ResearchFindings()).passed


def test_gate6_requires_validation(gates):
    result = gates.validate_hypothesis(ResearchFindings(hypothesis="Use the Slack node"))
    assert not result.passed
    assert result.data["requirement"] == "hypothesis_validated: true"


def test_gate6_passes_validated_hypothesis(gates):
    findings = ResearchFindings(hypothesis="Use the Slack node", hypothesis_validated=True)
    assert gates.validate_hypothesis(findings).passed


# =============================================================================
# COMPOSITE
# =============================================================================


def test_check_all_gates_only_validates_hypothesis_at_decision(gates):
    findings = ResearchFindings(hypothesis="x")

    passed, violations = gates.check_all_gates(Session(id="s", stage=Stage.RESEARCH), AgentRole.ARCHITECT, research_findings=findings)
    assert passed and violations == []

    passed, violations = gates.check_all_gates(Session(id="s", stage=Stage.DECISION), AgentRole.ARCHITECT, research_findings=findings)
    assert not passed
    assert [v.gate for v in violations] == ["GATE_6"]


def test_check_all_gates_collects_builder_violations(gates):
    passed, violations = gates.check_all_gates(
        Session(id="s", cycle=4),
        AgentRole.BUILDER,
        has_failed_execution=True,
        qa_report=QAReport(status=QAStatus.PASS),
    )
    assert not passed
    assert [v.gate for v in violations] == ["GATE_1", "GATE_2", "GATE_3"]


def test_violations_can_be_cleared(gates):
    gates.check_live_testing(QAReport(status=QAStatus.PASS))
    assert len(gates.get_violations()) == 1
    gates.clear_violations()
    assert gates.get_violations() == []
