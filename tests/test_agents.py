# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - AGENT TESTS
# =============================================================================

import asyncio
import time

import pytest

from agents.analyst import AnalystAgent
from agents.base.llm_client import ToolCallRecord
from agents.base.output_handler import extract_json, parse_agent_output
from agents.builder import BuilderAgent
from agents.qa import QAAgent
from orchestrator.models import AgentResult, AgentRole, FixAttempt, FixOutcome, LoggedCall
from orchestrator.nodes import validate_blueprint
from orchestrator.results import (
    AnalystReport,
    BlueprintResult,
    BuildResult,
    ClarificationResult,
    Complexity,
    QAReport,
    QAStatus,
    ValidationIssue,
    ValidationWarning,
)
from tests.conftest import ScriptedLLM, build_harness, reply


def new_session(harness):
    return asyncio.run(harness.store.create()).id


# =============================================================================
# OUTPUT PARSING
# =============================================================================


@pytest.mark.parametrize("text,expected", [
    ('```json\n{"a": 1}\n```', {"a": 1}),
    ('Here you go:\n```\n{"a": 2}\n```', {"a": 2}),
    ('The result is {"a": 3} as requested', {"a": 3}),
    ('{"a": 4}', {"a": 4}),
    ("no json here", None),
    ("[1, 2]", None),
    ("", None),
])
def test_extract_json(text, expected):
    assert extract_json(text) == expected


@pytest.mark.parametrize("value,status", [
    ("PASS", QAStatus.PASS),
    ("pass", QAStatus.PASS),
    ("BLOCKED", QAStatus.BLOCKED),
    ("PARTIAL", QAStatus.FAIL),
    (None, QAStatus.FAIL),
])
def test_qa_status_parse(value, status):
    assert QAStatus.parse(value) == status


def test_clarification_fallback_reads_free_text():
    result = parse_agent_output("A simple 3 node flow, search templates first", ClarificationResult)
    assert result.node_count == 3
    assert result.complexity == Complexity.SIMPLE
    assert result.needs_research is True


def test_blueprint_fallback_is_rejected():
    blueprint = parse_agent_output("I could not decide", BlueprintResult)
    valid, reason = validate_blueprint(blueprint)
    assert not valid
    assert reason == "No nodes in blueprint"


# =============================================================================
# BLUEPRINT CHECK
# =============================================================================


def _blueprint(**overrides):
    data = {
        "workflow_name": "Sync",
        "nodes": [{"name": "Cron"}, {"name": "HTTP"}],
        "credentials_needed": [],
    }
    data.update(overrides)
    return BlueprintResult.from_dict(data)


def test_validate_blueprint_accepts_complete_blueprint():
    assert validate_blueprint(_blueprint()) == (True, "")


@pytest.mark.parametrize("overrides,reason", [
    ({"workflow_name": " "}, "Missing workflow_name"),
    ({"nodes": []}, "No nodes in blueprint"),
    ({"credentials_needed": None}, "Missing credentials_needed field"),
])
def test_validate_blueprint_rejects(overrides, reason):
    assert validate_blueprint(_blueprint(**overrides)) == (False, reason)


def test_validate_blueprint_enforces_node_count():
    valid, reason = validate_blueprint(_blueprint(), node_count=3)
    assert not valid
    assert reason == "User requested 3 nodes, blueprint has only 2"
    assert validate_blueprint(_blueprint(), node_count=2)[0]


# =============================================================================
# BASE AGENT
# =============================================================================


def test_invoke_logs_successful_tool_calls_only(tmp_path):
    harness = build_harness(tmp_path, {AgentRole.BUILDER: [("", reply(
        {"workflow_id": "wf_1"},
        calls=[
            ToolCallRecord("create_workflow", {"name": "x"}, result_ref="wf_1"),
            ToolCallRecord("update_partial_workflow", {"workflow_id": "wf_1"}, error="HTTP 400"),
        ],
    ))]})
    session_id = new_session(harness)

    result = asyncio.run(harness.runtime.agents.builder.invoke(session_id, "Build", None, BuildResult))

    assert result.success
    assert [c.tool for c in result.logged_calls] == ["create_workflow"]
    assert [c.tool for c in harness.store.get_calls(session_id)] == ["create_workflow"]
    assert harness.store.get_agent_result(session_id, AgentRole.BUILDER) is result
    history = harness.store.get_history(session_id)
    assert history[-1].agent_role == AgentRole.BUILDER
    assert history[-1].tokens == 150


def test_invoke_prompts_carry_role_and_task(tmp_path):
    harness = build_harness(tmp_path)
    session_id = new_session(harness)

    asyncio.run(harness.runtime.agents.qa.validate(session_id, "wf_1"))

    prompt = harness.llm(AgentRole.QA).prompts[0]
    assert prompt.startswith("## TASK\n\nValidate workflow wf_1")
    assert "### workflow_id\nwf_1" in prompt


class SlowLLM(ScriptedLLM):
    def run_with_tools(self, prompt, system=None, tools=None, executor=None):
        time.sleep(0.5)
        return super().run_with_tools(prompt, system, tools, executor)


class BrokenLLM(ScriptedLLM):
    def run_with_tools(self, prompt, system=None, tools=None, executor=None):
        raise RuntimeError("provider unavailable")


def test_invoke_timeout_returns_failure(tmp_path):
    harness = build_harness(tmp_path)
    agent = QAAgent(harness.store, llm=SlowLLM(), timeout=0.05)
    session_id = new_session(harness)

    result = asyncio.run(agent.invoke(session_id, "Validate workflow wf_1", None, QAReport))

    assert not result.success
    assert "timed out after 0.05s" in result.error
    assert harness.store.get_agent_result(session_id, AgentRole.QA).success is False


def test_invoke_error_returns_failure_and_default_payload(tmp_path):
    harness = build_harness(tmp_path)
    agent = QAAgent(harness.store, llm=BrokenLLM())
    session_id = new_session(harness)

    report = asyncio.run(agent.validate(session_id, "wf_1"))

    assert report.status == QAStatus.FAIL
    assert harness.store.get_agent_result(session_id, AgentRole.QA).error == "provider unavailable"


# =============================================================================
# QA AGENT
# =============================================================================


def test_qa_output_without_json_is_fail_with_detected_live_test(tmp_path):
    harness = build_harness(tmp_path, {AgentRole.QA: [("", reply(
        text="Everything looks fine to me.",
        calls=[ToolCallRecord("test_workflow", {"workflow_id": "wf_1"})],
    ))]})
    session_id = new_session(harness)

    report = asyncio.run(harness.runtime.agents.qa.validate(session_id, "wf_1"))

    assert report.status == QAStatus.FAIL
    assert report.live_test_executed is True


def test_claimed_live_test_without_test_call_is_ignored(tmp_path):
    harness = build_harness(tmp_path, {AgentRole.QA: [("", reply({
        "status": "PASS",
        "live_test_executed": True,
        "test_results": [{"test_type": "webhook", "success": True}],
    }))]})
    session_id = new_session(harness)

    report = asyncio.run(harness.runtime.agents.qa.validate(session_id, "wf_1"))

    assert report.status == QAStatus.PASS
    assert report.live_test_executed is False
    assert report.test_results == []


def test_reading_executions_is_not_a_live_test(tmp_path):
    harness = build_harness(tmp_path, {AgentRole.QA: [("", reply(
        text="Looked at the last runs.",
        calls=[ToolCallRecord("list_executions", {"workflow_id": "wf_1"})],
    ))]})
    session_id = new_session(harness)

    report = asyncio.run(harness.runtime.agents.qa.validate(session_id, "wf_1"))

    assert report.live_test_executed is False


def test_filter_false_positives():
    warnings = QAAgent.filter_false_positives([
        ValidationWarning(code="expression-validation", message="Cannot validate dynamic expression"),
        ValidationWarning(code="optional-field-missing", message="options not set"),
        ValidationWarning(code="expression-validation", message="Unknown variable $foo"),
    ])
    assert [w.is_false_positive for w in warnings] == [True, True, False]


def test_generate_edit_scope_dedupes_in_order():
    scope = QAAgent.generate_edit_scope([
        ValidationIssue(code="a", node="Slack"),
        ValidationIssue(code="b", node=""),
        ValidationIssue(code="c", node="HTTP"),
        ValidationIssue(code="d", node="Slack"),
    ])
    assert scope == ["Slack", "HTTP"]


def test_validate_derives_edit_scope_from_errors(tmp_path):
    harness = build_harness(tmp_path, {AgentRole.QA: [("", reply({
        "status": "FAIL",
        "errors": [{"code": "X", "message": "broken", "node": "HTTP"}],
    }))]})
    session_id = new_session(harness)

    report = asyncio.run(harness.runtime.agents.qa.validate(session_id, "wf_1"))

    assert report.edit_scope == ["HTTP"]


def test_quick_validate_never_claims_live_test(tmp_path):
    harness = build_harness(tmp_path, {AgentRole.QA: [("", reply({"status": "PASS", "live_test_executed": True}))]})
    session_id = new_session(harness)

    report = asyncio.run(harness.runtime.agents.qa.quick_validate(session_id, "wf_1"))

    assert report.status == QAStatus.PASS
    assert report.live_test_executed is False


# =============================================================================
# BUILDER AGENT
# =============================================================================


def _result(*calls):
    return AgentResult(agent_role=AgentRole.BUILDER, success=True, logged_calls=list(calls))


def test_resolve_workflow_id_prefers_reported_id():
    build = BuildResult(workflow_id="wf_reported")
    result = _result(LoggedCall.create("create_workflow", AgentRole.BUILDER, result_ref="wf_call"))
    assert BuilderAgent.resolve_workflow_id(build, result) == "wf_reported"


def test_resolve_workflow_id_falls_back_to_mutation_result():
    result = _result(
        LoggedCall.create("get_workflow", AgentRole.BUILDER, result_ref="wf_read"),
        LoggedCall.create("create_workflow", AgentRole.BUILDER, result_ref="wf_call"),
    )
    assert BuilderAgent.resolve_workflow_id(BuildResult(), result) == "wf_call"


def test_resolve_workflow_id_uses_call_params():
    result = _result(LoggedCall.create("update_partial_workflow", AgentRole.BUILDER, {"workflow_id": "wf_param"}))
    assert BuilderAgent.resolve_workflow_id(BuildResult(), result) == "wf_param"


def test_resolve_workflow_id_ignores_read_call_params():
    result = _result(
        LoggedCall.create("get_workflow", AgentRole.BUILDER, {"workflow_id": "wf_unrelated"}),
        LoggedCall.create("list_executions", AgentRole.BUILDER, {"id": "wf_other"}),
    )
    assert BuilderAgent.resolve_workflow_id(BuildResult(), result) == ""


def test_resolve_workflow_id_empty_without_evidence():
    assert BuilderAgent.resolve_workflow_id(BuildResult(), _result()) == ""


def test_delete_requires_confirmation(tmp_path):
    harness = build_harness(tmp_path)
    session_id = new_session(harness)

    outcome = asyncio.run(harness.runtime.agents.builder.delete(session_id, "wf_1", confirmed=False))

    assert outcome == {"deleted": False, "workflow_id": "wf_1"}
    assert harness.llm(AgentRole.BUILDER).tasks == []


# =============================================================================
# ANALYST AGENT
# =============================================================================


@pytest.fixture
def analyst(tmp_path):
    harness = build_harness(tmp_path)
    return harness.runtime.agents.analyst


def test_write_learning_numbers_sequentially(analyst, tmp_path):
    first = analyst.write_learning({"title": "Quote expressions", "content": "Always quote.", "severity": "high"})
    second = analyst.write_learning({"title": "Test webhooks", "content": "Use test_workflow."})

    assert (first, second) == ("L-001", "L-002")
    text = (tmp_path / "docs" / "LEARNINGS.md").read_text()
    assert "### L-001: Quote expressions" in text
    assert "**Severity:** high" in text
    assert "### L-002: Test webhooks" in text


def test_write_learning_continues_existing_numbering(analyst, tmp_path):
    path = tmp_path / "docs" / "LEARNINGS.md"
    path.parent.mkdir(parents=True)
    path.write_text("# LEARNINGS\n\n### L-041: Older entry\n")

    assert analyst.write_learning({"title": "Newer"}) == "L-042"


def test_update_context_replaces_existing_section(analyst, tmp_path):
    path = tmp_path / "docs" / "SYSTEM-CONTEXT.md"
    path.parent.mkdir(parents=True)
    path.write_text("# Context\n\n## Slack\n\nold advice\n\n## HTTP\n\nkeep me\n")

    assert analyst.update_context({"section": "Slack", "content": "new advice"})

    text = path.read_text()
    assert "new advice" in text
    assert "old advice" not in text
    assert "## HTTP\n\nkeep me" in text


def test_update_context_appends_missing_section(analyst, tmp_path):
    assert analyst.update_context({"section": "Webhooks", "content": "Respond immediately"})
    assert "## Webhooks\n\nRespond immediately" in (tmp_path / "docs" / "SYSTEM-CONTEXT.md").read_text()


def test_update_context_needs_a_section(analyst):
    assert analyst.update_context({"content": "orphan"}) is False


def test_user_report_sections():
    report = AnalystReport.from_dict({
        "root_cause": "Wrong node type",
        "timeline": [{"agent": "builder", "action": "create", "result": "ok"}],
        "agent_grades": {"builder": 4},
        "token_usage": {"total": 12345},
        "proposed_learnings": [{"title": "Check node types", "severity": "critical"}],
    })
    attempts = [FixAttempt(cycle=1, approach="Swap node", result=FixOutcome.FAILED, error_type="E1")]

    text = AnalystAgent.generate_user_report(report, attempts)

    assert text.startswith("# Post-Mortem Report")
    assert "## Root Cause\nWrong node type" in text
    assert "- builder: ████░░░░░░ (4/10)" in text
    assert "- Total: 12,345 tokens" in text
    assert "**Check node types** (critical)" in text
    assert "- Cycle 1: Swap node → failed [E1]" in text


def test_post_mortem_measures_tokens_when_model_omits_them(tmp_path):
    harness = build_harness(tmp_path, {AgentRole.ANALYST: [("", reply({"root_cause": "x"}))]})
    session_id = new_session(harness)

    report = asyncio.run(harness.runtime.agents.analyst.post_mortem(session_id, "wf_1"))

    assert report.root_cause == "x"
    assert set(report.token_usage.by_agent) == {role.value for role in AgentRole}
