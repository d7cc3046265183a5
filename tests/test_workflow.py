# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - WORKFLOW TESTS
# =============================================================================
"""
End-to-end runs of the build graph with scripted agents.
"""

import asyncio
import itertools
import json

import pytest

from agents.base.llm_client import ToolCallRecord
from orchestrator.engine.external_test import ExternalTestResult
from orchestrator.engine.snapshot import SnapshotManager
from orchestrator.main import CANNOT_RESUME_BUILD, SESSION_ALREADY_COMPLETE, Orchestrator
from orchestrator.models import AgentRole, HistoryEntry, Stage
from orchestrator.nodes import BLOCKED_PREFIX, BLUEPRINT_REJECTED_MESSAGE, ResumeError
from tests.conftest import (
    BUILT,
    POST_MORTEM,
    QA_FAIL,
    QA_PASS,
    FakeWorkflowClient,
    architect_script,
    build_harness,
    reply,
)


def run(harness, request="Build a workflow that forwards webhooks to Slack"):
    orchestrator = Orchestrator(harness.runtime)
    response = asyncio.run(orchestrator.start(request))
    return orchestrator, response


def archived(harness, session_id):
    path = harness.tmp_path / "sessions" / "archives" / f"{session_id}_complete.json"
    assert path.exists()
    return json.loads(path.read_text())


# =============================================================================
# HAPPY PATH
# =============================================================================


def test_build_completes_when_qa_passes(tmp_path):
    harness = build_harness(tmp_path, {
        AgentRole.ARCHITECT: architect_script(),
        AgentRole.BUILDER: [("Build the workflow", BUILT)],
        AgentRole.QA: [("Validate workflow", QA_PASS)],
    })

    orchestrator, response = run(harness)

    assert response == "SUCCESS: Workflow wf_1 is ready"
    session = archived(harness, orchestrator.last_state["session_id"])
    assert session["stage"] == "complete"
    assert session["workflow_id"] == "wf_1"
    assert session["cycle"] == 1
    assert any(c["tool"] == "create_workflow" and c["type"] == "mutation" for c in session["logged_calls"])


def test_conversational_request_completes_without_building(tmp_path):
    greeting = reply({"is_conversational": True, "response": "Hi! Describe the workflow you need."})
    harness = build_harness(tmp_path, {AgentRole.ARCHITECT: [("", greeting)]})

    orchestrator, response = run(harness, "hello")

    assert response == "Hi! Describe the workflow you need."
    assert harness.llm(AgentRole.BUILDER).tasks == []
    assert harness.llm(AgentRole.QA).tasks == []
    session = archived(harness, orchestrator.last_state["session_id"])
    assert session["stage"] == "complete"


# =============================================================================
# BLOCKED PATHS
# =============================================================================


def test_empty_blueprint_blocks_before_build(tmp_path):
    empty = reply({"workflow_name": "Nothing", "nodes": [], "credentials_needed": []})
    harness = build_harness(tmp_path, {AgentRole.ARCHITECT: architect_script(blueprint=empty)})

    orchestrator, response = run(harness)

    assert response == BLUEPRINT_REJECTED_MESSAGE
    assert harness.llm(AgentRole.BUILDER).tasks == []
    session_id = orchestrator.last_state["session_id"]
    assert orchestrator.last_state["block_reason"] == "No nodes in blueprint"
    stored = json.loads((tmp_path / "sessions" / f"{session_id}.json").read_text())
    assert stored["stage"] == "blocked"


def test_blueprint_short_of_requested_node_count_is_rejected(tmp_path):
    clarified = reply({"requirements": "Five steps", "node_count": 5, "needs_research": False})
    harness = build_harness(tmp_path, {AgentRole.ARCHITECT: architect_script(clarification=clarified)})

    orchestrator, response = run(harness, "Build a 5 node workflow")

    assert response == BLUEPRINT_REJECTED_MESSAGE
    assert "User requested 5 nodes" in orchestrator.last_state["block_reason"]
    blueprint_prompt = next(
        p for t, p in zip(harness.llm(AgentRole.ARCHITECT).tasks, harness.llm(AgentRole.ARCHITECT).prompts)
        if t.startswith("Create a blueprint")
    )
    assert "MUST contain at least 5 nodes" in blueprint_prompt


def test_build_without_workflow_id_goes_to_post_mortem(tmp_path):
    harness = build_harness(tmp_path, {
        AgentRole.ARCHITECT: architect_script(),
        AgentRole.BUILDER: [("Build the workflow", reply({"workflow_name": "Webhook to Slack"}))],
        AgentRole.ANALYST: [("Post-mortem", POST_MORTEM)],
    })

    orchestrator, response = run(harness)

    assert response.startswith(BLOCKED_PREFIX)
    assert "## Root Cause" in response
    assert "Slack node expression never resolved" in response
    assert harness.llm(AgentRole.QA).tasks == []

    session_id = orchestrator.last_state["session_id"]
    assert archived(harness, session_id)["stage"] == "blocked"
    assert (tmp_path / "reports" / f"POST-MORTEM-{session_id}.md").exists()


def test_qa_blocked_goes_straight_to_post_mortem(tmp_path):
    blocked = reply({"status": "BLOCKED", "errors": [{"code": "MISSING_CREDENTIAL", "message": "No Slack credential"}]})
    harness = build_harness(tmp_path, {
        AgentRole.ARCHITECT: architect_script(),
        AgentRole.BUILDER: [("Build the workflow", BUILT)],
        AgentRole.QA: [("Validate workflow", blocked)],
        AgentRole.ANALYST: [("Post-mortem", POST_MORTEM)],
    })

    orchestrator, response = run(harness)

    assert response.startswith(BLOCKED_PREFIX)
    assert orchestrator.last_state["block_reason"] == "No Slack credential"
    assert harness.llm(AgentRole.BUILDER).count("Fix workflow") == 0


# =============================================================================
# LIVE TEST ENFORCEMENT
# =============================================================================


def test_pass_without_live_test_forces_a_test_run(tmp_path):
    untested = reply({"status": "PASS", "live_test_executed": False})
    tested = reply(
        {"test_results": [{"test_type": "webhook", "success": True, "execution_id": "exec_9"}]},
        calls=[ToolCallRecord("test_workflow", {"workflow_id": "wf_1"}, result_ref="exec_9")],
    )
    harness = build_harness(tmp_path, {
        AgentRole.ARCHITECT: architect_script(),
        AgentRole.BUILDER: [("Build the workflow", BUILT)],
        AgentRole.QA: [("Validate workflow", untested), ("Test workflow", tested)],
    })

    orchestrator, response = run(harness)

    assert harness.llm(AgentRole.QA).tasks == ["Validate workflow wf_1", "Test workflow wf_1"]
    assert response == "SUCCESS: Workflow wf_1 is ready"
    report = orchestrator.last_state["qa_report"]
    assert report["live_test_executed"] is True
    assert report["test_results"][0]["execution_id"] == "exec_9"


def test_self_reported_live_test_still_forces_a_test_run(tmp_path):
    claimed = reply({"status": "PASS", "live_test_executed": True})
    tested = reply(
        {"test_results": [{"test_type": "webhook", "success": True, "execution_id": "exec_3"}]},
        calls=[ToolCallRecord("test_workflow", {"workflow_id": "wf_1"}, result_ref="exec_3")],
    )
    harness = build_harness(tmp_path, {
        AgentRole.ARCHITECT: architect_script(),
        AgentRole.BUILDER: [("Build the workflow", BUILT)],
        AgentRole.QA: [("Validate workflow", claimed), ("Test workflow", tested)],
    })

    orchestrator, response = run(harness)

    assert harness.llm(AgentRole.QA).count("Test workflow") == 1
    assert response == "SUCCESS: Workflow wf_1 is ready"
    assert orchestrator.last_state["qa_report"]["test_results"][0]["execution_id"] == "exec_3"


def test_test_results_without_test_call_do_not_count(tmp_path):
    untested = reply({"status": "PASS", "live_test_executed": False})
    claimed = reply({"test_results": [{"test_type": "webhook", "success": True}]})
    harness = build_harness(tmp_path, {
        AgentRole.ARCHITECT: architect_script(),
        AgentRole.BUILDER: [("Build the workflow", BUILT)],
        AgentRole.QA: [("Validate workflow", untested), ("Test workflow", claimed)],
        AgentRole.ANALYST: [("Post-mortem", POST_MORTEM)],
    }, max_cycles=1)

    orchestrator, response = run(harness)

    assert response.startswith(BLOCKED_PREFIX)
    report = orchestrator.last_state["qa_report"]
    assert report["status"] == "FAIL"
    assert report["errors"][-1]["code"] == "LIVE_TEST_FAILED"


# =============================================================================
# FIX LOOP
# =============================================================================


def _fix_reply():
    counter = itertools.count(1)

    def answer(task, prompt):
        n = next(counter)
        return reply(
            {
                "workflow_id": "wf_1",
                "approach": f"Rewrite Slack expression, variant {n}",
                "verification": {"version_changed": True, "expected_changes_applied": True},
            },
            calls=[ToolCallRecord("update_partial_workflow", {"workflow_id": "wf_1"}, result_ref="wf_1")],
        )

    return answer


def test_seven_failed_cycles_block_with_ordered_fix_history(tmp_path):
    harness = build_harness(tmp_path, {
        AgentRole.ARCHITECT: architect_script(),
        AgentRole.BUILDER: [("Build the workflow", BUILT), ("Fix workflow", _fix_reply())],
        AgentRole.QA: [("Validate workflow", QA_FAIL)],
        AgentRole.ANALYST: [("Post-mortem", POST_MORTEM)],
    })

    orchestrator, response = run(harness)

    assert response.startswith(BLOCKED_PREFIX)
    assert harness.llm(AgentRole.QA).count("Validate workflow") == 7
    assert harness.llm(AgentRole.BUILDER).count("Fix workflow") == 7

    session = archived(harness, orchestrator.last_state["session_id"])
    attempts = session["fix_attempts"]
    assert [a["cycle"] for a in attempts] == [1, 2, 3, 4, 5, 6, 7]
    assert all(a["result"] == "success" for a in attempts)
    assert attempts[0]["nodes_affected"] == ["Slack"]
    assert attempts[0]["error_type"] == "INVALID_EXPRESSION"
    assert "## Fix Attempts" in response
    assert "Cycle 7: Rewrite Slack expression, variant 7" in response


def test_escalation_brings_in_the_researcher(tmp_path):
    harness = build_harness(tmp_path, {
        AgentRole.ARCHITECT: architect_script(),
        AgentRole.BUILDER: [("Build the workflow", BUILT), ("Fix workflow", _fix_reply())],
        AgentRole.QA: [("Validate workflow", QA_FAIL)],
        AgentRole.ANALYST: [("Post-mortem", POST_MORTEM)],
    })

    run(harness)

    researcher = harness.llm(AgentRole.RESEARCHER)
    # L2 at cycles 4-5, L3 at cycles 6-7
    assert researcher.count("Analyze execution failures of workflow wf_1") >= 2
    assert researcher.count("Deep dive root cause analysis") == 2


def test_fix_prompts_list_previous_attempts(tmp_path):
    harness = build_harness(tmp_path, {
        AgentRole.ARCHITECT: architect_script(),
        AgentRole.BUILDER: [("Build the workflow", BUILT), ("Fix workflow", _fix_reply())],
        AgentRole.QA: [("Validate workflow", QA_FAIL)],
        AgentRole.ANALYST: [("Post-mortem", POST_MORTEM)],
    }, max_cycles=3)

    run(harness)

    builder = harness.llm(AgentRole.BUILDER)
    fix_prompts = [p for t, p in zip(builder.tasks, builder.prompts) if t.startswith("Fix workflow")]
    assert len(fix_prompts) == 3
    assert "ALREADY TRIED (DO NOT REPEAT!)" not in fix_prompts[0]
    assert "### Cycle 1: Rewrite Slack expression, variant 1" in fix_prompts[1]
    assert "### Cycle 2: Rewrite Slack expression, variant 2" in fix_prompts[2]
    assert "- Slack" in fix_prompts[0]


def test_fix_without_mutation_is_recorded_as_failed(tmp_path):
    claims_success = reply({
        "workflow_id": "wf_1",
        "approach": "Said it fixed it",
        "verification": {"expected_changes_applied": True},
    })
    harness = build_harness(tmp_path, {
        AgentRole.ARCHITECT: architect_script(),
        AgentRole.BUILDER: [("Build the workflow", BUILT), ("Fix workflow", claims_success)],
        AgentRole.QA: [("Validate workflow", QA_FAIL)],
        AgentRole.ANALYST: [("Post-mortem", POST_MORTEM)],
    }, max_cycles=1)

    orchestrator, _ = run(harness)

    attempts = archived(harness, orchestrator.last_state["session_id"])["fix_attempts"]
    assert [a["result"] for a in attempts] == ["failed"]


def test_fix_is_skipped_while_execution_analysis_is_missing(tmp_path):
    failed_run = reply(
        {
            "status": "FAIL",
            "live_test_executed": True,
            "test_results": [{"test_type": "webhook", "success": False, "execution_id": "exec_4", "error": "Slack 400"}],
            "errors": [{"code": "EXECUTION_FAILED", "message": "Slack returned 400", "node": "Slack"}],
        },
        calls=[ToolCallRecord("test_workflow", {"workflow_id": "wf_1"}, result_ref="exec_4")],
    )
    harness = build_harness(tmp_path, {
        AgentRole.ARCHITECT: architect_script(),
        AgentRole.BUILDER: [("Build the workflow", BUILT), ("Fix workflow", _fix_reply())],
        AgentRole.QA: [("Validate workflow", failed_run)],
        AgentRole.ANALYST: [("Post-mortem", POST_MORTEM)],
    }, max_cycles=2)

    orchestrator, response = run(harness)

    assert response.startswith(BLOCKED_PREFIX)
    assert harness.llm(AgentRole.BUILDER).count("Fix workflow") == 0
    assert harness.llm(AgentRole.RESEARCHER).count("Analyze execution failures of workflow wf_1") == 2

    attempts = archived(harness, orchestrator.last_state["session_id"])["fix_attempts"]
    assert [a["result"] for a in attempts] == ["skipped", "skipped"]
    assert attempts[0]["approach"].startswith("Skipped: BLOCKED: Two-step execution analysis required")
    skipped = [v for v in harness.runtime.gate_enforcer.get_violations() if v.reason.startswith("Builder skipped")]
    assert [v.gate for v in skipped] == ["GATE_2", "GATE_2"]


# =============================================================================
# ERRORS
# =============================================================================


def test_rejected_blueprint_in_interactive_mode_runs_post_mortem(tmp_path):
    harness = build_harness(
        tmp_path,
        {
            AgentRole.ARCHITECT: architect_script(),
            AgentRole.ANALYST: [("Post-mortem", POST_MORTEM)],
        },
        interactive=True,
        answers=["", "n"],
    )

    orchestrator, response = run(harness)

    assert response.startswith(BLOCKED_PREFIX)
    assert orchestrator.last_state["block_reason"].startswith("BlueprintRejectedError")
    assert harness.llm(AgentRole.BUILDER).tasks == []
    audit = (tmp_path / "logs" / "audit.jsonl").read_text()
    assert '"event_type": "error"' in audit


def test_node_exception_ends_blocked_with_one_post_mortem(tmp_path, monkeypatch):
    harness = build_harness(tmp_path, {
        AgentRole.ARCHITECT: architect_script(),
        AgentRole.ANALYST: [("Post-mortem", POST_MORTEM)],
    })

    async def crash(*args, **kwargs):
        raise RuntimeError("builder crashed")

    monkeypatch.setattr(harness.runtime.agents.builder, "build", crash)

    orchestrator, response = run(harness)

    assert response.startswith(BLOCKED_PREFIX)
    assert "Slack node expression never resolved" in response
    assert orchestrator.last_state["block_reason"] == "RuntimeError: builder crashed"
    assert harness.llm(AgentRole.ANALYST).count("Post-mortem") == 1
    assert archived(harness, orchestrator.last_state["session_id"])["stage"] == "blocked"
    audit = (tmp_path / "logs" / "audit.jsonl").read_text()
    assert '"event_type": "error"' in audit


def test_unwritable_reports_dir_still_returns_the_report(tmp_path, caplog):
    (tmp_path / "reports").write_text("not a directory")
    harness = build_harness(tmp_path, {
        AgentRole.ARCHITECT: architect_script(),
        AgentRole.BUILDER: [("Build the workflow", reply({"workflow_name": "Webhook to Slack"}))],
        AgentRole.ANALYST: [("Post-mortem", POST_MORTEM)],
    })

    orchestrator, response = run(harness)

    assert response.startswith(BLOCKED_PREFIX)
    assert "## Root Cause" in response
    assert "Could not write post-mortem report" in caplog.text
    assert harness.llm(AgentRole.ANALYST).count("Post-mortem") == 1
    assert archived(harness, orchestrator.last_state["session_id"])["stage"] == "blocked"


def test_post_mortem_crash_after_analysis_reuses_the_report(tmp_path, monkeypatch):
    with_learning = reply({
        "root_cause": "Slack node expression never resolved",
        "proposed_learnings": [{"title": "Quote Slack expressions", "content": "Wrap in {{ }}"}],
    })
    harness = build_harness(tmp_path, {
        AgentRole.ARCHITECT: architect_script(),
        AgentRole.BUILDER: [("Build the workflow", reply({"workflow_name": "Webhook to Slack"}))],
        AgentRole.ANALYST: [("Post-mortem", with_learning)],
    })

    def broken_write(learning):
        raise RuntimeError("learnings file locked")

    monkeypatch.setattr(harness.runtime.agents.analyst, "write_learning", broken_write)

    orchestrator, response = run(harness)

    assert response.startswith(BLOCKED_PREFIX)
    assert "Slack node expression never resolved" in response
    assert harness.llm(AgentRole.ANALYST).count("Post-mortem") == 1
    assert orchestrator.last_state["block_reason"] == "RuntimeError: learnings file locked"
    assert archived(harness, orchestrator.last_state["session_id"])["stage"] == "blocked"


def test_failing_post_mortem_still_returns_blocked(tmp_path, monkeypatch):
    harness = build_harness(tmp_path, {
        AgentRole.ARCHITECT: architect_script(),
        AgentRole.BUILDER: [("Build the workflow", reply({"workflow_name": "Webhook to Slack"}))],
    })

    async def offline(*args, **kwargs):
        raise RuntimeError("analyst offline")

    monkeypatch.setattr(harness.runtime.agents.analyst, "post_mortem", offline)

    orchestrator, response = run(harness)

    assert response.startswith(BLOCKED_PREFIX)
    assert "Post-mortem unavailable: analyst offline" in response
    assert orchestrator.last_state["outcome"] == "blocked"
    audit = (tmp_path / "logs" / "audit.jsonl").read_text()
    assert '"component": "post_mortem"' in audit


def test_blueprint_feedback_regenerates_in_interactive_mode(tmp_path):
    harness = build_harness(
        tmp_path,
        {
            AgentRole.ARCHITECT: architect_script(),
            AgentRole.BUILDER: [("Build the workflow", BUILT)],
            AgentRole.QA: [("Validate workflow", QA_PASS)],
        },
        interactive=True,
        answers=["A", "also log to a sheet", "y"],
    )

    _, response = run(harness)

    assert response == "SUCCESS: Workflow wf_1 is ready"
    architect = harness.llm(AgentRole.ARCHITECT)
    assert architect.count("Create a blueprint for option A") == 2
    assert "also log to a sheet" in architect.prompts[-1]


# =============================================================================
# RESUME
# =============================================================================


def test_resume_unknown_session_raises(harness):
    orchestrator = Orchestrator(harness.runtime)
    with pytest.raises(ResumeError):
        asyncio.run(orchestrator.resume("session_missing"))


def test_resume_in_build_stage_blocks_session(harness):
    async def scenario():
        session = await harness.store.create()
        await harness.store.update_stage(session.id, Stage.BUILD)
        response = await Orchestrator(harness.runtime).resume(session.id)
        return session.id, response

    session_id, response = asyncio.run(scenario())

    assert response == CANNOT_RESUME_BUILD
    assert harness.store.get(session_id).stage == Stage.BLOCKED


def test_resume_complete_session(harness):
    async def scenario():
        session = await harness.store.create()
        await harness.store.update_stage(session.id, Stage.COMPLETE)
        return await Orchestrator(harness.runtime).resume(session.id)

    assert asyncio.run(scenario()) == SESSION_ALREADY_COMPLETE


def test_resume_clarification_reuses_original_request(tmp_path):
    greeting = reply({"is_conversational": True, "response": "Happy to help."})
    harness = build_harness(tmp_path, {AgentRole.ARCHITECT: [("", greeting)]})

    async def scenario():
        session = await harness.store.create()
        await harness.store.add_history_entry(session.id, HistoryEntry(role="user", content="hello again"))
        orchestrator = Orchestrator(harness.runtime)
        return session.id, await orchestrator.resume(session.id)

    session_id, response = asyncio.run(scenario())

    assert response == "Happy to help."
    assert harness.llm(AgentRole.ARCHITECT).tasks == ["hello again"]
    history = archived(harness, session_id)["history"]
    assert [h["content"] for h in history if h["role"] == "user"] == ["hello again"]


def test_resume_blocked_session_runs_post_mortem(tmp_path):
    harness = build_harness(tmp_path, {AgentRole.ANALYST: [("Post-mortem", POST_MORTEM)]})

    async def scenario():
        session = await harness.store.create(workflow_id="wf_7")
        await harness.store.update_stage(session.id, Stage.BLOCKED)
        return session.id, await Orchestrator(harness.runtime).resume(session.id)

    session_id, response = asyncio.run(scenario())

    assert response.startswith(BLOCKED_PREFIX)
    assert harness.llm(AgentRole.ANALYST).tasks == ["Post-mortem analysis for blocked workflow wf_7"]
    assert archived(harness, session_id)["stage"] == "blocked"


# =============================================================================
# SNAPSHOTS / EXTERNAL TEST
# =============================================================================


def test_fix_snapshots_workflow_and_regression_rolls_back(tmp_path):
    regressed = reply({
        "status": "FAIL",
        "regression_detected": True,
        "errors": [{"code": "REGRESSION", "message": "Webhook stopped responding", "node": "Webhook"}],
    })
    answers = iter([QA_FAIL, regressed])
    harness = build_harness(tmp_path, {
        AgentRole.ARCHITECT: architect_script(),
        AgentRole.BUILDER: [("Build the workflow", BUILT), ("Fix workflow", _fix_reply())],
        AgentRole.QA: [("Validate workflow", lambda task, prompt: next(answers, regressed))],
        AgentRole.ANALYST: [("Post-mortem", POST_MORTEM)],
    }, max_cycles=2)
    client = FakeWorkflowClient()
    harness.runtime.snapshots = SnapshotManager(client)

    orchestrator, response = run(harness)

    assert response.startswith(BLOCKED_PREFIX)
    assert client.reads == ["wf_1", "wf_1"]
    assert [workflow_id for workflow_id, _ in client.restored] == ["wf_1"]
    assert client.restored[0][1]["versionId"] == "v1"
    assert harness.llm(AgentRole.BUILDER).count("Fix workflow") == 2


def test_failed_snapshot_skips_the_fix(tmp_path):
    harness = build_harness(tmp_path, {
        AgentRole.ARCHITECT: architect_script(),
        AgentRole.BUILDER: [("Build the workflow", BUILT), ("Fix workflow", _fix_reply())],
        AgentRole.QA: [("Validate workflow", QA_FAIL)],
        AgentRole.ANALYST: [("Post-mortem", POST_MORTEM)],
    }, max_cycles=1)
    harness.runtime.snapshots = SnapshotManager(FakeWorkflowClient(fail_reads=True))

    orchestrator, _ = run(harness)

    assert harness.llm(AgentRole.BUILDER).count("Fix workflow") == 0
    attempts = archived(harness, orchestrator.last_state["session_id"])["fix_attempts"]
    assert [a["result"] for a in attempts] == ["skipped"]
    assert attempts[0]["approach"].startswith("Skipped: Snapshot failed")


class RecordingTester:
    enabled = True

    def __init__(self, result):
        self.result = result
        self.runs = 0

    async def run(self, message=None, expected_pattern=None):
        self.runs += 1
        return self.result


def test_external_test_failure_turns_pass_into_fix(tmp_path):
    harness = build_harness(tmp_path, {
        AgentRole.ARCHITECT: architect_script(),
        AgentRole.BUILDER: [("Build the workflow", BUILT), ("Fix workflow", _fix_reply())],
        AgentRole.QA: [("Validate workflow", QA_PASS)],
        AgentRole.ANALYST: [("Post-mortem", POST_MORTEM)],
    }, max_cycles=1)
    tester = RecordingTester(ExternalTestResult(success=False, response="", error="Response did not match /Welcome/"))
    harness.runtime.external_tester = tester

    orchestrator, response = run(harness)

    assert response.startswith(BLOCKED_PREFIX)
    assert tester.runs == 1
    report = orchestrator.last_state["qa_report"]
    assert report["status"] == "FAIL"
    assert report["errors"][-1]["code"] == "EXTERNAL_TEST_FAILED"
    assert report["errors"][-1]["message"] == "Response did not match /Welcome/"
    assert harness.llm(AgentRole.BUILDER).count("Fix workflow") == 1


def test_passing_external_test_keeps_success(tmp_path):
    harness = build_harness(tmp_path, {
        AgentRole.ARCHITECT: architect_script(),
        AgentRole.BUILDER: [("Build the workflow", BUILT)],
        AgentRole.QA: [("Validate workflow", QA_PASS)],
    })
    tester = RecordingTester(ExternalTestResult(success=True, response="Welcome!"))
    harness.runtime.external_tester = tester

    _, response = run(harness)

    assert response == "SUCCESS: Workflow wf_1 is ready"
    assert tester.runs == 1
