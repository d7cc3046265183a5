# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - ANALYZE MODE TESTS
# =============================================================================

import asyncio
import json

import pytest

from agents.base.llm_client import ToolCallRecord
from orchestrator.analyze import (
    AnalysisResult,
    AnalysisStatus,
    Analyzer,
    ApprovalChoice,
    ApprovalFlow,
    ContextPermissionError,
    FixRunner,
    MessageCoordinator,
    MessageStatus,
    MessageTimeoutError,
    SharedContextStore,
    TaskStatus,
    TodoStore,
    format_isolated_nodes,
    isolate_nodes,
    todo_from_report,
)
from orchestrator.analyze.analyzer import read_project_docs
from orchestrator.analyze.approval import manual_instructions, parse_choice
from orchestrator.analyze.fixer import NO_TODO_MESSAGE
from orchestrator.analyze.todo import TodoValidationError
from orchestrator.engine.snapshot import SnapshotManager
from orchestrator.models import AgentRole
from orchestrator.results import AnalysisReport
from tests.conftest import QA_FAIL, QA_PASS, FakeWorkflowClient, build_harness, reply


@pytest.fixture
def store(tmp_path):
    return SharedContextStore("wf_42", str(tmp_path / "analyze"))


# =============================================================================
# SHARED CONTEXT STORE
# =============================================================================


def test_each_field_has_one_writer(store):
    store.set("workflow_data", {"id": "wf_42", "nodes": [{"name": "Cron"}]}, "orchestrator")
    store.set("architect_context", {"project_goal": "sync"}, AgentRole.ARCHITECT)

    with pytest.raises(ContextPermissionError):
        store.set("architect_context", {}, AgentRole.RESEARCHER)
    with pytest.raises(ContextPermissionError):
        store.set("workflow_data", {}, "analyst")

    assert store.get("architect_context") == {"project_goal": "sync"}


def test_writes_are_persisted_and_reloadable(store, tmp_path):
    store.set("researcher_findings", {"issues": ["no retry"]}, "researcher")
    store.update_status(AnalysisStatus.UNDERSTANDING)

    assert SharedContextStore.exists(store.analysis_id, str(tmp_path / "analyze"))
    loaded = SharedContextStore.load(store.analysis_id, str(tmp_path / "analyze"))

    assert loaded.status == AnalysisStatus.UNDERSTANDING
    assert loaded.get("researcher_findings") == {"issues": ["no retry"]}
    assert loaded.get("workflow_data")["id"] == "wf_42"


def test_load_unknown_analysis_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        SharedContextStore.load("analysis_missing", str(tmp_path))


def test_out_of_order_status_is_applied(store):
    store.update_status(AnalysisStatus.SYNTHESIZING)
    assert store.status == AnalysisStatus.SYNTHESIZING


def test_subscriber_failure_does_not_block_writes(store):
    seen = []
    store.subscribe("broken", lambda _: 1 / 0)
    store.subscribe("ok", lambda s: seen.append(s.status))

    store.update_status(AnalysisStatus.UNDERSTANDING)
    store.unsubscribe("ok")
    store.update_status(AnalysisStatus.INVESTIGATING)

    assert seen == [AnalysisStatus.UNDERSTANDING]


def test_summary_line(store):
    store.set("architect_context", {}, AgentRole.ARCHITECT)
    assert store.summary() == (
        f"Analysis: {store.analysis_id} | Status: loading | Nodes: 0 | Contributions: [A--] | Pending Q&A: 0"
    )


# =============================================================================
# MESSAGE COORDINATOR
# =============================================================================


def test_process_pending_answers_questions(store):
    coordinator = MessageCoordinator(store)

    async def architect(message):
        return f"answer to {message.content}"

    coordinator.register_handler(AgentRole.ARCHITECT, architect)
    question = coordinator.send_question(AgentRole.RESEARCHER, AgentRole.ARCHITECT, "what is it for?")

    processed = asyncio.run(coordinator.process_pending())

    assert processed == 1
    assert store.find_message(question.id).status == MessageStatus.RESOLVED
    assert store.answer_for(question.id).content == "answer to what is it for?"
    exchange = coordinator.get_qa_exchanges()[0].to_dict()
    assert (exchange["from"], exchange["to"]) == ("researcher", "architect")


def test_ask_waits_for_processing(store):
    coordinator = MessageCoordinator(store, poll_interval=0.01, timeout=2)

    async def architect(message):
        return "hourly"

    coordinator.register_handler("architect", architect)

    async def scenario():
        waiting = asyncio.ensure_future(coordinator.ask("researcher", "architect", "how often?"))
        while not coordinator.has_pending():
            await asyncio.sleep(0)
        await coordinator.process_pending()
        return await waiting

    assert asyncio.run(scenario()).content == "hourly"


def test_ask_times_out_without_handler(store):
    coordinator = MessageCoordinator(store, poll_interval=0.01, timeout=0.05)

    with pytest.raises(MessageTimeoutError):
        asyncio.run(coordinator.ask("researcher", "architect", "anyone?"))


def test_missing_handler_leaves_question_pending(store):
    coordinator = MessageCoordinator(store)
    coordinator.send_question("researcher", "analyst", "?")

    assert asyncio.run(coordinator.process_pending()) == 0
    assert coordinator.pending_count() == 1


def test_failing_handler_times_out_after_retries(store):
    coordinator = MessageCoordinator(store, max_retries=3)

    async def broken(message):
        raise RuntimeError("model down")

    coordinator.register_handler("architect", broken)
    question = coordinator.send_question("researcher", "architect", "?")

    async def scenario():
        for _ in range(3):
            await coordinator.process_pending()
        return await coordinator.wait_for_answer(question.id, timeout=1)

    with pytest.raises(MessageTimeoutError):
        asyncio.run(scenario())
    message = store.find_message(question.id)
    assert message.retry_count == 3
    assert message.status == MessageStatus.TIMEOUT


def test_notify_is_resolved_immediately(store):
    coordinator = MessageCoordinator(store)
    coordinator.notify("orchestrator", "all", "status", "loading done")

    assert coordinator.pending_count() == 0
    assert store.message_queue[0].status == MessageStatus.RESOLVED


# =============================================================================
# ANALYZER
# =============================================================================


def test_read_project_docs(tmp_path):
    (tmp_path / "README.md").write_text("# CRM sync")
    (tmp_path / ".context").mkdir()
    (tmp_path / ".context" / "decisions.md").write_text("use hourly runs")

    docs = read_project_docs(str(tmp_path))

    assert docs["readme"] == "# CRM sync"
    assert docs["todo"] is None
    assert docs["context_files"] == {"decisions.md": "use hourly runs"}


def _analysis_harness(tmp_path):
    return build_harness(tmp_path, {
        AgentRole.ARCHITECT: [
            ("Work out what this workflow", reply({"project_goal": "Keep the CRM in sync", "workflow_purpose": "Hourly sync"})),
            ("Answer a question", reply({"answer": "It should run hourly"})),
        ],
        AgentRole.RESEARCHER: [
            ("Audit workflow", reply({
                "issues": [{"node": "HTTP", "issue": "no retry"}],
                "questions": [{"to": "architect", "question": "How often should it run?"}],
            })),
        ],
        AgentRole.ANALYST: [
            ("Synthesize analysis report", reply({
                "summary": "needs_attention: HTTP calls are not retried",
                "findings": [{"id": "F001", "title": "No retry", "severity": "high"}],
                "recommendations": [{"id": "R001", "priority": "P1", "title": "Enable retry", "effort": "low", "impact": "high"}],
                "roadmap": [{"phase": 1, "title": "Critical Fixes", "items": ["Enable retry on HTTP"]}],
            })),
        ],
    })


def test_analyzer_runs_phases_and_writes_reports(tmp_path):
    harness = _analysis_harness(tmp_path)
    project = tmp_path / "project"
    project.mkdir()
    (project / "README.md").write_text("CRM sync project readme")

    analyzer = Analyzer(harness.runtime)
    result = asyncio.run(analyzer.analyze("wf_42", str(project)))

    assert result.success, result.error
    assert result.output_path.endswith(".md")
    markdown = (tmp_path / "reports").glob("ANALYSIS-wf_42-*.md")
    assert len(list(markdown)) == 1
    assert len(list((tmp_path / "reports").glob("ANALYSIS-wf_42-*.json"))) == 1
    assert "[P1] **Enable retry**" in open(result.output_path).read()

    assert [e["answer"] for e in result.qa_exchanges] == ["It should run hourly"]
    architect = harness.llm(AgentRole.ARCHITECT)
    assert "CRM sync project readme" in architect.prompts[0]
    assert architect.tasks[1] == "Answer a question from the researcher: How often should it run?"
    assert "It should run hourly" in harness.llm(AgentRole.ANALYST).prompts[0]

    persisted = json.loads((tmp_path / "sessions" / "analyze" / f"{result.analysis_id}.json").read_text())
    assert persisted["status"] == "complete"
    assert persisted["architect_context"]["project_goal"] == "Keep the CRM in sync"
    assert persisted["analyst_report"]["findings"][0]["id"] == "F001"
    assert harness.llm(AgentRole.BUILDER).tasks == []
    assert "Findings: 1" in result.summary()

    todo = json.loads((tmp_path / "sessions" / result.analysis_id / "TODO.json").read_text())
    assert result.todo_path.endswith("TODO.json")
    assert [(t["id"], t["priority"], t["status"]) for t in todo["tasks"]] == [("R001", "P1", "pending")]


def test_analyzer_reports_failure(tmp_path, monkeypatch):
    harness = _analysis_harness(tmp_path)

    async def explode(*args, **kwargs):
        raise RuntimeError("synthesis crashed")

    monkeypatch.setattr(harness.runtime.agents.analyst, "generate_analysis_report", explode)
    result = asyncio.run(Analyzer(harness.runtime).analyze("wf_42"))

    assert not result.success
    assert result.error == "synthesis crashed"
    assert result.summary() == f"Analysis {result.analysis_id} failed: synthesis crashed"
    assert list((tmp_path / "sessions" / "archives").glob("*_complete.json"))


# =============================================================================
# FIX TODO LIST
# =============================================================================


REPORT = AnalysisReport(
    summary="needs_attention",
    findings=[
        {"id": "F001", "title": "Bad expression", "affected_nodes": ["Slack"]},
        {"id": "F002", "title": "No retry", "affected_nodes": ["HTTP", "Slack"]},
    ],
    recommendations=[
        {"id": "R003", "priority": "P2", "title": "Rename nodes", "effort": "low", "impact": "low"},
        {"id": "R002", "priority": "P1", "title": "Enable retry", "related_findings": ["F002"],
         "description": "Turn on retry for HTTP", "effort": "low", "impact": "high"},
        {"id": "R001", "priority": "P0", "title": "Fix Slack expression", "related_findings": ["F001"],
         "description": "Quote the expression", "effort": "low", "impact": "high"},
    ],
)


def test_todo_keeps_p0_p1_in_priority_order():
    todo = todo_from_report(REPORT, "analysis_1", "wf_1")

    assert [(t.id, t.priority) for t in todo.tasks] == [("R001", "P0"), ("R002", "P1")]
    assert todo.tasks[0].affected_nodes == ["Slack"]
    assert todo.tasks[1].affected_nodes == ["HTTP", "Slack"]
    assert todo.tasks[0].suggested_fix == "Quote the expression"
    assert todo.next_task().id == "R001"


def test_todo_store_round_trip_and_status_updates(tmp_path):
    todos = TodoStore(str(tmp_path))
    todo = todo_from_report(REPORT, "analysis_1", "wf_1")
    path = todos.save(todo)

    todos.update_task_status(todo, "R001", TaskStatus.FAILED, "still broken")
    loaded = todos.load("analysis_1")

    assert path == str(tmp_path / "analysis_1" / "TODO.json")
    assert loaded.workflow_id == "wf_1"
    assert loaded.get("R001").status == TaskStatus.FAILED
    assert loaded.get("R001").error == "still broken"
    assert loaded.next_task().id == "R002"
    with pytest.raises(KeyError):
        todos.update_task_status(todo, "R999", TaskStatus.COMPLETED)


def test_todo_store_missing_and_malformed(tmp_path):
    todos = TodoStore(str(tmp_path))
    assert todos.load("analysis_none") is None

    (tmp_path / "analysis_bad").mkdir()
    (tmp_path / "analysis_bad" / "TODO.json").write_text("{broken")
    with pytest.raises(TodoValidationError):
        todos.load("analysis_bad")

    (tmp_path / "analysis_bad" / "TODO.json").write_text(json.dumps({
        "workflow_id": "wf_1",
        "tasks": [{"id": "R1", "title": "x", "priority": "P9"}],
    }))
    with pytest.raises(TodoValidationError):
        todos.load("analysis_bad")


# =============================================================================
# NODE ISOLATION
# =============================================================================


def test_isolate_nodes_keeps_neighbours_and_parameters():
    workflow = FakeWorkflowClient().workflow

    [slack] = isolate_nodes(workflow, ["Slack", "Ghost"])
    text = format_isolated_nodes([slack])

    assert (slack.inputs, slack.outputs) == (["Webhook"], [])
    assert text.startswith("## Isolated Node Context (1 nodes)")
    assert "Type: n8n-nodes-base.slack v2" in text
    assert "Receives from: Webhook" in text
    assert "Sends to: nothing" in text
    assert '"text": "={{ $json.x }}"' in text


def test_format_without_nodes():
    assert format_isolated_nodes([]) == "No specific nodes to isolate."


# =============================================================================
# APPROVAL FLOW
# =============================================================================


def _analysis(report=REPORT):
    return AnalysisResult(success=True, analysis_id="analysis_1", report=report, output_path="/reports/ANALYSIS.md")


@pytest.mark.parametrize("answer,choice", [
    ("a", ApprovalChoice.AUTO_FIX),
    (" M ", ApprovalChoice.MANUAL),
    ("q", ApprovalChoice.QUIT),
    ("", ApprovalChoice.SAVE),
    ("whatever", ApprovalChoice.SAVE),
])
def test_parse_choice(answer, choice):
    assert parse_choice(answer) == choice


def test_manual_instructions_group_by_priority():
    text = manual_instructions(REPORT)

    assert text.startswith("# Manual Fix Instructions")
    assert text.index("## P0: Critical - Fix Immediately") < text.index("## P1: High - Fix Soon")
    assert "## P2: Medium - Plan to Fix" in text
    assert "### R002 Enable retry" in text
    assert "Nodes: HTTP, Slack" in text
    assert "## P3" not in text
    assert "No recommendations in this report." in manual_instructions(AnalysisReport())


def test_menu_answers_save_quit_and_manual(tmp_path):
    harness = build_harness(tmp_path, answers=["", "q", "m"])
    flow = ApprovalFlow(harness.runtime)

    saved = asyncio.run(flow.run(_analysis(), "wf_1"))
    quit_ = asyncio.run(flow.run(_analysis(), "wf_1"))
    manual = asyncio.run(flow.run(_analysis(), "wf_1"))

    assert saved.message == "Report saved to /reports/ANALYSIS.md"
    assert quit_.message == "Exited without changes."
    assert manual.choice == ApprovalChoice.MANUAL
    assert manual.message.startswith("# Manual Fix Instructions")
    assert harness.llm(AgentRole.BUILDER).tasks == []


def test_failed_analysis_offers_nothing(tmp_path):
    harness = build_harness(tmp_path, answers=["a"])
    failed = AnalysisResult(success=False, analysis_id="analysis_1", error="synthesis crashed")

    outcome = asyncio.run(ApprovalFlow(harness.runtime).run(failed, "wf_1"))

    assert outcome.choice == ApprovalChoice.SAVE
    assert outcome.message == "Analysis analysis_1 failed: synthesis crashed"


def test_auto_fix_can_be_cancelled(tmp_path):
    harness = build_harness(tmp_path, answers=["a", "n"])

    outcome = asyncio.run(ApprovalFlow(harness.runtime).run(_analysis(), "wf_1"))

    assert outcome.message.startswith("Fix cancelled. Tasks saved to")
    assert (tmp_path / "sessions" / "analysis_1" / "TODO.json").exists()
    assert harness.llm(AgentRole.BUILDER).tasks == []


def test_auto_fix_without_urgent_recommendations(tmp_path):
    harness = build_harness(tmp_path)
    minor = AnalysisReport(recommendations=[{"id": "R1", "priority": "P3", "title": "Tidy"}])

    outcome = asyncio.run(ApprovalFlow(harness.runtime).run(_analysis(minor), "wf_1", choice=ApprovalChoice.AUTO_FIX))

    assert outcome.message == "No P0/P1 recommendations to fix."
    assert outcome.todo_path is None


# =============================================================================
# FIX RUNNER
# =============================================================================


FIXED = reply(
    {
        "workflow_id": "wf_1",
        "approach": "Quote the Slack expression",
        "verification": {"version_changed": True, "expected_changes_applied": True},
    },
    calls=[ToolCallRecord("update_partial_workflow", {"workflow_id": "wf_1"}, result_ref="wf_1")],
)


def _fix_harness(tmp_path, qa):
    return build_harness(tmp_path, {
        AgentRole.BUILDER: [("Fix workflow", FIXED)],
        AgentRole.QA: [("Validate workflow", qa)],
    })


def test_auto_fix_applies_tasks_and_archives_session(tmp_path):
    harness = _fix_harness(tmp_path, QA_PASS)

    outcome = asyncio.run(
        ApprovalFlow(harness.runtime).run(_analysis(), "wf_1", choice=ApprovalChoice.AUTO_FIX, confirm=False)
    )

    result = outcome.fix_result
    assert result.success
    assert result.completed == ["R001", "R002"]
    assert all(d.validated for d in result.details)
    assert outcome.message.startswith("2 of 2 fix tasks applied to wf_1")
    assert harness.llm(AgentRole.BUILDER).count("Fix workflow") == 2

    todo = TodoStore(str(tmp_path / "sessions")).load("analysis_1")
    assert [t.status for t in todo.tasks] == [TaskStatus.COMPLETED, TaskStatus.COMPLETED]
    [archive] = (tmp_path / "sessions" / "archives").glob("*_complete.json")
    session = json.loads(archive.read_text())
    assert session["stage"] == "complete"
    assert [a["result"] for a in session["fix_attempts"]] == ["success", "success"]


def test_fix_runner_rolls_back_a_task_that_never_passes(tmp_path):
    harness = _fix_harness(tmp_path, QA_FAIL)
    client = FakeWorkflowClient()
    harness.runtime.snapshots = SnapshotManager(client)
    todo = todo_from_report(REPORT, "analysis_1", "wf_1")
    todo.tasks = todo.tasks[:1]

    result = asyncio.run(FixRunner(harness.runtime, max_attempts=2, client=client).run(todo))

    assert not result.success
    assert result.failed == ["R001"]
    assert result.details[0].attempts == 2
    assert result.summary().startswith("BLOCKED: 1 of 1 fix tasks failed on wf_1")
    assert [workflow_id for workflow_id, _ in client.restored] == ["wf_1"]
    assert todo.get("R001").status == TaskStatus.FAILED
    assert todo.get("R001").error == "Bad expression in Slack text"

    builder = harness.llm(AgentRole.BUILDER)
    prompts = [p for t, p in zip(builder.tasks, builder.prompts) if t.startswith("Fix workflow")]
    assert "## Isolated Node Context (1 nodes)" in prompts[0]
    assert "Suggested fix: Quote the expression" in prompts[0]
    assert "Previous attempt left: Bad expression in Slack text" in prompts[1]
    assert "### Cycle 1: Quote the Slack expression" in prompts[1]


def test_fix_runner_without_todo(tmp_path):
    harness = build_harness(tmp_path)

    result = asyncio.run(FixRunner(harness.runtime).run_from_analysis("analysis_missing"))

    assert not result.success
    assert result.error == NO_TODO_MESSAGE
    assert result.summary() == f"BLOCKED: Fix run failed. {NO_TODO_MESSAGE}"
    assert harness.llm(AgentRole.BUILDER).tasks == []
