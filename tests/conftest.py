# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - TEST FIXTURES
# =============================================================================
"""
Shared fixtures.

Agents under test are the real role agents; only the LLM is replaced by a
ScriptedLLM that answers by task text. A script is a list of
``(task_prefix, reply)`` pairs checked in order, where reply is an
LLMResponse or a callable ``(task, prompt) -> LLMResponse``. Unmatched
tasks get an empty JSON object.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

import pytest

from agents.analyst import AnalystAgent
from agents.architect import ArchitectAgent
from agents.base.llm_client import LLMResponse, ToolCallRecord
from agents.base.tools import WorkflowApiError
from agents.builder import BuilderAgent
from agents.qa import QAAgent
from agents.researcher import ResearcherAgent
from monitoring import AuditLogger, create_metrics_collector
from orchestrator.context import AgentTeam, RuntimeContext
from orchestrator.engine.gate_enforcer import GateEnforcer
from orchestrator.engine.session_store import SessionStore
from orchestrator.models import AgentRole

TASK_HEADER = "## TASK\n\n"
CONTEXT_HEADER = "\n\n## CONTEXT"

Reply = Union[LLMResponse, Callable[[str, str], LLMResponse]]
Script = List[Tuple[str, Reply]]


def reply(data: Optional[Dict[str, Any]] = None, calls: Sequence[ToolCallRecord] = (), text: Optional[str] = None) -> LLMResponse:
    """Model response carrying *data* as a fenced JSON block."""
    content = text if text is not None else f"```json\n{json.dumps(data or {})}\n```"
    return LLMResponse(
        content=content,
        model="scripted",
        tokens_input=100,
        tokens_output=50,
        tool_calls=list(calls),
    )


def task_of(prompt: str) -> str:
    body = prompt[len(TASK_HEADER):] if prompt.startswith(TASK_HEADER) else prompt
    return body.split(CONTEXT_HEADER, 1)[0]


class ScriptedLLM:
    """Stands in for LLMClient.run_with_tools."""

    def __init__(self, script: Optional[Script] = None):
        self.script = list(script or [])
        self.tasks: List[str] = []
        self.prompts: List[str] = []

    def run_with_tools(self, prompt, system=None, tools=None, executor=None) -> LLMResponse:
        task = task_of(prompt)
        self.tasks.append(task)
        self.prompts.append(prompt)
        for prefix, answer in self.script:
            if task.startswith(prefix):
                return answer(task, prompt) if callable(answer) else answer
        return reply({})

    def get_model(self) -> str:
        return "scripted"

    def count(self, prefix: str) -> int:
        return sum(1 for t in self.tasks if t.startswith(prefix))


@dataclass
class Harness:
    runtime: RuntimeContext
    llms: Dict[AgentRole, ScriptedLLM] = field(default_factory=dict)
    tmp_path: Any = None

    @property
    def store(self) -> SessionStore:
        return self.runtime.session_store

    def llm(self, role: AgentRole) -> ScriptedLLM:
        return self.llms[role]


def build_harness(
    tmp_path,
    scripts: Optional[Dict[AgentRole, Script]] = None,
    max_cycles: int = 7,
    interactive: bool = False,
    answers: Sequence[str] = (),
) -> Harness:
    scripts = scripts or {}
    config = {
        "orchestrator": {"max_cycles": max_cycles, "agent_timeout": 5},
        "sessions": {"backend": "file", "dir": str(tmp_path / "sessions")},
        "paths": {
            "reports_dir": str(tmp_path / "reports"),
            "analyze_dir": str(tmp_path / "sessions" / "analyze"),
            "learnings": str(tmp_path / "docs" / "LEARNINGS.md"),
            "system_context": str(tmp_path / "docs" / "SYSTEM-CONTEXT.md"),
        },
    }
    store = SessionStore.from_config(config["sessions"])
    audit = AuditLogger(str(tmp_path / "logs" / "audit.jsonl"))
    metrics = create_metrics_collector({})
    llms = {role: ScriptedLLM(scripts.get(role)) for role in AgentRole}
    common = {"timeout": 5, "audit": audit, "metrics": metrics}

    agents = AgentTeam(
        architect=ArchitectAgent(store, llm=llms[AgentRole.ARCHITECT], **common),
        researcher=ResearcherAgent(store, llm=llms[AgentRole.RESEARCHER], **common),
        builder=BuilderAgent(store, llm=llms[AgentRole.BUILDER], **common),
        qa=QAAgent(store, llm=llms[AgentRole.QA], **common),
        analyst=AnalystAgent(
            store,
            llm=llms[AgentRole.ANALYST],
            learnings_path=config["paths"]["learnings"],
            context_path=config["paths"]["system_context"],
            **common,
        ),
    )

    pending = list(answers)
    runtime = RuntimeContext(
        config=config,
        session_store=store,
        gate_enforcer=GateEnforcer(max_cycles=max_cycles),
        agents=agents,
        audit=audit,
        metrics=metrics,
        interactive=interactive,
        prompt=lambda _: pending.pop(0) if pending else "",
    )
    return Harness(runtime=runtime, llms=llms, tmp_path=tmp_path)


# =============================================================================
# CANNED MODEL OUTPUT
# =============================================================================

CLARIFIED = reply({
    "requirements": "Forward webhook payloads to Slack",
    "complexity": "simple",
    "needs_research": False,
    "is_conversational": False,
})

OPTIONS = reply({
    "options": [{"id": "A", "name": "Webhook to Slack", "fit_score": 90}],
    "recommendation": "A",
})

BLUEPRINT = reply({
    "workflow_name": "Webhook to Slack",
    "description": "Posts incoming webhook payloads to a Slack channel",
    "nodes": [
        {"name": "Webhook", "type": "n8n-nodes-base.webhook"},
        {"name": "Slack", "type": "n8n-nodes-base.slack"},
    ],
    "connections": [{"from": "Webhook", "to": "Slack"}],
    "credentials_needed": [],
})

BUILT = reply(
    {
        "workflow_id": "wf_1",
        "workflow_name": "Webhook to Slack",
        "node_count": 2,
        "verification": {"version_changed": True, "expected_changes_applied": True},
    },
    calls=[ToolCallRecord("create_workflow", {"name": "Webhook to Slack"}, result_ref="wf_1")],
)

QA_PASS = reply(
    {
        "status": "PASS",
        "live_test_executed": True,
        "test_results": [{"test_type": "webhook", "success": True, "execution_id": "exec_1"}],
    },
    calls=[ToolCallRecord("test_workflow", {"workflow_id": "wf_1"}, result_ref="exec_1")],
)

QA_FAIL = reply({
    "status": "FAIL",
    "live_test_executed": False,
    "errors": [{"code": "INVALID_EXPRESSION", "message": "Bad expression in Slack text", "node": "Slack"}],
})

POST_MORTEM = reply({
    "root_cause": "Slack node expression never resolved",
    "agent_grades": {"architect": 8, "builder": 4},
    "proposed_learnings": [],
    "context_updates": [],
})


def architect_script(blueprint: LLMResponse = BLUEPRINT, clarification: LLMResponse = CLARIFIED) -> Script:
    return [
        ("Present options", OPTIONS),
        ("Create a blueprint", blueprint),
        ("Reconcile available credentials", reply({"selected": [], "missing": []})),
        ("", clarification),
    ]


@pytest.fixture
def harness(tmp_path):
    """Harness whose agents all answer with empty JSON."""
    return build_harness(tmp_path)


class FakeWorkflowClient:
    """In-memory n8n client for snapshot, rollback and node isolation."""

    def __init__(self, workflow: Optional[Dict[str, Any]] = None, fail_reads: bool = False):
        self.workflow = workflow or {
            "id": "wf_1",
            "versionId": "v1",
            "nodes": [
                {"name": "Webhook", "type": "n8n-nodes-base.webhook", "typeVersion": 2, "parameters": {"path": "in"}},
                {"name": "Slack", "type": "n8n-nodes-base.slack", "typeVersion": 2, "parameters": {"text": "={{ $json.x }}"}},
            ],
            "connections": {"Webhook": {"main": [[{"node": "Slack", "type": "main", "index": 0}]]}},
        }
        self.fail_reads = fail_reads
        self.reads: List[str] = []
        self.restored: List[Tuple[str, Dict[str, Any]]] = []

    def get_workflow(self, workflow_id: str) -> Dict[str, Any]:
        self.reads.append(workflow_id)
        if self.fail_reads:
            raise WorkflowApiError("n8n unreachable: connection refused")
        return self.workflow

    def update_full_workflow(self, workflow_id: str, workflow: Dict[str, Any]) -> Dict[str, Any]:
        self.restored.append((workflow_id, workflow))
        return workflow
