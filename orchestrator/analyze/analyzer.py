# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - WORKFLOW ANALYZER
# =============================================================================
"""
Analyzer Module

Read-only audit of an existing workflow. No build or QA loop runs and the
workflow is never modified.

Flow:
    0. loading        workflow, execution history and project docs, in parallel
    1. understanding  Architect works out the workflow's intent
    2. investigating  Researcher audits it, asking the Architect questions
    3. synthesizing   Analyst writes the report, with the Q&A exchanges
    4. complete       reports/ANALYSIS-<workflow>-<date>.md and .json, plus a
                      TODO.json of the P0/P1 recommendations for the fix command
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from agents.base.output_handler import OutputHandler
from agents.base.tools import WorkflowApiError
from monitoring import log_context
from orchestrator.analyze.context_store import ORCHESTRATOR, AnalysisStatus, SharedContextStore
from orchestrator.analyze.message_coordinator import MessageCoordinator
from orchestrator.analyze.todo import TodoStore, todo_from_report
from orchestrator.context import RuntimeContext
from orchestrator.models import AgentRole
from orchestrator.results import AnalysisReport

logger = logging.getLogger(__name__)

MAX_QA_ITERATIONS = 5
PROJECT_DOCS = {
    "readme": "README.md",
    "todo": "TODO.md",
    "plan": "PLAN.md",
    "architecture": "ARCHITECTURE.md",
}


@dataclass
class AnalysisResult:
    success: bool
    analysis_id: str
    report: Optional[AnalysisReport] = None
    output_path: Optional[str] = None
    error: Optional[str] = None
    qa_exchanges: List[Dict[str, Any]] = field(default_factory=list)
    todo_path: Optional[str] = None

    def summary(self) -> str:
        if not self.success:
            return f"Analysis {self.analysis_id} failed: {self.error}"
        report = self.report or AnalysisReport()
        return "\n".join([
            f"Analysis complete: {self.output_path}",
            f"  Findings: {len(report.findings)}",
            f"  Recommendations: {len(report.recommendations)}",
            f"  Q&A exchanges: {len(self.qa_exchanges)}",
            f"  Fix TODO: {self.todo_path or 'none (no P0/P1 recommendations)'}",
        ])


def read_project_docs(project_path: str) -> Dict[str, Any]:
    """Top-level project docs plus ``.context/*.md``; missing files are None."""
    root = Path(project_path)
    docs: Dict[str, Any] = {}
    for key, name in PROJECT_DOCS.items():
        path = root / name
        docs[key] = path.read_text(encoding="utf-8") if path.is_file() else None

    context_files = {}
    context_dir = root / ".context"
    if context_dir.is_dir():
        for path in sorted(context_dir.glob("*.md")):
            context_files[path.name] = path.read_text(encoding="utf-8")
    docs["context_files"] = context_files
    return docs


class Analyzer:
    """Runs a read-only, Q&A-assisted analysis of one workflow."""

    def __init__(self, runtime: RuntimeContext, coordinator_options: Optional[Dict[str, Any]] = None):
        self.runtime = runtime
        self.coordinator_options = coordinator_options or {}
        self.store: Optional[SharedContextStore] = None
        self.coordinator: Optional[MessageCoordinator] = None

    async def analyze(self, workflow_id: str, project_path: Optional[str] = None) -> AnalysisResult:
        """
        Analyze *workflow_id*, optionally against the docs in *project_path*.

        Returns:
            AnalysisResult; failures are reported, not raised
        """
        agents = self.runtime.agents
        session = await self.runtime.session_store.create(workflow_id=workflow_id)
        self.store = SharedContextStore(workflow_id, self.runtime.analyze_dir)
        self.coordinator = MessageCoordinator(self.store, **self.coordinator_options)

        async def ask_architect(message):
            return await agents.architect.handle_question(session.id, message.content, message.sender, message.context)

        async def ask_researcher(message):
            return await agents.researcher.handle_question(session.id, message.content, message.sender, message.context)

        self.coordinator.register_handler(AgentRole.ARCHITECT, ask_architect)
        self.coordinator.register_handler(AgentRole.RESEARCHER, ask_researcher)

        try:
            with log_context(session_id=session.id, analysis_id=self.store.analysis_id):
                return await self._run(session.id, workflow_id, project_path)
        except Exception as e:
            logger.error(f"Analysis of {workflow_id} failed: {e}", exc_info=True)
            if self.runtime.audit:
                self.runtime.audit.log_error("analyzer", type(e).__name__, str(e), session.id)
            return AnalysisResult(success=False, analysis_id=self.store.analysis_id, error=str(e))
        finally:
            self.coordinator.clear_handlers()
            await self.runtime.session_store.archive(session.id)

    async def _run(self, session_id: str, workflow_id: str, project_path: Optional[str]) -> AnalysisResult:
        agents = self.runtime.agents
        store = self.store

        logger.info("[Phase 0] Loading context")
        store.update_status(AnalysisStatus.LOADING)
        await self.load_all_context(workflow_id, project_path)
        workflow = store.get("workflow_data")

        logger.info("[Phase 1] Architect analyzing project context")
        store.update_status(AnalysisStatus.UNDERSTANDING)
        project_context = await agents.architect.analyze_project_context(
            session_id, store.get("project_docs"), workflow
        )
        store.set("architect_context", project_context.to_dict(), AgentRole.ARCHITECT)

        logger.info("[Phase 2] Researcher auditing workflow")
        store.update_status(AnalysisStatus.INVESTIGATING)
        findings = await agents.researcher.audit_workflow(session_id, workflow_id, project_context.to_dict())
        store.set("researcher_findings", findings.to_dict(), AgentRole.RESEARCHER)
        await self.ask_questions(findings.questions)

        logger.info("[Phase 3] Analyst synthesizing report")
        store.update_status(AnalysisStatus.SYNTHESIZING)
        exchanges = [e.to_dict() for e in self.coordinator.get_qa_exchanges()]
        report = await agents.analyst.generate_analysis_report(
            session_id, workflow, project_context, findings, exchanges
        )
        store.set("analyst_report", report.to_dict(), AgentRole.ANALYST)
        await self.run_qa_loop()

        store.update_status(AnalysisStatus.COMPLETE)
        output_path = self.write_report(report, workflow)
        todo = todo_from_report(report, store.analysis_id, workflow_id)
        todo_path = TodoStore(self.runtime.sessions_dir).save(todo) if todo.tasks else None
        logger.info(f"Analysis complete: {output_path} ({store.summary()})")

        return AnalysisResult(
            success=True,
            analysis_id=store.analysis_id,
            report=report,
            output_path=output_path,
            qa_exchanges=[e.to_dict() for e in self.coordinator.get_qa_exchanges()],
            todo_path=todo_path,
        )

    # =========================================================================
    # CONTEXT LOADING
    # =========================================================================

    async def load_all_context(self, workflow_id: str, project_path: Optional[str]) -> None:
        tasks = [self.load_workflow_data(workflow_id), self.load_execution_history(workflow_id)]
        if project_path:
            tasks.append(self.load_project_docs(project_path))
        await asyncio.gather(*tasks)
        logger.info(f"Context loaded: {len(self.store.get('workflow_data').get('nodes', []))} nodes")

    async def load_project_docs(self, project_path: str) -> None:
        docs = await asyncio.to_thread(read_project_docs, project_path)
        self.store.set("project_docs", docs, ORCHESTRATOR)

    async def load_workflow_data(self, workflow_id: str) -> None:
        client = self._client()
        if client is None:
            return
        try:
            workflow = await asyncio.to_thread(client.get_workflow, workflow_id)
        except WorkflowApiError as e:
            logger.warning(f"Could not load workflow {workflow_id}: {e}")
            return
        self.store.set("workflow_data", workflow, ORCHESTRATOR)

    async def load_execution_history(self, workflow_id: str) -> None:
        client = self._client()
        if client is None:
            return
        try:
            result = await asyncio.to_thread(client.list_executions, workflow_id, "summary", None, 20)
        except WorkflowApiError as e:
            logger.warning(f"Could not load executions for {workflow_id}: {e}")
            return

        executions = result.get("executions", [])
        succeeded = sum(1 for e in executions if e.get("status") == "success")
        errors = sorted({str(e.get("status")) for e in executions if e.get("status") not in ("success", None)})
        self.store.set("execution_history", {
            "total": len(executions),
            "success_rate": succeeded / len(executions) if executions else 0.0,
            "recent_executions": executions,
            "error_patterns": errors,
        }, ORCHESTRATOR)

    def _client(self):
        toolbox = self.runtime.agents.researcher.toolbox
        return toolbox.client if toolbox is not None else None

    # =========================================================================
    # Q&A
    # =========================================================================

    async def ask_questions(self, questions: List[Dict[str, Any]]) -> None:
        """Route the Researcher's questions and wait for the answers."""
        sent = []
        for q in questions:
            text = str(q.get("question", "")).strip()
            if text:
                to = str(q.get("to") or AgentRole.ARCHITECT.value)
                sent.append(self.coordinator.send_question(AgentRole.RESEARCHER, to, text, q.get("context")))

        if not sent:
            return
        await self.run_qa_loop()

        for message in sent:
            if self.store.answer_for(message.id) is None:
                logger.warning(f"[Q&A] Unanswered question {message.id} to {message.recipient} ({message.status.value})")

    async def run_qa_loop(self) -> None:
        for _ in range(MAX_QA_ITERATIONS):
            pending = self.coordinator.pending_count()
            if pending == 0:
                return
            processed = await self.coordinator.process_pending()
            logger.info(f"[Q&A] Processed {processed}/{pending} pending messages")
        if self.coordinator.has_pending():
            logger.warning("[Q&A] Some messages remain unresolved")

    # =========================================================================
    # OUTPUT
    # =========================================================================

    def write_report(self, report: AnalysisReport, workflow: Dict[str, Any]) -> str:
        workflow_id = workflow.get("id", "unknown")
        date = datetime.utcnow().strftime("%Y-%m-%d")
        base = f"ANALYSIS-{workflow_id}-{date}"

        output = OutputHandler(self.runtime.reports_dir)
        markdown = self.runtime.agents.analyst.format_analysis_report(report, workflow)
        path = output.write_text(f"{base}.md", markdown)
        output.write_json(f"{base}.json", report.to_dict())
        return path

    async def close(self) -> None:
        await self.runtime.session_store.close()


__all__ = ["Analyzer", "AnalysisResult", "read_project_docs", "MAX_QA_ITERATIONS"]
