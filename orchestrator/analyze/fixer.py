# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - TODO FIX RUNNER
# =============================================================================
"""
Fix Runner

Applies the tasks of an analysis TODO list to the workflow, one task at a
time, highest priority first.

Per task:
    1. mark in_progress and snapshot the workflow
    2. up to N attempts of Builder fix (isolated node context) then QA
    3. QA PASS with a live test            -> completed, validated
       no errors left on the task's nodes  -> completed, not validated
       otherwise                           -> next attempt
    4. attempts exhausted -> roll back to the snapshot, mark failed

All tasks share one session, so ALREADY TRIED carries across attempts and
tasks; the session is archived when the run ends.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from agents.base.tools import WorkflowApiError
from monitoring import log_context
from orchestrator.analyze.node_isolation import format_isolated_nodes, isolate_nodes
from orchestrator.analyze.todo import TaskStatus, TodoList, TodoStore, TodoTask, TodoValidationError
from orchestrator.context import RuntimeContext
from orchestrator.models import AgentRole, CallType, FixAttempt, FixOutcome, Stage
from orchestrator.nodes import NodeContext, enter_stage, rollback_workflow
from orchestrator.nodes.qa_node import enforce_live_test, run_external_test
from orchestrator.results import QAReport, QAStatus

logger = logging.getLogger(__name__)

DEFAULT_FIX_ATTEMPTS = 3
NO_TODO_MESSAGE = "No TODO found. Run analyze first."


# =============================================================================
# RESULTS
# =============================================================================

@dataclass
class TaskFixResult:
    task_id: str
    title: str
    applied: bool = False
    validated: bool = False
    attempts: int = 0
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "title": self.title,
            "applied": self.applied,
            "validated": self.validated,
            "attempts": self.attempts,
            "error": self.error,
        }


@dataclass
class FixRunResult:
    success: bool
    workflow_id: str = ""
    details: List[TaskFixResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def completed(self) -> List[str]:
        return [d.task_id for d in self.details if d.applied]

    @property
    def failed(self) -> List[str]:
        return [d.task_id for d in self.details if not d.applied]

    def summary(self) -> str:
        if self.error:
            return f"BLOCKED: Fix run failed. {self.error}"
        lines = []
        for d in self.details:
            if d.validated:
                state = "fixed and validated"
            elif d.applied:
                state = f"applied, not validated ({d.error})"
            else:
                state = f"failed after {d.attempts} attempts ({d.error})"
            lines.append(f"  [{d.task_id}] {d.title}: {state}")
        head = f"{len(self.completed)} of {len(self.details)} fix tasks applied to {self.workflow_id}"
        if self.failed:
            head = f"BLOCKED: {len(self.failed)} of {len(self.details)} fix tasks failed on {self.workflow_id}"
        return "\n".join([head] + lines)


# =============================================================================
# FIX RUNNER
# =============================================================================

class FixRunner:
    """
    Works through a TODO list with the Builder and QA agents.

    Args:
        runtime: Shared services
        max_attempts: Builder+QA rounds per task
        client: n8n client used to read the workflow for node isolation
    """

    def __init__(self, runtime: RuntimeContext, max_attempts: Optional[int] = None, client: Any = None):
        self.runtime = runtime
        configured = runtime.config.get("orchestrator", {}).get("fix_attempts", DEFAULT_FIX_ATTEMPTS)
        self.max_attempts = max_attempts or int(configured)
        toolbox = runtime.agents.builder.toolbox
        self.client = client if client is not None else (toolbox.client if toolbox is not None else None)
        self.todos = TodoStore(runtime.sessions_dir)
        self.ctx = NodeContext(runtime=runtime)

    async def run_from_analysis(self, analysis_id: str) -> FixRunResult:
        try:
            todo = self.todos.load(analysis_id)
        except TodoValidationError as e:
            return FixRunResult(success=False, error=str(e))
        if todo is None:
            return FixRunResult(success=False, error=NO_TODO_MESSAGE)
        return await self.run(todo)

    async def run(self, todo: TodoList) -> FixRunResult:
        """Apply every pending task; failures are reported, not raised."""
        store = self.runtime.session_store
        session = await store.create(workflow_id=todo.workflow_id)
        result = FixRunResult(success=True, workflow_id=todo.workflow_id)
        final = Stage.BLOCKED

        try:
            with log_context(session_id=session.id, analysis_id=todo.analysis_id):
                while True:
                    task = todo.next_task()
                    if task is None:
                        break
                    result.details.append(await self.fix_task(session.id, todo, task))
            result.success = not result.failed
            final = Stage.COMPLETE if result.success else Stage.BLOCKED
        except Exception as e:
            logger.error(f"Fix run for {todo.workflow_id} failed: {e}", exc_info=True)
            if self.runtime.audit:
                self.runtime.audit.log_error("fixer", type(e).__name__, str(e), session.id)
            result.success = False
            result.error = f"{type(e).__name__}: {e}"
            final = Stage.BLOCKED
        finally:
            if not store.get(session.id).stage.is_terminal:
                await store.update_stage(session.id, final)
            await store.archive(session.id)

        logger.info(f"Fix run done: {len(result.completed)} applied, {len(result.failed)} failed")
        return result

    # =========================================================================
    # SINGLE TASK
    # =========================================================================

    async def fix_task(self, session_id: str, todo: TodoList, task: TodoTask) -> TaskFixResult:
        workflow_id = todo.workflow_id
        state: Dict[str, Any] = {"session_id": session_id, "workflow_id": workflow_id}
        outcome = TaskFixResult(task_id=task.id, title=task.title)
        logger.info(f"[{task.id}] {task.priority} {task.title}")
        self.todos.update_task_status(todo, task.id, TaskStatus.IN_PROGRESS)

        if self.runtime.snapshots is not None:
            snapshot = await self.runtime.snapshots.take(workflow_id)
            if not snapshot.success:
                outcome.error = f"Snapshot failed: {snapshot.error}"
                self.todos.update_task_status(todo, task.id, TaskStatus.FAILED, outcome.error)
                return outcome

        node_context = await self.node_context(workflow_id, task.affected_nodes)
        last_error: Optional[str] = None

        for attempt in range(1, self.max_attempts + 1):
            outcome.attempts = attempt
            cycle = await self.runtime.session_store.increment_cycle(session_id)
            await enter_stage(self.ctx, state, Stage.BUILD)
            build = await self.runtime.agents.builder.fix(
                session_id,
                workflow_id,
                task.affected_nodes,
                self.task_errors(task, last_error),
                node_context=node_context,
            )
            applied = build.verification.expected_changes_applied and self._mutated(session_id, cycle)

            await enter_stage(self.ctx, state, Stage.VALIDATE)
            report = await self.runtime.agents.qa.validate(session_id, workflow_id)
            report = await enforce_live_test(self.ctx, state, report)
            if report.status == QAStatus.PASS:
                report = await run_external_test(self.ctx, state, report)

            remaining = [e for e in report.errors if e.node in task.affected_nodes]
            if report.status == QAStatus.PASS:
                outcome.applied = outcome.validated = True
            elif applied and not remaining and task.affected_nodes:
                outcome.applied = True
                outcome.error = f"New errors: {report.error_summary() or report.status.value}"

            await self._log_attempt(session_id, cycle, task, build.approach, outcome.applied, report)
            if outcome.applied:
                self.todos.update_task_status(todo, task.id, TaskStatus.COMPLETED, outcome.error)
                return outcome

            last_error = report.error_summary() or ("Fix not applied" if not applied else "QA did not pass")
            logger.info(f"[{task.id}] attempt {attempt}/{self.max_attempts} failed: {last_error}")

        outcome.error = last_error
        await rollback_workflow(self.ctx, state, f"Task {task.id} failed")
        self.todos.update_task_status(todo, task.id, TaskStatus.FAILED, last_error)
        return outcome

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def node_context(self, workflow_id: str, names: List[str]) -> Optional[str]:
        if self.client is None or not names:
            return None
        try:
            workflow = await asyncio.to_thread(self.client.get_workflow, workflow_id)
        except WorkflowApiError as e:
            logger.warning(f"Could not load {workflow_id} for node isolation: {e}")
            return None
        return format_isolated_nodes(isolate_nodes(workflow, names))

    @staticmethod
    def task_errors(task: TodoTask, last_error: Optional[str]) -> str:
        lines = [f"Task {task.id} ({task.priority}): {task.title}"]
        if task.suggested_fix:
            lines.append(f"Suggested fix: {task.suggested_fix}")
        if last_error:
            lines.append(f"Previous attempt left: {last_error}")
        return "\n".join(lines)

    def _mutated(self, session_id: str, cycle: int) -> bool:
        return any(
            call.type == CallType.MUTATION and call.cycle == cycle
            for call in self.runtime.session_store.get_calls(session_id, AgentRole.BUILDER)
        )

    async def _log_attempt(
        self,
        session_id: str,
        cycle: int,
        task: TodoTask,
        approach: str,
        applied: bool,
        report: QAReport,
    ) -> None:
        attempt = FixAttempt(
            cycle=cycle,
            approach=approach or f"{task.id}: {task.title}",
            result=FixOutcome.SUCCESS if applied else FixOutcome.FAILED,
            nodes_affected=list(task.affected_nodes),
            error_type=report.errors[0].code if report.errors and report.errors[0].code else None,
        )
        await self.runtime.session_store.log_fix_attempt(session_id, attempt)
        if self.runtime.audit:
            self.runtime.audit.log_fix_attempt(
                session_id, attempt.cycle, attempt.approach, attempt.result.value, attempt.nodes_affected
            )


__all__ = [
    "FixRunner",
    "FixRunResult",
    "TaskFixResult",
    "DEFAULT_FIX_ATTEMPTS",
    "NO_TODO_MESSAGE",
]
