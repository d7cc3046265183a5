# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - FIX TODO LIST
# =============================================================================
"""
Fix TODO List

Turns the recommendations of an analysis report into a prioritized task
list that the fix runner works through one task at a time.

Storage:
    <sessions dir>/<analysis id>/TODO.json

A task is built from one recommendation. Its affected nodes are collected
from the findings the recommendation relates to.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from agents.base.output_handler import OutputHandler
from orchestrator.results import AnalysisReport

logger = logging.getLogger(__name__)

TODO_FILENAME = "TODO.json"
PRIORITIES = ("P0", "P1", "P2", "P3")
AUTO_FIX_PRIORITIES = ("P0", "P1")


class TodoValidationError(ValueError):
    """A TODO file does not have the expected shape."""
    pass


class TaskStatus(Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass
class TodoTask:
    id: str
    priority: str
    title: str
    status: TaskStatus = TaskStatus.PENDING
    affected_nodes: List[str] = field(default_factory=list)
    suggested_fix: str = ""
    test_command: Optional[str] = None
    test_expected_pattern: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "priority": self.priority,
            "status": self.status.value,
            "title": self.title,
            "affected_nodes": list(self.affected_nodes),
            "suggested_fix": self.suggested_fix,
            "test_command": self.test_command,
            "test_expected_pattern": self.test_expected_pattern,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TodoTask":
        if not data.get("id") or not data.get("title"):
            raise TodoValidationError(f"Task needs id and title: {data}")
        priority = str(data.get("priority", "P2"))
        if priority not in PRIORITIES:
            raise TodoValidationError(f"Task {data['id']} has unknown priority {priority}")
        try:
            status = TaskStatus(data.get("status", TaskStatus.PENDING.value))
        except ValueError as e:
            raise TodoValidationError(f"Task {data['id']}: {e}") from e
        nodes = data.get("affected_nodes", [])
        if not isinstance(nodes, list):
            raise TodoValidationError(f"Task {data['id']}: affected_nodes must be a list")
        return cls(
            id=str(data["id"]),
            priority=priority,
            title=str(data["title"]),
            status=status,
            affected_nodes=[str(n) for n in nodes],
            suggested_fix=str(data.get("suggested_fix") or ""),
            test_command=data.get("test_command"),
            test_expected_pattern=data.get("test_expected_pattern"),
            error=data.get("error"),
        )


@dataclass
class TodoList:
    analysis_id: str
    workflow_id: str
    tasks: List[TodoTask] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "analysis_id": self.analysis_id,
            "workflow_id": self.workflow_id,
            "created_at": self.created_at.isoformat(),
            "tasks": [t.to_dict() for t in self.tasks],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TodoList":
        if not isinstance(data, dict) or not data.get("workflow_id"):
            raise TodoValidationError("TODO needs a workflow_id")
        tasks = data.get("tasks")
        if not isinstance(tasks, list):
            raise TodoValidationError("TODO needs a task list")
        created = data.get("created_at")
        return cls(
            analysis_id=str(data.get("analysis_id", "")),
            workflow_id=str(data["workflow_id"]),
            tasks=[TodoTask.from_dict(t) for t in tasks],
            created_at=datetime.fromisoformat(created) if created else datetime.utcnow(),
        )

    def get(self, task_id: str) -> Optional[TodoTask]:
        return next((t for t in self.tasks if t.id == task_id), None)

    def with_status(self, status: TaskStatus) -> List[TodoTask]:
        return [t for t in self.tasks if t.status == status]

    def pending(self) -> List[TodoTask]:
        return self.with_status(TaskStatus.PENDING)

    def next_task(self) -> Optional[TodoTask]:
        """Highest-priority pending task, list order within a priority."""
        pending = self.pending()
        if not pending:
            return None
        return min(pending, key=lambda t: PRIORITIES.index(t.priority))


# =============================================================================
# BUILDING
# =============================================================================

def todo_from_report(
    report: AnalysisReport,
    analysis_id: str,
    workflow_id: str,
    priorities: Iterable[str] = AUTO_FIX_PRIORITIES,
) -> TodoList:
    """One task per recommendation whose priority is in *priorities*."""
    wanted = set(priorities)
    findings = {str(f.get("id")): f for f in report.findings if f.get("id")}
    tasks = []
    for index, rec in enumerate(report.recommendations, 1):
        priority = str(rec.get("priority", "P2"))
        if priority not in wanted:
            continue
        nodes: List[str] = []
        for finding_id in rec.get("related_findings", []) or []:
            for node in findings.get(str(finding_id), {}).get("affected_nodes", []) or []:
                if node not in nodes:
                    nodes.append(str(node))
        tasks.append(TodoTask(
            id=str(rec.get("id") or f"R{index}"),
            priority=priority if priority in PRIORITIES else "P2",
            title=str(rec.get("title") or f"Recommendation {index}"),
            affected_nodes=nodes,
            suggested_fix=str(rec.get("description") or ""),
            test_expected_pattern=rec.get("test_expected_pattern"),
        ))
    tasks.sort(key=lambda t: PRIORITIES.index(t.priority))
    return TodoList(analysis_id=analysis_id, workflow_id=workflow_id, tasks=tasks)


# =============================================================================
# PERSISTENCE
# =============================================================================

class TodoStore:
    """
    TODO files under the sessions directory.

    Usage:
        todos = TodoStore("./sessions")
        todos.save(todo)
        todo = todos.load("analysis_abc")
    """

    def __init__(self, sessions_dir: str):
        self.output = OutputHandler(sessions_dir)

    def path(self, analysis_id: str) -> str:
        return self.output.resolve(f"{analysis_id}/{TODO_FILENAME}")

    def save(self, todo: TodoList) -> str:
        path = self.output.write_json(f"{todo.analysis_id}/{TODO_FILENAME}", todo.to_dict())
        logger.info(f"Saved {len(todo.tasks)} tasks to {path}")
        return path

    def load(self, analysis_id: str) -> Optional[TodoList]:
        """
        Raises:
            TodoValidationError: If the file exists but is malformed
        """
        text = self.output.read_text(f"{analysis_id}/{TODO_FILENAME}")
        if not text:
            return None
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise TodoValidationError(f"Invalid TODO JSON for {analysis_id}: {e}") from e
        return TodoList.from_dict(data)

    def update_task_status(
        self,
        todo: TodoList,
        task_id: str,
        status: TaskStatus,
        error: Optional[str] = None,
    ) -> TodoTask:
        """
        Raises:
            KeyError: If the task is not in the list
        """
        task = todo.get(task_id)
        if task is None:
            raise KeyError(f"Task not found: {task_id}")
        task.status = status
        task.error = error
        self.save(todo)
        return task


__all__ = [
    "TodoValidationError",
    "TaskStatus",
    "TodoTask",
    "TodoList",
    "TodoStore",
    "todo_from_report",
    "TODO_FILENAME",
    "PRIORITIES",
    "AUTO_FIX_PRIORITIES",
]
