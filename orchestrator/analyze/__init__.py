# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - ANALYZE PACKAGE
# =============================================================================
"""
Analyze Package

Read-only audit mode: agents share one context store (single writer per
field) and consult each other through the message coordinator.

After an analysis the user may approve fixes: recommendations become a
TODO list that the fix runner applies task by task with snapshots and
rollback.
"""

from orchestrator.analyze.context_store import (
    AgentMessage,
    AnalysisStatus,
    ContextPermissionError,
    MessageStatus,
    MessageType,
    SharedContextStore,
)
from orchestrator.analyze.message_coordinator import (
    MessageCoordinator,
    MessageTimeoutError,
    QAExchange,
)
from orchestrator.analyze.analyzer import AnalysisResult, Analyzer
from orchestrator.analyze.todo import TaskStatus, TodoList, TodoStore, TodoTask, todo_from_report
from orchestrator.analyze.node_isolation import format_isolated_nodes, isolate_nodes
from orchestrator.analyze.fixer import FixRunner, FixRunResult, TaskFixResult
from orchestrator.analyze.approval import ApprovalChoice, ApprovalFlow, ApprovalOutcome

__all__ = [
    "AgentMessage",
    "AnalysisStatus",
    "ContextPermissionError",
    "MessageStatus",
    "MessageType",
    "SharedContextStore",
    "MessageCoordinator",
    "MessageTimeoutError",
    "QAExchange",
    "AnalysisResult",
    "Analyzer",
    "TaskStatus",
    "TodoList",
    "TodoStore",
    "TodoTask",
    "todo_from_report",
    "format_isolated_nodes",
    "isolate_nodes",
    "FixRunner",
    "FixRunResult",
    "TaskFixResult",
    "ApprovalChoice",
    "ApprovalFlow",
    "ApprovalOutcome",
]
