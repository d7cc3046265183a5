# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - SHARED CONTEXT STORE
# =============================================================================
"""
Shared Context Store Module

Central store for one read-only workflow analysis. Every agent reads the
same context; each field has exactly one writer:

    Field                 Writer
    ------------------    ------------
    project_docs          orchestrator
    workflow_data         orchestrator
    execution_history     orchestrator
    status                orchestrator
    message_queue         orchestrator
    resolved_messages     orchestrator
    architect_context     architect
    researcher_findings   researcher
    analyst_report        analyst

A write by any other role raises ContextPermissionError. Every write is
persisted to ``<analyze_dir>/<analysis_id>.json``; persistence failures are
logged and never raised.
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from orchestrator.models import AgentRole

logger = logging.getLogger(__name__)

ORCHESTRATOR = "orchestrator"


# =============================================================================
# EXCEPTIONS
# =============================================================================

class ContextPermissionError(Exception):
    """A role tried to write a field it does not own."""
    pass


# =============================================================================
# ENUMS
# =============================================================================

class AnalysisStatus(Enum):
    LOADING = "loading"
    UNDERSTANDING = "understanding"
    INVESTIGATING = "investigating"
    SYNTHESIZING = "synthesizing"
    COMPLETE = "complete"


VALID_TRANSITIONS: Dict[AnalysisStatus, List[AnalysisStatus]] = {
    AnalysisStatus.LOADING: [AnalysisStatus.UNDERSTANDING, AnalysisStatus.COMPLETE],
    AnalysisStatus.UNDERSTANDING: [AnalysisStatus.INVESTIGATING, AnalysisStatus.COMPLETE],
    AnalysisStatus.INVESTIGATING: [AnalysisStatus.SYNTHESIZING, AnalysisStatus.COMPLETE],
    AnalysisStatus.SYNTHESIZING: [AnalysisStatus.COMPLETE],
    AnalysisStatus.COMPLETE: [],
}


class MessageType(Enum):
    QUESTION = "question"
    ANSWER = "answer"
    NOTIFY = "notify"


class MessageStatus(Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    RESOLVED = "resolved"
    TIMEOUT = "timeout"


WRITE_PERMISSIONS: Dict[str, str] = {
    "project_docs": ORCHESTRATOR,
    "workflow_data": ORCHESTRATOR,
    "execution_history": ORCHESTRATOR,
    "status": ORCHESTRATOR,
    "message_queue": ORCHESTRATOR,
    "resolved_messages": ORCHESTRATOR,
    "architect_context": AgentRole.ARCHITECT.value,
    "researcher_findings": AgentRole.RESEARCHER.value,
    "analyst_report": AgentRole.ANALYST.value,
}


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass
class AgentMessage:
    """A question, answer or notification between agent roles."""
    type: MessageType
    sender: str
    recipient: str  # role value or "all"
    subject: str
    content: str
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    priority: str = "normal"
    context: Dict[str, Any] = field(default_factory=dict)
    in_response_to: Optional[str] = None
    status: MessageStatus = MessageStatus.PENDING
    retry_count: int = 0
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "sender": self.sender,
            "recipient": self.recipient,
            "subject": self.subject,
            "content": self.content,
            "priority": self.priority,
            "context": self.context,
            "in_response_to": self.in_response_to,
            "status": self.status.value,
            "retry_count": self.retry_count,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentMessage":
        return cls(
            id=data["id"],
            type=MessageType(data["type"]),
            sender=data.get("sender", ""),
            recipient=data.get("recipient", ""),
            subject=data.get("subject", ""),
            content=data.get("content", ""),
            priority=data.get("priority", "normal"),
            context=data.get("context") or {},
            in_response_to=data.get("in_response_to"),
            status=MessageStatus(data.get("status", MessageStatus.PENDING.value)),
            retry_count=int(data.get("retry_count", 0)),
            timestamp=datetime.fromisoformat(data["timestamp"]) if data.get("timestamp") else datetime.utcnow(),
        )


def _empty_context(workflow_id: str) -> Dict[str, Any]:
    return {
        "project_docs": {
            "readme": None,
            "todo": None,
            "plan": None,
            "architecture": None,
            "context_files": {},
        },
        "workflow_data": {
            "id": workflow_id,
            "name": "",
            "active": False,
            "nodes": [],
            "connections": {},
            "settings": {},
        },
        "execution_history": {
            "total": 0,
            "success_rate": 0.0,
            "recent_executions": [],
            "error_patterns": [],
        },
        "architect_context": None,
        "researcher_findings": None,
        "analyst_report": None,
    }


# =============================================================================
# SHARED CONTEXT STORE
# =============================================================================

Writer = Union[AgentRole, str]
Subscriber = Callable[["SharedContextStore"], None]


class SharedContextStore:
    """
    Single-writer-per-field context for an analysis run.

    Usage:
        store = SharedContextStore("wf_123", "./sessions/analyze")
        store.set("workflow_data", workflow, "orchestrator")
        store.set("architect_context", ctx.to_dict(), AgentRole.ARCHITECT)
    """

    def __init__(self, workflow_id: str, store_dir: str, analysis_id: Optional[str] = None):
        self.store_dir = Path(store_dir)
        self.analysis_id = analysis_id or f"analysis_{uuid.uuid4().hex[:8]}"
        self.started_at = datetime.utcnow()
        self.last_updated_at = self.started_at
        self.status = AnalysisStatus.LOADING
        self.message_queue: List[AgentMessage] = []
        self.resolved_messages: List[AgentMessage] = []
        self._data = _empty_context(workflow_id)
        self._subscribers: Dict[str, Subscriber] = {}

    # =========================================================================
    # READ / WRITE
    # =========================================================================

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def snapshot(self) -> Dict[str, Any]:
        """Read-only copy of the whole context, as persisted."""
        return json.loads(json.dumps(self.to_dict()))

    def set(self, key: str, value: Any, writer: Writer) -> None:
        """
        Write a field.

        Raises:
            ContextPermissionError: If *writer* does not own *key*
        """
        self._check_permission(key, writer)
        self._data[key] = value
        self._touch()

    def _check_permission(self, key: str, writer: Writer) -> None:
        name = writer.value if isinstance(writer, AgentRole) else str(writer)
        allowed = WRITE_PERMISSIONS.get(key)
        if allowed and allowed != name:
            raise ContextPermissionError(
                f"Agent '{name}' does not have write permission for '{key}'. "
                f"Only '{allowed}' can write to this key."
            )

    def _touch(self) -> None:
        self.last_updated_at = datetime.utcnow()
        self._notify()
        self.persist()

    # =========================================================================
    # SUBSCRIBERS
    # =========================================================================

    def subscribe(self, subscriber_id: str, callback: Subscriber) -> None:
        self._subscribers[subscriber_id] = callback

    def unsubscribe(self, subscriber_id: str) -> None:
        self._subscribers.pop(subscriber_id, None)

    def _notify(self) -> None:
        for subscriber_id, callback in list(self._subscribers.items()):
            try:
                callback(self)
            except Exception as e:
                logger.warning(f"Context subscriber {subscriber_id} failed: {e}")

    # =========================================================================
    # STATUS
    # =========================================================================

    def update_status(self, status: AnalysisStatus) -> None:
        """Set the status; an out-of-order transition is logged, not refused."""
        if status != self.status and status not in VALID_TRANSITIONS[self.status]:
            logger.warning(f"Invalid status transition: {self.status.value} -> {status.value}")
        self.status = status
        self._touch()

    # =========================================================================
    # MESSAGES
    # =========================================================================

    def add_message(self, message: AgentMessage) -> None:
        self.message_queue.append(message)
        self._touch()

    def find_message(self, message_id: str) -> Optional[AgentMessage]:
        return next((m for m in self.message_queue if m.id == message_id), None)

    def resolve_message(self, message_id: str, answer: AgentMessage) -> None:
        original = self.find_message(message_id)
        if original is not None:
            original.status = MessageStatus.RESOLVED
        self.resolved_messages.append(answer)
        self._touch()

    def answer_for(self, message_id: str) -> Optional[AgentMessage]:
        return next((m for m in self.resolved_messages if m.in_response_to == message_id), None)

    def pending_for(self, role: Writer) -> List[AgentMessage]:
        name = role.value if isinstance(role, AgentRole) else str(role)
        return [
            m for m in self.message_queue
            if m.recipient in (name, "all") and m.status == MessageStatus.PENDING
        ]

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    @property
    def path(self) -> Path:
        return self.store_dir / f"{self.analysis_id}.json"

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self._data)
        data.update({
            "analysis_id": self.analysis_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "last_updated_at": self.last_updated_at.isoformat(),
            "message_queue": [m.to_dict() for m in self.message_queue],
            "resolved_messages": [m.to_dict() for m in self.resolved_messages],
        })
        return data

    def persist(self) -> bool:
        try:
            self.store_dir.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(self.to_dict(), indent=2, default=str), encoding="utf-8")
            return True
        except (OSError, TypeError) as e:
            logger.warning(f"Failed to persist analysis context {self.analysis_id}: {e}")
            return False

    @classmethod
    def load(cls, analysis_id: str, store_dir: str) -> "SharedContextStore":
        """
        Restore a persisted analysis.

        Raises:
            FileNotFoundError: If no analysis with that id was persisted
        """
        path = Path(store_dir) / f"{analysis_id}.json"
        data = json.loads(path.read_text(encoding="utf-8"))

        store = cls(data.get("workflow_data", {}).get("id", ""), store_dir, analysis_id=analysis_id)
        for key in _empty_context(""):
            if key in data:
                store._data[key] = data[key]
        store.status = AnalysisStatus(data.get("status", AnalysisStatus.LOADING.value))
        store.started_at = datetime.fromisoformat(data["started_at"])
        store.last_updated_at = datetime.fromisoformat(data["last_updated_at"])
        store.message_queue = [AgentMessage.from_dict(m) for m in data.get("message_queue", [])]
        store.resolved_messages = [AgentMessage.from_dict(m) for m in data.get("resolved_messages", [])]
        return store

    @staticmethod
    def exists(analysis_id: str, store_dir: str) -> bool:
        return (Path(store_dir) / f"{analysis_id}.json").exists()

    def summary(self) -> str:
        """One-line state for logging."""
        contributions = "".join([
            "A" if self._data["architect_context"] is not None else "-",
            "R" if self._data["researcher_findings"] is not None else "-",
            "L" if self._data["analyst_report"] is not None else "-",
        ])
        pending = sum(1 for m in self.message_queue if m.status == MessageStatus.PENDING)
        return " | ".join([
            f"Analysis: {self.analysis_id}",
            f"Status: {self.status.value}",
            f"Nodes: {len(self._data['workflow_data'].get('nodes', []))}",
            f"Contributions: [{contributions}]",
            f"Pending Q&A: {pending}",
        ])


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "ContextPermissionError",
    "AnalysisStatus",
    "MessageType",
    "MessageStatus",
    "AgentMessage",
    "SharedContextStore",
    "WRITE_PERMISSIONS",
    "VALID_TRANSITIONS",
    "ORCHESTRATOR",
]
