# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - SESSION MODEL
# =============================================================================
"""
Session Model Module

Data structures for one end-to-end build or fix task:

    Session
    ├── stage / cycle            (authoritative sequencing)
    ├── history[]                (conversation turns, token-trimmed)
    ├── fix_attempts[]           (append-only, "do not repeat" evidence)
    ├── logged_calls[]           (append-only, audit trail read by gates)
    ├── agent_results{role}      (last result per role)
    └── requirements             (explicit constraints from clarification)

Timestamps are ``datetime`` objects in memory and ISO strings on disk.
The ``agent_results`` map goes through ``serialize_agent_results`` /
``deserialize_agent_results`` so its key order and value types survive a
reload.
"""

from __future__ import annotations

import logging
import math
import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from orchestrator.results import PhaseResult, parse_phase_result

logger = logging.getLogger(__name__)


# =============================================================================
# ENUMS
# =============================================================================


class Stage(Enum):
    """Session stages, in forward order."""
    CLARIFICATION = "clarification"
    RESEARCH = "research"
    DECISION = "decision"
    CREDENTIALS = "credentials"
    IMPLEMENTATION = "implementation"
    BUILD = "build"
    VALIDATE = "validate"
    TEST = "test"
    COMPLETE = "complete"
    BLOCKED = "blocked"

    @property
    def is_terminal(self) -> bool:
        return self in (Stage.COMPLETE, Stage.BLOCKED)

    def can_move_to(self, target: "Stage") -> bool:
        """
        Forward moves are always allowed; backward moves only along the
        fix loop (QA back to BUILD) and the resume restart (RESEARCH back to
        CLARIFICATION). Terminal stages are final.
        """
        if self.is_terminal:
            return target == self
        if target == self or target.is_terminal:
            return True
        order = list(Stage)
        if order.index(target) > order.index(self):
            return True
        return (self, target) in _STAGE_REWINDS


_STAGE_REWINDS = {
    (Stage.VALIDATE, Stage.BUILD),
    (Stage.TEST, Stage.BUILD),
    (Stage.TEST, Stage.VALIDATE),
    (Stage.RESEARCH, Stage.CLARIFICATION),
}


class AgentRole(Enum):
    ARCHITECT = "architect"
    RESEARCHER = "researcher"
    BUILDER = "builder"
    QA = "qa"
    ANALYST = "analyst"


class CallType(Enum):
    READ = "read"
    MUTATION = "mutation"
    SEARCH = "search"


class FixOutcome(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


_MUTATION_MARKERS = ("create", "update", "delete", "autofix")
_SEARCH_MARKERS = ("search", "list")


def classify_tool(tool_name: str) -> CallType:
    """Derive the call type from a capability name."""
    name = tool_name.lower()
    if any(marker in name for marker in _MUTATION_MARKERS):
        return CallType.MUTATION
    if any(marker in name for marker in _SEARCH_MARKERS):
        return CallType.SEARCH
    return CallType.READ


def _parse_time(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00")).replace(tzinfo=None)
        except ValueError:
            logger.debug(f"Unparseable timestamp {value!r}, using now")
    return datetime.utcnow()


# =============================================================================
# DATA STRUCTURES
# =============================================================================


@dataclass
class HistoryEntry:
    """One conversation turn."""
    role: str  # user | assistant | system
    content: str
    agent_role: Optional[AgentRole] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)
    tokens: Optional[int] = None

    @property
    def estimated_tokens(self) -> int:
        """Explicit token count, or ~4 characters per token."""
        if self.tokens is not None:
            return self.tokens
        return math.ceil(len(self.content) / 4)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role": self.role,
            "content": self.content,
            "agent_role": self.agent_role.value if self.agent_role else None,
            "timestamp": self.timestamp.isoformat(),
            "tokens": self.tokens,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HistoryEntry":
        agent_role = data.get("agent_role")
        return cls(
            role=data.get("role", "user"),
            content=data.get("content", ""),
            agent_role=AgentRole(agent_role) if agent_role else None,
            timestamp=_parse_time(data.get("timestamp")),
            tokens=data.get("tokens"),
        )


@dataclass
class FixAttempt:
    """A builder fix and its outcome."""
    cycle: int
    approach: str
    result: FixOutcome
    nodes_affected: List[str] = field(default_factory=list)
    error_type: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cycle": self.cycle,
            "approach": self.approach,
            "result": self.result.value,
            "nodes_affected": list(self.nodes_affected),
            "error_type": self.error_type,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FixAttempt":
        return cls(
            cycle=int(data.get("cycle", 0)),
            approach=data.get("approach", ""),
            result=FixOutcome(data.get("result", "failed")),
            nodes_affected=list(data.get("nodes_affected", [])),
            error_type=data.get("error_type"),
            timestamp=_parse_time(data.get("timestamp")),
        )


def render_already_tried(attempts: List[FixAttempt]) -> str:
    """Do-not-repeat block for fix prompts; "" when there are no attempts."""
    if not attempts:
        return ""

    lines = "## ALREADY TRIED (DO NOT REPEAT!)\n\n"
    for attempt in attempts:
        lines += f"### Cycle {attempt.cycle}: {attempt.approach}\n"
        lines += f"- Result: {attempt.result.value}\n"
        if attempt.error_type:
            lines += f"- Error: {attempt.error_type}\n"
        lines += f"- Nodes: {', '.join(attempt.nodes_affected)}\n\n"
    return lines


@dataclass
class LoggedCall:
    """An external capability call made by an agent."""
    tool: str
    type: CallType
    agent_role: AgentRole
    params: Dict[str, Any] = field(default_factory=dict)
    cycle: int = 0
    result_ref: Optional[str] = None  # id of the resource the call returned
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def create(
        cls,
        tool: str,
        agent_role: AgentRole,
        params: Optional[Dict[str, Any]] = None,
        cycle: int = 0,
        result_ref: Optional[str] = None,
    ) -> "LoggedCall":
        return cls(
            tool=tool,
            type=classify_tool(tool),
            agent_role=agent_role,
            params=dict(params or {}),
            cycle=cycle,
            result_ref=result_ref,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tool": self.tool,
            "type": self.type.value,
            "agent_role": self.agent_role.value,
            "params": self.params,
            "cycle": self.cycle,
            "result_ref": self.result_ref,
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoggedCall":
        tool = data.get("tool", "")
        call_type = data.get("type")
        return cls(
            tool=tool,
            type=CallType(call_type) if call_type else classify_tool(tool),
            agent_role=AgentRole(data.get("agent_role", "builder")),
            params=dict(data.get("params") or {}),
            cycle=int(data.get("cycle", 0)),
            result_ref=data.get("result_ref"),
            timestamp=_parse_time(data.get("timestamp")),
        )


@dataclass
class AgentResult:
    """
    Uniform envelope returned by every agent invocation.

    Attributes:
        agent_role: Role that produced the result
        success: False on exceptions and timeouts
        data: Phase payload as a dict (``kind`` discriminator included),
            or ``{"error": message}`` on failure
        logged_calls: Calls made during this invocation
        timestamp: Completion time
    """
    agent_role: AgentRole
    success: bool
    data: Dict[str, Any] = field(default_factory=dict)
    logged_calls: List[LoggedCall] = field(default_factory=list)
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @property
    def error(self) -> Optional[str]:
        return None if self.success else str(self.data.get("error", "unknown error"))

    def payload(self) -> Optional[PhaseResult]:
        """Typed payload rebuilt from the ``kind`` discriminator, if any."""
        kind = self.data.get("kind")
        if not kind:
            return None
        return parse_phase_result(kind, self.data)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_role": self.agent_role.value,
            "success": self.success,
            "data": self.data,
            "logged_calls": [c.to_dict() for c in self.logged_calls],
            "timestamp": self.timestamp.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentResult":
        return cls(
            agent_role=AgentRole(data["agent_role"]),
            success=bool(data.get("success", False)),
            data=dict(data.get("data") or {}),
            logged_calls=[LoggedCall.from_dict(c) for c in data.get("logged_calls", [])],
            timestamp=_parse_time(data.get("timestamp")),
        )

    @classmethod
    def failure(cls, agent_role: AgentRole, message: str) -> "AgentResult":
        return cls(agent_role=agent_role, success=False, data={"error": message})


@dataclass
class Requirements:
    """Explicit user constraints captured during clarification."""
    node_count: Optional[int] = None
    explicit_requirements: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_count": self.node_count,
            "explicit_requirements": list(self.explicit_requirements),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Requirements":
        return cls(
            node_count=data.get("node_count"),
            explicit_requirements=list(data.get("explicit_requirements", [])),
        )


# =============================================================================
# AGENT RESULTS SERIALIZATION
# =============================================================================


def serialize_agent_results(results: Dict[AgentRole, AgentResult]) -> List[Dict[str, Any]]:
    """Map of results to an ordered ``[{role, result}]`` list (role enum order)."""
    return [
        {"role": role.value, "result": results[role].to_dict()}
        for role in AgentRole
        if role in results
    ]


def deserialize_agent_results(entries: List[Dict[str, Any]]) -> Dict[AgentRole, AgentResult]:
    """Inverse of ``serialize_agent_results``. Later duplicates win."""
    results: Dict[AgentRole, AgentResult] = {}
    for entry in entries or []:
        try:
            role = AgentRole(entry["role"])
        except (KeyError, ValueError):
            logger.warning(f"Skipping agent result with unknown role: {entry.get('role')!r}")
            continue
        results[role] = AgentResult.from_dict(entry["result"])
    return results


# =============================================================================
# SESSION
# =============================================================================

_BASE36 = string.digits + string.ascii_lowercase


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_session_id() -> str:
    """``session_<base36 epoch ms>_<6 random base36 chars>``"""
    suffix = "".join(random.choices(_BASE36, k=6))
    return f"session_{_to_base36(int(time.time() * 1000))}_{suffix}"


@dataclass
class Session:
    id: str
    stage: Stage = Stage.CLARIFICATION
    cycle: int = 0
    workflow_id: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.utcnow)
    last_updated_at: datetime = field(default_factory=datetime.utcnow)
    history: List[HistoryEntry] = field(default_factory=list)
    fix_attempts: List[FixAttempt] = field(default_factory=list)
    logged_calls: List[LoggedCall] = field(default_factory=list)
    agent_results: Dict[AgentRole, AgentResult] = field(default_factory=dict)
    requirements: Optional[Requirements] = None

    @property
    def total_tokens(self) -> int:
        return sum(entry.estimated_tokens for entry in self.history)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "workflow_id": self.workflow_id,
            "stage": self.stage.value,
            "cycle": self.cycle,
            "started_at": self.started_at.isoformat(),
            "last_updated_at": self.last_updated_at.isoformat(),
            "history": [h.to_dict() for h in self.history],
            "fix_attempts": [f.to_dict() for f in self.fix_attempts],
            "logged_calls": [c.to_dict() for c in self.logged_calls],
            "agent_results": serialize_agent_results(self.agent_results),
            "requirements": self.requirements.to_dict() if self.requirements else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        requirements = data.get("requirements")
        return cls(
            id=data["id"],
            workflow_id=data.get("workflow_id"),
            stage=Stage(data.get("stage", Stage.CLARIFICATION.value)),
            cycle=int(data.get("cycle", 0)),
            started_at=_parse_time(data.get("started_at")),
            last_updated_at=_parse_time(data.get("last_updated_at")),
            history=[HistoryEntry.from_dict(h) for h in data.get("history", [])],
            fix_attempts=[FixAttempt.from_dict(f) for f in data.get("fix_attempts", [])],
            logged_calls=[LoggedCall.from_dict(c) for c in data.get("logged_calls", [])],
            agent_results=deserialize_agent_results(data.get("agent_results", [])),
            requirements=Requirements.from_dict(requirements) if requirements else None,
        )


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "Stage",
    "AgentRole",
    "CallType",
    "FixOutcome",
    "classify_tool",
    "HistoryEntry",
    "FixAttempt",
    "render_already_tried",
    "LoggedCall",
    "AgentResult",
    "Requirements",
    "serialize_agent_results",
    "deserialize_agent_results",
    "generate_session_id",
    "Session",
]
