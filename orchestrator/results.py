# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - PHASE RESULTS
# =============================================================================
"""
Phase Results Module

Typed payloads produced by the agents, one dataclass per phase. Every class
carries a ``KIND`` discriminator that is written into ``to_dict()`` and used
by ``parse_phase_result`` to rebuild the right type from persisted data.

``from_dict`` is total: any missing or mistyped field falls back to its
zero value, so ``SomeResult.from_dict({})`` is the documented default.
``fallback(text)`` builds the default used when model output contains no
parseable JSON; a few phases derive fields from the raw text.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Type

logger = logging.getLogger(__name__)


# =============================================================================
# COERCION HELPERS
# =============================================================================


def _str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return value if isinstance(value, str) else str(value)


def _bool(value: Any, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1")
    if isinstance(value, (int, float)):
        return bool(value)
    return default


def _int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _opt_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _list(value: Any) -> List[Any]:
    return list(value) if isinstance(value, (list, tuple)) else []


def _str_list(value: Any) -> List[str]:
    return [_str(v) for v in _list(value) if v is not None]


def _dict(value: Any) -> Dict[str, Any]:
    return dict(value) if isinstance(value, dict) else {}


def _pick(data: Dict[str, Any], *keys: str) -> Any:
    """First present key among snake_case and camelCase spellings."""
    for key in keys:
        if key in data:
            return data[key]
    return None


# =============================================================================
# ENUMS
# =============================================================================


class QAStatus(Enum):
    """Canonical QA status. Anything else the model reports is a FAIL."""
    PASS = "PASS"
    FAIL = "FAIL"
    BLOCKED = "BLOCKED"

    @classmethod
    def parse(cls, value: Any) -> "QAStatus":
        text = _str(value).strip().upper()
        for status in cls:
            if status.value == text:
                return status
        if text:
            logger.debug(f"Coercing QA status {text!r} to FAIL")
        return cls.FAIL


class Complexity(Enum):
    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"

    @classmethod
    def parse(cls, value: Any) -> "Complexity":
        try:
            return cls(_str(value).lower())
        except ValueError:
            return cls.MEDIUM


# =============================================================================
# BASE CLASS
# =============================================================================


class PhaseResult:
    """Base for all phase payloads."""

    KIND: ClassVar[str] = ""

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PhaseResult":
        raise NotImplementedError

    @classmethod
    def fallback(cls, text: str) -> "PhaseResult":
        """Default when no JSON could be extracted from model output."""
        return cls.from_dict({})


# =============================================================================
# ARCHITECT RESULTS
# =============================================================================


_NODE_COUNT_PATTERN = re.compile(r"(\d+)\s*(?:node|step)", re.IGNORECASE)
_COMPLEX_WORDS = ("multiple", "integration", "api", "database", "complex")
_SIMPLE_WORDS = ("simple", "basic", "just", "only")


@dataclass
class ClarificationResult(PhaseResult):
    KIND: ClassVar[str] = "clarification"

    requirements: str = ""
    complexity: Complexity = Complexity.MEDIUM
    needs_research: bool = False
    research_query: str = ""
    is_conversational: bool = False
    response: str = ""
    node_count: Optional[int] = None
    explicit_requirements: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.KIND,
            "requirements": self.requirements,
            "complexity": self.complexity.value,
            "needs_research": self.needs_research,
            "research_query": self.research_query,
            "is_conversational": self.is_conversational,
            "response": self.response,
            "node_count": self.node_count,
            "explicit_requirements": list(self.explicit_requirements),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ClarificationResult":
        return cls(
            requirements=_str(data.get("requirements")),
            complexity=Complexity.parse(data.get("complexity")),
            needs_research=_bool(_pick(data, "needs_research", "needsResearch")),
            research_query=_str(_pick(data, "research_query", "researchQuery")),
            is_conversational=_bool(_pick(data, "is_conversational", "isConversational")),
            response=_str(data.get("response")),
            node_count=_opt_int(_pick(data, "node_count", "nodeCount")),
            explicit_requirements=_str_list(
                _pick(data, "explicit_requirements", "explicitRequirements")
            ),
        )

    @classmethod
    def fallback(cls, text: str) -> "ClarificationResult":
        lowered = text.lower()
        match = _NODE_COUNT_PATTERN.search(text)

        if any(word in lowered for word in _COMPLEX_WORDS):
            complexity = Complexity.COMPLEX
        elif any(word in lowered for word in _SIMPLE_WORDS):
            complexity = Complexity.SIMPLE
        else:
            complexity = Complexity.MEDIUM

        return cls(
            requirements=text,
            complexity=complexity,
            needs_research="research" in lowered or "search" in lowered,
            node_count=int(match.group(1)) if match else None,
        )


@dataclass
class OptionsResult(PhaseResult):
    KIND: ClassVar[str] = "options"

    options: List[Dict[str, Any]] = field(default_factory=list)
    recommendation: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.KIND,
            "options": [dict(o) for o in self.options],
            "recommendation": self.recommendation,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OptionsResult":
        options = [_dict(o) for o in _list(data.get("options")) if isinstance(o, dict)]
        return cls(options=options, recommendation=_str(data.get("recommendation")))

    @classmethod
    def fallback(cls, text: str) -> "OptionsResult":
        return cls(options=[], recommendation=text)

    def default_selection(self) -> str:
        """First option's id, or "A" when there are no options."""
        if self.options and self.options[0].get("id"):
            return _str(self.options[0]["id"])
        return "A"


@dataclass
class BlueprintResult(PhaseResult):
    KIND: ClassVar[str] = "blueprint"

    workflow_name: str = ""
    description: str = ""
    nodes: List[Dict[str, Any]] = field(default_factory=list)
    connections: List[Dict[str, Any]] = field(default_factory=list)
    # None means the field was absent from the model output
    credentials_needed: Optional[List[str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.KIND,
            "workflow_name": self.workflow_name,
            "description": self.description,
            "nodes": [dict(n) for n in self.nodes],
            "connections": [dict(c) for c in self.connections],
            "credentials_needed": (
                list(self.credentials_needed) if self.credentials_needed is not None else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BlueprintResult":
        credentials = data.get("credentials_needed")
        return cls(
            workflow_name=_str(data.get("workflow_name")),
            description=_str(data.get("description")),
            nodes=[_dict(n) for n in _list(data.get("nodes")) if isinstance(n, dict)],
            connections=[_dict(c) for c in _list(data.get("connections")) if isinstance(c, dict)],
            credentials_needed=_str_list(credentials) if isinstance(credentials, list) else None,
        )

    @classmethod
    def fallback(cls, text: str) -> "BlueprintResult":
        return cls(
            workflow_name="Untitled Workflow",
            description=text,
            nodes=[],
            connections=[],
            credentials_needed=[],
        )

    @property
    def node_names(self) -> List[str]:
        return [_str(n.get("name")) for n in self.nodes if n.get("name")]


@dataclass
class CredentialsResult(PhaseResult):
    KIND: ClassVar[str] = "credentials"

    selected: List[Dict[str, Any]] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.KIND,
            "selected": [dict(c) for c in self.selected],
            "missing": list(self.missing),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CredentialsResult":
        return cls(
            selected=[_dict(c) for c in _list(data.get("selected")) if isinstance(c, dict)],
            missing=_str_list(data.get("missing")),
        )


@dataclass
class ProjectContextResult(PhaseResult):
    """Architect's understanding of a project in analysis mode."""

    KIND: ClassVar[str] = "project_context"

    project_goal: str = ""
    workflow_purpose: str = ""
    expected_behavior: str = ""
    constraints: List[str] = field(default_factory=list)
    open_questions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.KIND,
            "project_goal": self.project_goal,
            "workflow_purpose": self.workflow_purpose,
            "expected_behavior": self.expected_behavior,
            "constraints": list(self.constraints),
            "open_questions": list(self.open_questions),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectContextResult":
        return cls(
            project_goal=_str(data.get("project_goal")),
            workflow_purpose=_str(data.get("workflow_purpose")),
            expected_behavior=_str(data.get("expected_behavior")),
            constraints=_str_list(data.get("constraints")),
            open_questions=_str_list(data.get("open_questions")),
        )

    @classmethod
    def fallback(cls, text: str) -> "ProjectContextResult":
        return cls(project_goal=text)


# =============================================================================
# RESEARCHER RESULTS
# =============================================================================


@dataclass
class ResearchFindings(PhaseResult):
    KIND: ClassVar[str] = "research_findings"

    hypothesis: str = ""
    hypothesis_validated: bool = False
    fit_score: int = 0
    popularity: Optional[int] = None
    templates_found: List[Dict[str, Any]] = field(default_factory=list)
    nodes_found: List[Dict[str, Any]] = field(default_factory=list)
    existing_workflows: List[Dict[str, Any]] = field(default_factory=list)
    credentials_discovered: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.KIND,
            "hypothesis": self.hypothesis,
            "hypothesis_validated": self.hypothesis_validated,
            "fit_score": self.fit_score,
            "popularity": self.popularity,
            "templates_found": [dict(t) for t in self.templates_found],
            "nodes_found": [dict(n) for n in self.nodes_found],
            "existing_workflows": [dict(w) for w in self.existing_workflows],
            "credentials_discovered": [dict(c) for c in self.credentials_discovered],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResearchFindings":
        def dicts(key: str) -> List[Dict[str, Any]]:
            return [_dict(v) for v in _list(data.get(key)) if isinstance(v, dict)]

        return cls(
            hypothesis=_str(data.get("hypothesis")),
            hypothesis_validated=_bool(data.get("hypothesis_validated")),
            fit_score=_int(data.get("fit_score")),
            popularity=_opt_int(data.get("popularity")),
            templates_found=dicts("templates_found"),
            nodes_found=dicts("nodes_found"),
            existing_workflows=dicts("existing_workflows"),
            credentials_discovered=dicts("credentials_discovered"),
        )

    @classmethod
    def pass_through(cls, requirements: str) -> "ResearchFindings":
        """Findings used when clarification decided no research is needed."""
        return cls(hypothesis=requirements, hypothesis_validated=True, fit_score=80)


@dataclass
class CredentialDiscovery(PhaseResult):
    KIND: ClassVar[str] = "credential_discovery"

    credentials_discovered: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.KIND,
            "credentials_discovered": [dict(c) for c in self.credentials_discovered],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CredentialDiscovery":
        return cls(credentials_discovered=[
            _dict(c) for c in _list(data.get("credentials_discovered")) if isinstance(c, dict)
        ])


@dataclass
class HypothesisValidation(PhaseResult):
    KIND: ClassVar[str] = "hypothesis_validation"

    validated: bool = False
    confidence: float = 0.0
    evidence: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.KIND,
            "validated": self.validated,
            "confidence": self.confidence,
            "evidence": list(self.evidence),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HypothesisValidation":
        try:
            confidence = float(data.get("confidence", 0.0))
        except (TypeError, ValueError):
            confidence = 0.0
        return cls(
            validated=_bool(data.get("validated")),
            confidence=confidence,
            evidence=_str_list(data.get("evidence")),
        )


@dataclass
class ExecutionAnalysis(PhaseResult):
    """Targeted analysis of a failed execution (L2 escalation)."""

    KIND: ClassVar[str] = "execution_analysis"

    where: str = ""
    why: str = ""
    failed_node: str = ""
    error_type: str = ""
    hypothesis: str = ""
    hypothesis_validated: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.KIND,
            "where": self.where,
            "why": self.why,
            "failed_node": self.failed_node,
            "error_type": self.error_type,
            "hypothesis": self.hypothesis,
            "hypothesis_validated": self.hypothesis_validated,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionAnalysis":
        return cls(
            where=_str(data.get("where")),
            why=_str(data.get("why")),
            failed_node=_str(_pick(data, "failed_node", "failedNode")),
            error_type=_str(_pick(data, "error_type", "errorType")),
            hypothesis=_str(data.get("hypothesis")),
            hypothesis_validated=_bool(_pick(data, "hypothesis_validated", "validated")),
        )


@dataclass
class DeepDiveResult(PhaseResult):
    """Review of every prior fix attempt (L3 escalation)."""

    KIND: ClassVar[str] = "deep_dive"

    root_cause: str = ""
    systemic_issue: str = ""
    recommendations: List[str] = field(default_factory=list)
    alternative_nodes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.KIND,
            "root_cause": self.root_cause,
            "systemic_issue": self.systemic_issue,
            "recommendations": list(self.recommendations),
            "alternative_nodes": list(self.alternative_nodes),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeepDiveResult":
        return cls(
            root_cause=_str(_pick(data, "root_cause", "rootCause")),
            systemic_issue=_str(_pick(data, "systemic_issue", "systemicIssue")),
            recommendations=_str_list(data.get("recommendations")),
            alternative_nodes=_str_list(_pick(data, "alternative_nodes", "alternativeNodes")),
        )


@dataclass
class AuditFindings(PhaseResult):
    """Researcher's read-only audit of a workflow in analysis mode."""

    KIND: ClassVar[str] = "audit_findings"

    issues: List[Dict[str, Any]] = field(default_factory=list)
    execution_patterns: List[str] = field(default_factory=list)
    node_observations: List[str] = field(default_factory=list)
    questions: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.KIND,
            "issues": [dict(i) for i in self.issues],
            "execution_patterns": list(self.execution_patterns),
            "node_observations": list(self.node_observations),
            "questions": [dict(q) for q in self.questions],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditFindings":
        return cls(
            issues=[_dict(i) for i in _list(data.get("issues")) if isinstance(i, dict)],
            execution_patterns=_str_list(data.get("execution_patterns")),
            node_observations=_str_list(data.get("node_observations")),
            questions=[_dict(q) for q in _list(data.get("questions")) if isinstance(q, dict)],
        )


# =============================================================================
# BUILDER RESULTS
# =============================================================================


@dataclass
class BuildVerification:
    version_changed: bool = False
    expected_changes_applied: bool = False
    nodes_match: bool = False
    connections_valid: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version_changed": self.version_changed,
            "expected_changes_applied": self.expected_changes_applied,
            "nodes_match": self.nodes_match,
            "connections_valid": self.connections_valid,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuildVerification":
        return cls(
            version_changed=_bool(data.get("version_changed")),
            expected_changes_applied=_bool(data.get("expected_changes_applied")),
            nodes_match=_bool(data.get("nodes_match")),
            connections_valid=_bool(data.get("connections_valid")),
        )


@dataclass
class BuildResult(PhaseResult):
    KIND: ClassVar[str] = "build"

    workflow_id: str = ""
    workflow_name: str = ""
    node_count: int = 0
    version_id: int = 0
    graph_hash: str = ""
    snapshot_taken: bool = False
    approach: str = ""
    verification: BuildVerification = field(default_factory=BuildVerification)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.KIND,
            "workflow_id": self.workflow_id,
            "workflow_name": self.workflow_name,
            "node_count": self.node_count,
            "version_id": self.version_id,
            "graph_hash": self.graph_hash,
            "snapshot_taken": self.snapshot_taken,
            "approach": self.approach,
            "verification": self.verification.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuildResult":
        return cls(
            workflow_id=_str(data.get("workflow_id")),
            workflow_name=_str(data.get("workflow_name")),
            node_count=_int(data.get("node_count")),
            version_id=_int(data.get("version_id")),
            graph_hash=_str(data.get("graph_hash")),
            snapshot_taken=_bool(data.get("snapshot_taken")),
            approach=_str(data.get("approach")),
            verification=BuildVerification.from_dict(_dict(data.get("verification"))),
        )


# =============================================================================
# QA RESULTS
# =============================================================================


@dataclass
class ValidationIssue:
    code: str = ""
    message: str = ""
    node: str = ""
    severity: str = "error"
    auto_fixable: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "node": self.node,
            "severity": self.severity,
            "auto_fixable": self.auto_fixable,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ValidationIssue":
        return cls(
            code=_str(data.get("code")),
            message=_str(data.get("message")),
            node=_str(data.get("node")),
            severity=_str(data.get("severity"), "error"),
            auto_fixable=_bool(_pick(data, "auto_fixable", "autoFixable")),
        )


@dataclass
class ValidationWarning:
    code: str = ""
    message: str = ""
    node: str = ""
    is_false_positive: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "node": self.node,
            "is_false_positive": self.is_false_positive,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ValidationWarning":
        return cls(
            code=_str(data.get("code")),
            message=_str(data.get("message")),
            node=_str(data.get("node")),
            is_false_positive=_bool(_pick(data, "is_false_positive", "isFalsePositive")),
        )


@dataclass
class TestResult:
    __test__ = False  # not a pytest class

    test_type: str = "manual"
    success: bool = False
    execution_id: str = ""
    error: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "test_type": self.test_type,
            "success": self.success,
            "execution_id": self.execution_id,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TestResult":
        return cls(
            test_type=_str(_pick(data, "test_type", "testType"), "manual"),
            success=_bool(data.get("success")),
            execution_id=_str(_pick(data, "execution_id", "executionId")),
            error=_str(data.get("error")),
        )


def _test_results(value: Any) -> List[TestResult]:
    return [TestResult.from_dict(t) for t in _list(value) if isinstance(t, dict)]


@dataclass
class QAReport(PhaseResult):
    KIND: ClassVar[str] = "qa_report"

    status: QAStatus = QAStatus.FAIL
    live_test_executed: bool = False
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationWarning] = field(default_factory=list)
    edit_scope: List[str] = field(default_factory=list)
    regression_detected: bool = False
    test_results: List[TestResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.KIND,
            "status": self.status.value,
            "live_test_executed": self.live_test_executed,
            "errors": [e.to_dict() for e in self.errors],
            "warnings": [w.to_dict() for w in self.warnings],
            "edit_scope": list(self.edit_scope),
            "regression_detected": self.regression_detected,
            "test_results": [t.to_dict() for t in self.test_results],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QAReport":
        return cls(
            status=QAStatus.parse(data.get("status")),
            live_test_executed=_bool(_pick(data, "live_test_executed", "phase_5_executed")),
            errors=[ValidationIssue.from_dict(e) for e in _list(data.get("errors")) if isinstance(e, dict)],
            warnings=[
                ValidationWarning.from_dict(w) for w in _list(data.get("warnings")) if isinstance(w, dict)
            ],
            edit_scope=_str_list(data.get("edit_scope")),
            regression_detected=_bool(data.get("regression_detected")),
            test_results=_test_results(data.get("test_results")),
        )

    def error_summary(self) -> str:
        return "\n".join(e.message for e in self.errors if e.message)

    def has_failed_execution(self) -> bool:
        return any(not t.success for t in self.test_results)


@dataclass
class TestRun(PhaseResult):
    """Outcome of a forced live test of a workflow."""

    __test__ = False

    KIND: ClassVar[str] = "test_results"

    test_results: List[TestResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.KIND, "test_results": [t.to_dict() for t in self.test_results]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TestRun":
        return cls(test_results=_test_results(data.get("test_results")))

    @property
    def executed(self) -> bool:
        return bool(self.test_results)

    @property
    def all_passed(self) -> bool:
        return self.executed and all(t.success for t in self.test_results)


@dataclass
class RegressionCheck(PhaseResult):
    KIND: ClassVar[str] = "regression_check"

    regression_detected: bool = False
    details: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.KIND,
            "regression_detected": self.regression_detected,
            "details": list(self.details),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegressionCheck":
        return cls(
            regression_detected=_bool(data.get("regression_detected")),
            details=_str_list(data.get("details")),
        )


# =============================================================================
# ANALYST RESULTS
# =============================================================================


@dataclass
class TokenUsage:
    total: int = 0
    by_agent: Dict[str, int] = field(default_factory=dict)
    by_cycle: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"total": self.total, "by_agent": dict(self.by_agent), "by_cycle": list(self.by_cycle)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenUsage":
        return cls(
            total=_int(data.get("total")),
            by_agent={_str(k): _int(v) for k, v in _dict(_pick(data, "by_agent", "byAgent")).items()},
            by_cycle=[_int(v) for v in _list(_pick(data, "by_cycle", "byCycle"))],
        )


@dataclass
class AnalystReport(PhaseResult):
    KIND: ClassVar[str] = "analyst_report"

    root_cause: str = ""
    timeline: List[Dict[str, Any]] = field(default_factory=list)
    agent_grades: Dict[str, int] = field(default_factory=dict)
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    proposed_learnings: List[Dict[str, Any]] = field(default_factory=list)
    context_updates: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.KIND,
            "root_cause": self.root_cause,
            "timeline": [dict(t) for t in self.timeline],
            "agent_grades": dict(self.agent_grades),
            "token_usage": self.token_usage.to_dict(),
            "proposed_learnings": [dict(l) for l in self.proposed_learnings],
            "context_updates": [dict(c) for c in self.context_updates],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalystReport":
        return cls(
            root_cause=_str(data.get("root_cause")),
            timeline=[_dict(t) for t in _list(data.get("timeline")) if isinstance(t, dict)],
            agent_grades={_str(k): _int(v) for k, v in _dict(data.get("agent_grades")).items()},
            token_usage=TokenUsage.from_dict(_dict(data.get("token_usage"))),
            proposed_learnings=[
                _dict(l) for l in _list(data.get("proposed_learnings")) if isinstance(l, dict)
            ],
            context_updates=[
                _dict(c) for c in _list(data.get("context_updates")) if isinstance(c, dict)
            ],
        )

    @classmethod
    def fallback(cls, text: str) -> "AnalystReport":
        return cls(root_cause=text)


@dataclass
class CycleAnalysis(PhaseResult):
    KIND: ClassVar[str] = "cycle_analysis"

    issue: str = ""
    recommendation: str = ""
    escalation_needed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.KIND,
            "issue": self.issue,
            "recommendation": self.recommendation,
            "escalation_needed": self.escalation_needed,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CycleAnalysis":
        return cls(
            issue=_str(data.get("issue")),
            recommendation=_str(data.get("recommendation")),
            escalation_needed=_bool(_pick(data, "escalation_needed", "escalationNeeded")),
        )


@dataclass
class AnalysisReport(PhaseResult):
    """Synthesized audit report produced by the Analyst in analysis mode."""

    KIND: ClassVar[str] = "analysis_report"

    summary: str = ""
    findings: List[Dict[str, Any]] = field(default_factory=list)
    recommendations: List[Dict[str, Any]] = field(default_factory=list)
    roadmap: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.KIND,
            "summary": self.summary,
            "findings": [dict(f) for f in self.findings],
            "recommendations": [dict(r) for r in self.recommendations],
            "roadmap": [dict(r) for r in self.roadmap],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisReport":
        def dicts(key: str) -> List[Dict[str, Any]]:
            return [_dict(v) for v in _list(data.get(key)) if isinstance(v, dict)]

        return cls(
            summary=_str(data.get("summary")),
            findings=dicts("findings"),
            recommendations=dicts("recommendations"),
            roadmap=dicts("roadmap"),
        )

    @classmethod
    def fallback(cls, text: str) -> "AnalysisReport":
        return cls(summary=text)


# =============================================================================
# SHARED RESULTS
# =============================================================================


@dataclass
class AnswerResult(PhaseResult):
    """Reply to a question relayed by the message coordinator."""

    KIND: ClassVar[str] = "answer"

    answer: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.KIND, "answer": self.answer}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnswerResult":
        return cls(answer=_str(data.get("answer")))

    @classmethod
    def fallback(cls, text: str) -> "AnswerResult":
        return cls(answer=text.strip())


# =============================================================================
# DISPATCH
# =============================================================================

PHASE_RESULT_TYPES: Dict[str, Type[PhaseResult]] = {
    cls.KIND: cls
    for cls in (
        ClarificationResult,
        OptionsResult,
        BlueprintResult,
        CredentialsResult,
        ProjectContextResult,
        ResearchFindings,
        CredentialDiscovery,
        HypothesisValidation,
        ExecutionAnalysis,
        DeepDiveResult,
        AuditFindings,
        BuildResult,
        QAReport,
        TestRun,
        RegressionCheck,
        AnalystReport,
        CycleAnalysis,
        AnalysisReport,
        AnswerResult,
    )
}


def parse_phase_result(kind: str, data: Dict[str, Any]) -> PhaseResult:
    """
    Rebuild a typed payload from its discriminator and raw fields.

    Raises:
        ValueError: If *kind* is not a known phase result
    """
    result_type = PHASE_RESULT_TYPES.get(kind)
    if result_type is None:
        raise ValueError(f"Unknown phase result kind: {kind!r}")
    return result_type.from_dict(data if isinstance(data, dict) else {})


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "QAStatus",
    "Complexity",
    "PhaseResult",
    "ClarificationResult",
    "OptionsResult",
    "BlueprintResult",
    "CredentialsResult",
    "ProjectContextResult",
    "ResearchFindings",
    "CredentialDiscovery",
    "HypothesisValidation",
    "ExecutionAnalysis",
    "DeepDiveResult",
    "AuditFindings",
    "BuildVerification",
    "BuildResult",
    "ValidationIssue",
    "ValidationWarning",
    "TestResult",
    "QAReport",
    "TestRun",
    "RegressionCheck",
    "TokenUsage",
    "AnalystReport",
    "CycleAnalysis",
    "AnalysisReport",
    "AnswerResult",
    "PHASE_RESULT_TYPES",
    "parse_phase_result",
]
