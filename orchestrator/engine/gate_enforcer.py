# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - GATE ENFORCER
# =============================================================================
"""
Gate Enforcer Module

Admission checks the orchestrator consults before and after delegating to
an agent. Gates only read session state and the structured results handed
to them; they never invoke agents or external calls. A failed gate is a
``GateResult`` with ``passed=False``, not an exception.

Gates:
    GATE_1  Progressive escalation (cycle-based)
    GATE_2  Two-step execution analysis before a fix
    GATE_3  Live test required for a QA PASS
    GATE_4  Fix-attempt history injection (data preparation)
    GATE_5  Builder mutation-call verification
    GATE_6  Hypothesis validation

Escalation Levels:
    cycle 1-3   L1  builder fixes directly
    cycle 4-5   L2  researcher targeted analysis, then builder
    cycle 6-7   L3  researcher deep dive, then builder
    cycle >= 8  L4  analyst post-mortem, session blocked
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from orchestrator.models import AgentRole, CallType, Session, Stage, render_already_tried
from orchestrator.results import QAReport, QAStatus, ResearchFindings

logger = logging.getLogger(__name__)


# =============================================================================
# DATA STRUCTURES
# =============================================================================

class EscalationLevel(Enum):
    L1 = "L1"
    L2 = "L2"
    L3 = "L3"
    L4 = "L4"


@dataclass
class Escalation:
    level: EscalationLevel
    action: str
    agents: List[AgentRole]


@dataclass
class GateResult:
    gate: str
    passed: bool
    message: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"gate": self.gate, "passed": self.passed, "message": self.message, "data": self.data}


@dataclass
class GateViolation:
    gate: str
    reason: str
    context: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "gate": self.gate,
            "reason": self.reason,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }


# =============================================================================
# CONSTANTS
# =============================================================================

MAX_CYCLES = 7
RESEARCHER_FRESHNESS_SECONDS = 300
EXECUTION_INSPECTION_MARKER = "executions"


def get_escalation_level(cycle: int, max_cycles: int = MAX_CYCLES) -> Escalation:
    """Classify a QA cycle into its escalation level; past *max_cycles* is L4."""
    if cycle > max_cycles:
        return Escalation(
            EscalationLevel.L4,
            "Analyst post-mortem -> Report to user",
            [AgentRole.ANALYST],
        )
    if cycle <= 3:
        return Escalation(EscalationLevel.L1, "Builder direct fix", [AgentRole.BUILDER])
    if cycle <= 5:
        return Escalation(
            EscalationLevel.L2,
            "Researcher alternative approach -> Builder",
            [AgentRole.RESEARCHER, AgentRole.BUILDER],
        )
    return Escalation(
        EscalationLevel.L3,
        "Researcher deep dive -> Builder",
        [AgentRole.RESEARCHER, AgentRole.BUILDER],
    )


# =============================================================================
# GATE ENFORCER
# =============================================================================

class GateEnforcer:
    """
    Stateless rule evaluation plus an append-only violation log.

    Args:
        freshness_seconds: How recent a researcher result must be for
            GATE_1 at cycles 4-7
        clock: Returns the current UTC time (injectable for tests)
        max_cycles: Last cycle before GATE_1 blocks with L4
    """

    def __init__(
        self,
        freshness_seconds: int = RESEARCHER_FRESHNESS_SECONDS,
        clock: Callable[[], datetime] = datetime.utcnow,
        max_cycles: int = MAX_CYCLES,
    ):
        self.max_cycles = max_cycles
        self.freshness = timedelta(seconds=freshness_seconds)
        self._clock = clock
        self._violations: List[GateViolation] = []

    # -------------------------------------------------------------------------
    # GATE 1
    # -------------------------------------------------------------------------

    def check_progressive_escalation(self, session: Session, target_agent: AgentRole) -> GateResult:
        cycle = session.cycle

        if cycle > self.max_cycles:
            self._log_violation("GATE_1", "Maximum cycles exceeded", {"cycle": cycle})
            return GateResult(
                gate="GATE_1",
                passed=False,
                message=(
                    f"BLOCKED: Maximum {self.max_cycles} cycles exceeded (current: {cycle}). "
                    "Triggering L4 escalation."
                ),
                data={"escalation": EscalationLevel.L4.value, "trigger_analyst": True},
            )

        if cycle >= 4 and target_agent == AgentRole.BUILDER:
            researcher = session.agent_results.get(AgentRole.RESEARCHER)
            recent = researcher is not None and researcher.timestamp > self._clock() - self.freshness
            if not recent:
                level = EscalationLevel.L3 if cycle >= 6 else EscalationLevel.L2
                return GateResult(
                    gate="GATE_1",
                    passed=False,
                    message=f"BLOCKED: Cycle {cycle} requires Researcher analysis before Builder.",
                    data={"require_agent": AgentRole.RESEARCHER.value, "escalation": level.value},
                )

        return GateResult(gate="GATE_1", passed=True)

    # -------------------------------------------------------------------------
    # GATE 2
    # -------------------------------------------------------------------------

    def check_execution_analysis(self, session: Session, has_failed_execution: bool) -> GateResult:
        if not has_failed_execution:
            return GateResult(gate="GATE_2", passed=True)

        if not self.has_two_step_analysis(session):
            self._log_violation("GATE_2", "Missing execution analysis", {
                "cycle": session.cycle,
                "has_failed_execution": has_failed_execution,
            })
            return GateResult(
                gate="GATE_2",
                passed=False,
                message="BLOCKED: Two-step execution analysis required before fix.",
                data={
                    "require_agent": AgentRole.RESEARCHER.value,
                    "steps": ["mode=summary to find WHERE", "mode=filtered to find WHY"],
                },
            )

        researcher = session.agent_results.get(AgentRole.RESEARCHER)
        validated = bool(researcher and researcher.data.get("hypothesis_validated"))
        if not validated:
            return GateResult(
                gate="GATE_2",
                passed=False,
                message="BLOCKED: Execution analysis incomplete. Hypothesis not validated.",
                data={"require_validation": True},
            )

        return GateResult(gate="GATE_2", passed=True)

    def has_two_step_analysis(self, session: Session) -> bool:
        """Summary-mode and filtered-mode execution calls by the researcher this cycle."""
        modes = {
            str(call.params.get("mode"))
            for call in session.logged_calls
            if call.agent_role == AgentRole.RESEARCHER
            and EXECUTION_INSPECTION_MARKER in call.tool
            and call.cycle == session.cycle
        }
        return "summary" in modes and "filtered" in modes

    # -------------------------------------------------------------------------
    # GATE 3
    # -------------------------------------------------------------------------

    def check_live_testing(self, report: QAReport) -> GateResult:
        if report.status != QAStatus.PASS:
            return GateResult(gate="GATE_3", passed=True)

        if not report.live_test_executed:
            self._log_violation("GATE_3", "QA PASS without live testing", {
                "status": report.status.value,
                "live_test_executed": False,
            })
            return GateResult(
                gate="GATE_3",
                passed=False,
                message="REJECTED: QA PASS requires real workflow testing.",
                data={
                    "requirement": "live_test_executed: true",
                    "action": "Execute workflow via test_workflow",
                },
            )

        return GateResult(gate="GATE_3", passed=True)

    # -------------------------------------------------------------------------
    # GATE 4
    # -------------------------------------------------------------------------

    def inject_fix_attempts(self, session: Session) -> str:
        """Fix-attempt log as a do-not-repeat block ("" when empty)."""
        return render_already_tried(session.fix_attempts)

    # -------------------------------------------------------------------------
    # GATE 5
    # -------------------------------------------------------------------------

    def check_mutation_calls(self, session: Session, agent_role: AgentRole = AgentRole.BUILDER) -> GateResult:
        if agent_role != AgentRole.BUILDER:
            return GateResult(gate="GATE_5", passed=True)

        calls = [c for c in session.logged_calls if c.agent_role == AgentRole.BUILDER]

        if not calls:
            self._log_violation("GATE_5", "No calls logged", {
                "agent": AgentRole.BUILDER.value,
                "cycle": session.cycle,
            })
            return GateResult(
                gate="GATE_5",
                passed=False,
                message="REJECTED: Builder must log mutation calls.",
                data={"requirement": "logged mutation calls required"},
            )

        mutations = sum(1 for c in calls if c.type == CallType.MUTATION)
        if mutations == 0:
            return GateResult(
                gate="GATE_5",
                passed=False,
                message="REJECTED: At least one mutation call required.",
                data={"calls_logged": len(calls), "mutation_calls": 0},
            )

        return GateResult(
            gate="GATE_5",
            passed=True,
            data={"total_calls": len(calls), "mutation_calls": mutations},
        )

    # -------------------------------------------------------------------------
    # GATE 6
    # -------------------------------------------------------------------------

    def validate_hypothesis(self, findings: ResearchFindings) -> GateResult:
        if not findings.hypothesis:
            return GateResult(
                gate="GATE_6",
                passed=False,
                message="BLOCKED: Researcher must provide hypothesis.",
            )

        if not findings.hypothesis_validated:
            self._log_violation("GATE_6", "Unvalidated hypothesis", {
                "hypothesis": findings.hypothesis,
                "fit_score": findings.fit_score,
            })
            return GateResult(
                gate="GATE_6",
                passed=False,
                message="BLOCKED: Hypothesis must be validated before proposal.",
                data={
                    "hypothesis": findings.hypothesis,
                    "requirement": "hypothesis_validated: true",
                },
            )

        return GateResult(
            gate="GATE_6",
            passed=True,
            data={"hypothesis": findings.hypothesis, "validated": True},
        )

    # -------------------------------------------------------------------------
    # COMPOSITE
    # -------------------------------------------------------------------------

    def check_all_gates(
        self,
        session: Session,
        target_agent: AgentRole,
        has_failed_execution: bool = False,
        qa_report: Optional[QAReport] = None,
        research_findings: Optional[ResearchFindings] = None,
    ) -> Tuple[bool, List[GateResult]]:
        """
        Run the applicable subset of gates 1, 2, 3 and 6.

        Returns:
            (passed, failing results)
        """
        results = [self.check_progressive_escalation(session, target_agent)]

        if target_agent == AgentRole.BUILDER and has_failed_execution:
            results.append(self.check_execution_analysis(session, True))

        if qa_report is not None:
            results.append(self.check_live_testing(qa_report))

        if research_findings is not None and session.stage == Stage.DECISION:
            results.append(self.validate_hypothesis(research_findings))

        violations = [r for r in results if not r.passed]
        return not violations, violations

    # -------------------------------------------------------------------------
    # VIOLATIONS
    # -------------------------------------------------------------------------

    def record_violation(self, result: GateResult, reason: Optional[str] = None) -> None:
        """Log a failed gate result acted on outside the checks themselves."""
        self._log_violation(result.gate, reason or result.message or "failed", dict(result.data))

    def _log_violation(self, gate: str, reason: str, context: Dict[str, Any]) -> None:
        self._violations.append(GateViolation(gate=gate, reason=reason, context=context))
        logger.warning(f"{gate} violation: {reason} {context}")

    def get_violations(self) -> List[GateViolation]:
        return list(self._violations)

    def clear_violations(self) -> None:
        self._violations = []


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "EscalationLevel",
    "Escalation",
    "GateResult",
    "GateViolation",
    "MAX_CYCLES",
    "RESEARCHER_FRESHNESS_SECONDS",
    "get_escalation_level",
    "GateEnforcer",
]
