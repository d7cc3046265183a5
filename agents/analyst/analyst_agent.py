# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - ANALYST AGENT IMPLEMENTATION
# =============================================================================
"""
Analyst Agent Implementation

Runs after the fact. In build mode the Analyst performs the L4 post-mortem
of a blocked session; in analysis mode it synthesizes the Architect's and
Researcher's findings into an audit report.

The Analyst is the only role that writes durable knowledge:

    docs/learning/LEARNINGS.md   append-only, auto-numbered L-NNN entries
    docs/SYSTEM-CONTEXT.md       "## <section>" blocks, replaced whole
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from agents.base.agent_interface import BaseAgent
from agents.base.output_handler import OutputHandler
from orchestrator.models import AgentRole, FixAttempt, Session
from orchestrator.results import (
    AnalysisReport,
    AnalystReport,
    AnswerResult,
    AuditFindings,
    CycleAnalysis,
    ProjectContextResult,
    TokenUsage,
)

logger = logging.getLogger(__name__)

DEFAULT_LEARNINGS_PATH = "./docs/learning/LEARNINGS.md"
DEFAULT_CONTEXT_PATH = "./docs/SYSTEM-CONTEXT.md"

_LEARNING_ID = re.compile(r"L-(\d{3})")


# =============================================================================
# OUTPUT FORMATS
# =============================================================================

POST_MORTEM_FORMAT = """Conduct the L4 post-mortem:
1. Timeline: review all agent actions, decision points and how the failure progressed
2. Root cause: what went wrong, was it preventable, what information was missing
3. Grade each agent 1-10 (requirements clarity, search quality, protocol compliance, testing)
4. Token usage: total, per agent, waste
5. Learnings: propose new entries for LEARNINGS.md and SYSTEM-CONTEXT.md updates
Return JSON:
{
  "root_cause": "...",
  "timeline": [{"timestamp": "...", "agent": "...", "action": "...", "result": "..."}],
  "agent_grades": {"architect": 7, "researcher": 8, "builder": 5, "qa": 6},
  "token_usage": {"total": 50000, "by_agent": {}, "by_cycle": []},
  "proposed_learnings": [{"title": "...", "content": "...", "category": "...", "severity": "critical"}],
  "context_updates": [{"file": "SYSTEM-CONTEXT.md", "section": "...", "content": "..."}]
}"""

CYCLE_FORMAT = """Quick cycle analysis:
1. What went wrong this cycle?
2. What should be tried next?
3. Is escalation needed?
Return JSON: {"issue": "...", "recommendation": "...", "escalation_needed": false}"""

SYNTHESIS_FORMAT = """Synthesize the audit:
1. Cross-reference the Architect's intent with the Researcher's findings
2. Prioritize issues P0 (broken, data loss) to P3 (best practice)
3. One recommendation per issue with effort and impact (low|medium|high)
4. Group fixes into phases: critical fixes, improvements, optimization
Return JSON:
{
  "summary": "overall health (healthy|needs_attention|critical) and the key message",
  "findings": [{"id": "F001", "category": "architecture|implementation|operations|security",
                "severity": "critical|high|medium|low", "title": "...", "description": "...",
                "evidence": ["..."], "affected_nodes": ["..."]}],
  "recommendations": [{"id": "R001", "priority": "P0", "title": "...", "description": "...",
                       "effort": "low", "impact": "high", "related_findings": ["F001"]}],
  "roadmap": [{"phase": 1, "title": "Critical Fixes", "items": ["..."]}]
}"""


# =============================================================================
# ANALYST AGENT CLASS
# =============================================================================

class AnalystAgent(BaseAgent):
    """
    Post-mortem, cycle analysis and audit synthesis.

    Args:
        learnings_path: LEARNINGS.md location
        context_path: SYSTEM-CONTEXT.md location
        **kwargs: Passed to BaseAgent
    """

    ROLE = AgentRole.ANALYST
    ROLE_PROMPT = """You are the Analyst of an n8n workflow team.
You review what happened in a session after the fact, find the root cause,
grade each agent and turn the failure into learnings the team keeps.
You never modify workflows."""

    def __init__(
        self,
        *args: Any,
        learnings_path: str = DEFAULT_LEARNINGS_PATH,
        context_path: str = DEFAULT_CONTEXT_PATH,
        **kwargs: Any,
    ):
        super().__init__(*args, **kwargs)
        self.learnings_path = learnings_path
        self.context_path = context_path
        self._files = OutputHandler(".")

    # -------------------------------------------------------------------------
    # BUILD MODE
    # -------------------------------------------------------------------------

    async def post_mortem(self, session_id: str, workflow_id: str) -> AnalystReport:
        session = self.session_store.get(session_id)
        usage = self.calculate_token_usage(session)
        result = await self.invoke(
            session_id,
            f"Post-mortem analysis for blocked workflow {workflow_id or '(none)'}",
            {
                "workflow_id": workflow_id,
                "cycle": session.cycle,
                "fix_attempts": [a.to_dict() for a in session.fix_attempts],
                "measured_token_usage": usage.to_dict(),
                "instruction": POST_MORTEM_FORMAT,
            },
            AnalystReport,
        )
        report = self.payload_or_default(result, AnalystReport)
        if not report.root_cause and result.error:
            report.root_cause = f"Post-mortem analysis failed: {result.error}"
        if report.token_usage.total == 0:
            report.token_usage = usage
        return report

    async def analyze_cycle(self, session_id: str, cycle_number: int) -> CycleAnalysis:
        result = await self.invoke(
            session_id,
            f"Analyze cycle {cycle_number} failure",
            {"cycle_number": cycle_number, "instruction": CYCLE_FORMAT},
            CycleAnalysis,
        )
        return self.payload_or_default(result, CycleAnalysis)

    @staticmethod
    def calculate_token_usage(session: Session) -> TokenUsage:
        """Token estimate per agent from the session history."""
        by_agent = {role.value: 0 for role in AgentRole}
        cycle_tokens = 0
        for entry in session.history:
            tokens = entry.estimated_tokens
            if entry.agent_role:
                by_agent[entry.agent_role.value] += tokens
            cycle_tokens += tokens
        return TokenUsage(total=sum(by_agent.values()), by_agent=by_agent, by_cycle=[cycle_tokens])

    # -------------------------------------------------------------------------
    # KNOWLEDGE FILES
    # -------------------------------------------------------------------------

    def write_learning(self, learning: Dict[str, Any]) -> Optional[str]:
        """
        Append a learning to LEARNINGS.md.

        Returns:
            The new ``L-NNN`` id, or None when the file could not be written
        """
        try:
            current = self._files.read_text(self.learnings_path) or "# LEARNINGS\n"
            numbers = [int(n) for n in _LEARNING_ID.findall(current)]
            new_id = f"L-{max(numbers, default=0) + 1:03d}"

            entry = (
                f"\n\n### {new_id}: {learning.get('title', 'Untitled')}\n\n"
                f"**Category:** {learning.get('category', 'general')}\n"
                f"**Severity:** {learning.get('severity', 'medium')}\n"
                f"**Added:** {datetime.utcnow().strftime('%Y-%m-%d')}\n\n"
                f"{learning.get('content', '')}\n\n---"
            )
            self._files.write_text(self.learnings_path, current + entry)
        except OSError as e:
            self.logger.error(f"Failed to write learning: {e}")
            return None

        self.logger.info(f"Written learning {new_id}: {learning.get('title', '')}")
        return new_id

    def update_context(self, update: Dict[str, Any]) -> bool:
        """Replace (or append) one ``## section`` of SYSTEM-CONTEXT.md."""
        section = str(update.get("section", "")).strip()
        if not section:
            self.logger.warning("Context update without a section name, skipping")
            return False
        content = str(update.get("content", ""))

        try:
            current = self._files.read_text(self.context_path)
            pattern = re.compile(rf"^## {re.escape(section)}[ \t]*\n[\s\S]*?(?=^## |\Z)", re.MULTILINE)
            replacement = f"## {section}\n\n{content}\n\n"
            if pattern.search(current):
                updated = pattern.sub(lambda _: replacement, current, count=1)
            else:
                updated = current + f"\n## {section}\n\n{content}\n"
            self._files.write_text(self.context_path, updated)
        except OSError as e:
            self.logger.error(f"Failed to update context: {e}")
            return False

        self.logger.info(f"Updated SYSTEM-CONTEXT.md section: {section}")
        return True

    # -------------------------------------------------------------------------
    # REPORTS
    # -------------------------------------------------------------------------

    @staticmethod
    def generate_user_report(report: AnalystReport, fix_attempts: Optional[List[FixAttempt]] = None) -> str:
        lines = ["# Post-Mortem Report", "", "## Root Cause", report.root_cause or "Unknown", "", "## Timeline"]
        for entry in report.timeline:
            lines.append(f"- **{entry.get('agent', '?')}**: {entry.get('action', '')} → {entry.get('result', '')}")

        lines += ["", "## Agent Performance"]
        for agent, grade in report.agent_grades.items():
            grade = max(0, min(10, grade))
            lines.append(f"- {agent}: {'█' * grade}{'░' * (10 - grade)} ({grade}/10)")

        lines += ["", "## Token Usage", f"- Total: {report.token_usage.total:,} tokens", "", "## Recommendations"]
        for learning in report.proposed_learnings:
            lines.append(f"- **{learning.get('title', '')}** ({learning.get('severity', 'medium')})")

        if fix_attempts:
            lines += ["", "## Fix Attempts"]
            for attempt in fix_attempts:
                error = f" [{attempt.error_type}]" if attempt.error_type else ""
                lines.append(f"- Cycle {attempt.cycle}: {attempt.approach} → {attempt.result.value}{error}")

        return "\n".join(lines) + "\n"

    # -------------------------------------------------------------------------
    # ANALYSIS MODE
    # -------------------------------------------------------------------------

    async def generate_analysis_report(
        self,
        session_id: str,
        workflow: Dict[str, Any],
        project_context: ProjectContextResult,
        audit_findings: AuditFindings,
        qa_exchanges: List[Dict[str, Any]],
    ) -> AnalysisReport:
        result = await self.invoke(
            session_id,
            "Synthesize analysis report",
            {
                "workflow_summary": {
                    "id": workflow.get("id", ""),
                    "name": workflow.get("name", ""),
                    "node_count": len(workflow.get("nodes", [])),
                    "active": bool(workflow.get("active", False)),
                },
                "architect_context": project_context.to_dict(),
                "researcher_findings": audit_findings.to_dict(),
                "qa_exchanges": qa_exchanges,
                "instruction": SYNTHESIS_FORMAT,
            },
            AnalysisReport,
        )
        return self.payload_or_default(result, AnalysisReport)

    @staticmethod
    def format_analysis_report(report: AnalysisReport, workflow: Dict[str, Any]) -> str:
        """Markdown rendering of an audit report."""
        lines = [
            f"# Workflow Analysis: {workflow.get('name') or workflow.get('id', '')}",
            "",
            f"- Workflow: {workflow.get('id', '')}",
            f"- Date: {datetime.utcnow().strftime('%Y-%m-%d')}",
            "",
            "## Summary",
            report.summary or "No summary produced.",
            "",
            "## Findings",
        ]
        for finding in report.findings:
            lines.append(
                f"- **{finding.get('id', '')} {finding.get('title', '')}** "
                f"({finding.get('severity', 'medium')}): {finding.get('description', '')}"
            )
        lines += ["", "## Recommendations"]
        for rec in report.recommendations:
            lines.append(
                f"- [{rec.get('priority', 'P2')}] **{rec.get('title', '')}** "
                f"(effort: {rec.get('effort', '?')}, impact: {rec.get('impact', '?')})"
            )
        lines += ["", "## Roadmap"]
        for phase in report.roadmap:
            lines.append(f"### Phase {phase.get('phase', '?')}: {phase.get('title', '')}")
            for item in phase.get("items", []):
                lines.append(f"- {item}")
        return "\n".join(lines) + "\n"

    async def handle_question(
        self,
        session_id: str,
        question: str,
        asked_by: str,
        context: Optional[Dict[str, Any]] = None,
    ) -> str:
        result = await self.invoke(
            session_id,
            f"Answer a question from the {asked_by}: {question}",
            {"question_context": context or {}, "instruction": 'Return JSON: {"answer": "..."}'},
            AnswerResult,
        )
        return self.payload_or_default(result, AnswerResult).answer


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = ["AnalystAgent", "DEFAULT_LEARNINGS_PATH", "DEFAULT_CONTEXT_PATH"]
