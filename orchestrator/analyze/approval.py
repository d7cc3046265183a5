# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - FIX APPROVAL
# =============================================================================
"""
Approval Flow

Asks the user what to do with a finished analysis. Nothing is changed on
the workflow without an explicit choice.

Choices:
    [A] Auto-fix   P0/P1 recommendations become a TODO list, confirmed
                   with Y/n, then applied by the FixRunner
    [M] Manual     step-by-step instructions grouped by priority
    [S] Save       keep the report and stop (default, also for bad input)
    [Q] Quit       stop without further output
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from orchestrator.analyze.analyzer import AnalysisResult
from orchestrator.analyze.fixer import FixRunner, FixRunResult
from orchestrator.analyze.todo import AUTO_FIX_PRIORITIES, PRIORITIES, TodoStore, todo_from_report
from orchestrator.context import RuntimeContext
from orchestrator.results import AnalysisReport

logger = logging.getLogger(__name__)

PRIORITY_LABELS = {
    "P0": "Critical - Fix Immediately",
    "P1": "High - Fix Soon",
    "P2": "Medium - Plan to Fix",
    "P3": "Low - Nice to Have",
}

MENU = """
What would you like to do?
  [A] Auto-fix the P0/P1 recommendations
  [M] Show manual fix instructions
  [S] Save the report and exit
  [Q] Quit
Choice [S]: """


class ApprovalChoice(Enum):
    AUTO_FIX = "A"
    MANUAL = "M"
    SAVE = "S"
    QUIT = "Q"


@dataclass
class ApprovalOutcome:
    choice: ApprovalChoice
    message: str
    todo_path: Optional[str] = None
    fix_result: Optional[FixRunResult] = None


def parse_choice(answer: str) -> ApprovalChoice:
    """First letter of *answer*; anything unknown means save."""
    letter = answer.strip()[:1].upper()
    for choice in ApprovalChoice:
        if choice.value == letter:
            return choice
    return ApprovalChoice.SAVE


def manual_instructions(report: AnalysisReport) -> str:
    findings = {str(f.get("id")): f for f in report.findings if f.get("id")}
    grouped: Dict[str, List[Dict[str, Any]]] = {p: [] for p in PRIORITIES}
    for rec in report.recommendations:
        grouped.setdefault(str(rec.get("priority", "P2")), []).append(rec)

    lines = ["# Manual Fix Instructions", ""]
    for priority in PRIORITIES:
        recs = grouped.get(priority) or []
        if not recs:
            continue
        lines.append(f"## {priority}: {PRIORITY_LABELS[priority]}")
        for rec in recs:
            lines.append(f"### {rec.get('id', '')} {rec.get('title', '')}".rstrip())
            if rec.get("description"):
                lines.append(str(rec["description"]))
            nodes = []
            for finding_id in rec.get("related_findings", []) or []:
                nodes += findings.get(str(finding_id), {}).get("affected_nodes", []) or []
            if nodes:
                lines.append(f"Nodes: {', '.join(dict.fromkeys(str(n) for n in nodes))}")
            lines.append(f"Effort: {rec.get('effort', '?')}, impact: {rec.get('impact', '?')}")
            lines.append("")
    if len(lines) == 2:
        lines.append("No recommendations in this report.")
    return "\n".join(lines).rstrip() + "\n"


class ApprovalFlow:
    """
    Post-analysis menu.

    Args:
        runtime: Shared services; ``runtime.prompt`` reads the answers
        runner: Fix runner used for auto-fix (built from runtime if omitted)
    """

    def __init__(self, runtime: RuntimeContext, runner: Optional[FixRunner] = None):
        self.runtime = runtime
        self.runner = runner or FixRunner(runtime)
        self.todos = TodoStore(runtime.sessions_dir)

    async def run(
        self,
        result: AnalysisResult,
        workflow_id: str,
        choice: Optional[ApprovalChoice] = None,
        confirm: bool = True,
    ) -> ApprovalOutcome:
        """
        Args:
            result: Finished analysis
            workflow_id: Workflow the fixes apply to
            choice: Preselected choice (skips the menu)
            confirm: Ask Y/n before applying fixes
        """
        if not result.success or result.report is None:
            return ApprovalOutcome(ApprovalChoice.SAVE, result.summary())

        if choice is None:
            choice = parse_choice(self.runtime.prompt(MENU))
        logger.info(f"Approval choice: {choice.name}")

        if choice == ApprovalChoice.AUTO_FIX:
            return await self.auto_fix(result, workflow_id, confirm)
        if choice == ApprovalChoice.MANUAL:
            return ApprovalOutcome(choice, manual_instructions(result.report))
        if choice == ApprovalChoice.QUIT:
            return ApprovalOutcome(choice, "Exited without changes.")
        return ApprovalOutcome(choice, f"Report saved to {result.output_path}")

    async def auto_fix(self, result: AnalysisResult, workflow_id: str, confirm: bool) -> ApprovalOutcome:
        todo = todo_from_report(result.report, result.analysis_id, workflow_id, AUTO_FIX_PRIORITIES)
        if not todo.tasks:
            return ApprovalOutcome(ApprovalChoice.AUTO_FIX, "No P0/P1 recommendations to fix.")

        path = self.todos.save(todo)
        if confirm:
            titles = "\n".join(f"  [{t.priority}] {t.title}" for t in todo.tasks)
            answer = self.runtime.prompt(f"\nApply {len(todo.tasks)} fixes to {workflow_id}?\n{titles}\n[Y/n]: ")
            if answer.strip().lower().startswith("n"):
                return ApprovalOutcome(
                    ApprovalChoice.AUTO_FIX,
                    f"Fix cancelled. Tasks saved to {path}",
                    todo_path=path,
                )

        fix_result = await self.runner.run(todo)
        return ApprovalOutcome(ApprovalChoice.AUTO_FIX, fix_result.summary(), todo_path=path, fix_result=fix_result)


__all__ = [
    "ApprovalChoice",
    "ApprovalOutcome",
    "ApprovalFlow",
    "PRIORITY_LABELS",
    "manual_instructions",
    "parse_choice",
]
