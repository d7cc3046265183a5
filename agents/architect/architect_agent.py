# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - ARCHITECT AGENT IMPLEMENTATION
# =============================================================================
"""
Architect Agent Implementation

Dialog and planning role. The Architect has no n8n tools; everything it
knows about the instance comes from the Researcher's findings.

Phases:
    1. clarify            user request -> requirements, complexity, research need
    2. present_options    research findings -> 2-3 ranked approaches
    3. create_blueprint   selected option -> nodes, connections, credentials
    4. select_credentials discovered vs needed credentials -> selected / missing

Analysis mode adds ``analyze_project_context`` and ``handle_question``.
"""

import logging
from typing import Any, Dict, List, Optional

from agents.base.agent_interface import BaseAgent
from orchestrator.models import AgentRole
from orchestrator.results import (
    AnswerResult,
    BlueprintResult,
    ClarificationResult,
    CredentialsResult,
    OptionsResult,
    ProjectContextResult,
    ResearchFindings,
)

logger = logging.getLogger(__name__)


# =============================================================================
# OUTPUT FORMATS
# =============================================================================

CLARIFICATION_FORMAT = """Return JSON:
{
  "requirements": "detailed requirements",
  "complexity": "simple|medium|complex",
  "needs_research": true,
  "research_query": "what to search for",
  "is_conversational": false,
  "response": "direct answer, only when is_conversational is true",
  "node_count": 10,
  "explicit_requirements": ["10 nodes", "must have error handling"]
}
Set is_conversational to true for greetings, help requests and questions
that are not requests to build or fix a workflow.
If the user states a number of nodes or steps, return it as node_count and
keep every explicit requirement verbatim in explicit_requirements."""

OPTIONS_FORMAT = """Present 2-3 options.
Return JSON:
{
  "options": [
    {"id": "A", "name": "...", "description": "...", "pros": ["..."], "cons": ["..."], "fit_score": 85}
  ],
  "recommendation": "A"
}"""

BLUEPRINT_FORMAT = """Return JSON:
{
  "workflow_name": "...",
  "description": "...",
  "nodes": [{"name": "Webhook", "type": "n8n-nodes-base.webhook", "purpose": "..."}],
  "connections": [{"from": "Webhook", "to": "Set"}],
  "credentials_needed": ["telegramApi"]
}
credentials_needed is required; use [] when none are needed."""

CREDENTIALS_FORMAT = """Match available credentials to needed types.
Return JSON:
{
  "selected": [{"id": "123", "name": "My Telegram", "type": "telegramApi"}],
  "missing": ["openAiApi"]
}"""

PROJECT_CONTEXT_FORMAT = """Return JSON:
{
  "project_goal": "...",
  "workflow_purpose": "...",
  "expected_behavior": "...",
  "constraints": ["..."],
  "open_questions": ["questions for the Researcher about the live workflow"]
}"""


# =============================================================================
# ARCHITECT AGENT CLASS
# =============================================================================

class ArchitectAgent(BaseAgent):
    """Clarification, option ranking, blueprint and credential dialog."""

    ROLE = AgentRole.ARCHITECT
    ROLE_PROMPT = """You are the Architect of an n8n workflow team.
You talk with the user, clarify what they want, weigh approaches found by
the Researcher and produce a blueprint the Builder can implement.
You never call n8n yourself."""

    async def clarify(self, session_id: str, user_request: str) -> ClarificationResult:
        result = await self.invoke(
            session_id,
            user_request,
            {"phase": "clarification", "instruction": CLARIFICATION_FORMAT},
            ClarificationResult,
        )
        return self.payload_or_default(result, ClarificationResult)

    async def present_options(self, session_id: str, findings: ResearchFindings) -> OptionsResult:
        result = await self.invoke(
            session_id,
            "Present options to the user based on the research findings",
            {"phase": "decision", "findings": findings.to_dict(), "instruction": OPTIONS_FORMAT},
            OptionsResult,
        )
        return self.payload_or_default(result, OptionsResult)

    async def create_blueprint(
        self,
        session_id: str,
        selected_option: str,
        findings: ResearchFindings,
        node_count: Optional[int] = None,
        explicit_requirements: Optional[List[str]] = None,
        feedback: Optional[str] = None,
    ) -> BlueprintResult:
        context: Dict[str, Any] = {
            "phase": "blueprint",
            "selected_option": selected_option,
            "findings": findings.to_dict(),
        }
        constraints = []
        if node_count:
            constraints.append(f"The blueprint MUST contain at least {node_count} nodes.")
        for requirement in explicit_requirements or []:
            constraints.append(f"User requirement: {requirement}")
        if constraints:
            context["enforced_constraints"] = "\n".join(f"- {c}" for c in constraints)
        if feedback:
            context["user_feedback"] = feedback
        context["instruction"] = BLUEPRINT_FORMAT

        result = await self.invoke(
            session_id,
            f"Create a blueprint for option {selected_option}",
            context,
            BlueprintResult,
        )
        return self.payload_or_default(result, BlueprintResult)

    async def select_credentials(
        self,
        session_id: str,
        available: List[Dict[str, Any]],
        needed: List[str],
    ) -> CredentialsResult:
        result = await self.invoke(
            session_id,
            "Reconcile available credentials with the credentials the blueprint needs",
            {
                "phase": "credentials",
                "available": available,
                "needed": needed,
                "instruction": CREDENTIALS_FORMAT,
            },
            CredentialsResult,
        )
        return self.payload_or_default(result, CredentialsResult)

    # -------------------------------------------------------------------------
    # ANALYSIS MODE
    # -------------------------------------------------------------------------

    async def analyze_project_context(
        self,
        session_id: str,
        project_docs: Dict[str, str],
        workflow: Dict[str, Any],
    ) -> ProjectContextResult:
        nodes = workflow.get("nodes", [])
        result = await self.invoke(
            session_id,
            "Work out what this workflow is meant to do within its project",
            {
                "project_docs": project_docs,
                "workflow_summary": {
                    "name": workflow.get("name", ""),
                    "node_count": len(nodes),
                    "node_types": sorted({n.get("type", "") for n in nodes}),
                },
                "instruction": PROJECT_CONTEXT_FORMAT,
            },
            ProjectContextResult,
        )
        return self.payload_or_default(result, ProjectContextResult)

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
            {
                "question_context": context or {},
                "instruction": 'Answer from your project understanding. Say so if unsure. Return JSON: {"answer": "..."}',
            },
            AnswerResult,
        )
        return self.payload_or_default(result, AnswerResult).answer


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = ["ArchitectAgent"]
