# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - RESEARCHER AGENT IMPLEMENTATION
# =============================================================================
"""
Researcher Agent Implementation

Read-only investigator. The Researcher searches the n8n instance, inspects
execution history and validates hypotheses; it never changes a workflow.

Execution analysis is always two-step, and the orchestrator's gates check
for both calls in the current cycle:

    STEP 1  list_executions mode=summary    find WHERE the run failed
    STEP 2  list_executions mode=filtered   find WHY (run data of that node)
"""

import logging
from typing import Any, Dict, List, Optional

from agents.base.agent_interface import BaseAgent
from orchestrator.models import AgentRole
from orchestrator.results import (
    AnswerResult,
    AuditFindings,
    CredentialDiscovery,
    DeepDiveResult,
    ExecutionAnalysis,
    HypothesisValidation,
    ResearchFindings,
)

logger = logging.getLogger(__name__)


# =============================================================================
# OUTPUT FORMATS
# =============================================================================

SEARCH_FORMAT = """Search in this order:
1. Existing workflows (list_workflows, get_workflow)
2. Node types in use (search_nodes)
3. Credentials already configured (list_credentials)
Return JSON:
{
  "hypothesis": "What I think will work",
  "hypothesis_validated": true,
  "fit_score": 85,
  "templates_found": [{"id": "...", "name": "...", "fit_score": 90}],
  "nodes_found": [{"type": "...", "name": "..."}],
  "existing_workflows": [{"id": "...", "name": "...", "active": true}]
}"""

EXECUTION_ANALYSIS_FORMAT = """Two-step execution analysis:
STEP 1: Find WHERE - call list_executions with mode="summary" and identify the failed node.
STEP 2: Find WHY - call list_executions with mode="filtered" and node_names=[failed node].
Both calls are required.
Return JSON:
{
  "where": "Node name where the failure occurred",
  "why": "Root cause explanation",
  "failed_node": "exact node name",
  "error_type": "validation|runtime|connection|expression",
  "hypothesis": "I believe the fix is...",
  "hypothesis_validated": true
}
Set hypothesis_validated only when the execution data confirms the hypothesis."""

ALTERNATIVE_FORMAT = """Previous approaches failed. Find an alternative:
1. Look for different node types
2. Look at existing workflows solving similar problems
Return the research findings JSON with a NEW hypothesis that does not
repeat any failed approach."""

DEEP_DIVE_FORMAT = """Cycle 6-7: deep investigation.
1. Analyze the full error history and every prior fix attempt
2. Check for systemic issues
3. Consider architectural changes
Return JSON:
{
  "root_cause": "The fundamental issue is...",
  "systemic_issue": "description, or empty if none",
  "recommendations": ["..."],
  "alternative_nodes": ["n8n-nodes-base.httpRequest"]
}"""

CREDENTIALS_FORMAT = """Find credentials matching the needed types (list_credentials).
Return JSON:
{"credentials_discovered": [{"id": "123", "name": "My API Key", "type": "openAiApi"}]}"""

HYPOTHESIS_FORMAT = """Validate the hypothesis:
1. Check that the nodes exist
2. Verify the configuration is possible
3. Look for similar working workflows
Return JSON:
{"validated": true, "confidence": 0.8, "evidence": ["..."]}"""

AUDIT_FORMAT = """Technical audit of a live workflow. Read only.
Use get_workflow and the two-step execution analysis.
Return JSON:
{
  "issues": [{"severity": "critical|high|medium|low", "node": "...", "description": "...", "evidence": "..."}],
  "execution_patterns": ["..."],
  "node_observations": ["..."],
  "questions": [{"to": "architect", "question": "..."}]
}"""


# =============================================================================
# RESEARCHER AGENT CLASS
# =============================================================================

class ResearcherAgent(BaseAgent):
    """Search, execution analysis and hypothesis validation."""

    ROLE = AgentRole.RESEARCHER
    ROLE_PROMPT = """You are the Researcher of an n8n workflow team.
You search the n8n instance and analyze executions to produce evidence.
You only read; you never create, update or delete workflows.
Every hypothesis you report must be backed by what you observed."""

    async def search(self, session_id: str, query: str) -> ResearchFindings:
        result = await self.invoke(
            session_id,
            query,
            {"instruction": SEARCH_FORMAT},
            ResearchFindings,
        )
        return self.payload_or_default(result, ResearchFindings)

    async def analyze_execution(
        self,
        session_id: str,
        workflow_id: str,
        execution_id: Optional[str] = None,
        error_summary: str = "",
    ) -> ExecutionAnalysis:
        context: Dict[str, Any] = {"workflow_id": workflow_id}
        if execution_id:
            context["execution_id"] = execution_id
        if error_summary:
            context["qa_errors"] = error_summary
        context["instruction"] = EXECUTION_ANALYSIS_FORMAT

        result = await self.invoke(
            session_id,
            f"Analyze execution failures of workflow {workflow_id}",
            context,
            ExecutionAnalysis,
        )
        return self.payload_or_default(result, ExecutionAnalysis)

    async def find_alternative(
        self,
        session_id: str,
        failed_approaches: List[str],
        already_tried: str = "",
    ) -> ResearchFindings:
        context: Dict[str, Any] = {"failed_approaches": failed_approaches}
        if already_tried:
            context["already_tried"] = already_tried
        context["instruction"] = ALTERNATIVE_FORMAT

        result = await self.invoke(
            session_id,
            "Find an alternative approach after repeated failures",
            context,
            ResearchFindings,
        )
        return self.payload_or_default(result, ResearchFindings)

    async def deep_dive(
        self,
        session_id: str,
        workflow_id: str,
        error_history: List[str],
        already_tried: str = "",
    ) -> DeepDiveResult:
        result = await self.invoke(
            session_id,
            "Deep dive root cause analysis",
            {
                "workflow_id": workflow_id,
                "error_history": error_history,
                "already_tried": already_tried,
                "instruction": DEEP_DIVE_FORMAT,
            },
            DeepDiveResult,
        )
        return self.payload_or_default(result, DeepDiveResult)

    async def discover_credentials(self, session_id: str, needed_types: List[str]) -> List[Dict[str, Any]]:
        result = await self.invoke(
            session_id,
            "Discover available credentials",
            {"needed_types": needed_types, "instruction": CREDENTIALS_FORMAT},
            CredentialDiscovery,
        )
        return self.payload_or_default(result, CredentialDiscovery).credentials_discovered

    async def validate_hypothesis(self, session_id: str, hypothesis: str) -> HypothesisValidation:
        result = await self.invoke(
            session_id,
            f"Validate hypothesis: {hypothesis}",
            {"instruction": HYPOTHESIS_FORMAT},
            HypothesisValidation,
        )
        return self.payload_or_default(result, HypothesisValidation)

    # -------------------------------------------------------------------------
    # ANALYSIS MODE
    # -------------------------------------------------------------------------

    async def audit_workflow(
        self,
        session_id: str,
        workflow_id: str,
        project_context: Dict[str, Any],
    ) -> AuditFindings:
        result = await self.invoke(
            session_id,
            f"Audit workflow {workflow_id}",
            {
                "workflow_id": workflow_id,
                "project_context": project_context,
                "instruction": AUDIT_FORMAT,
            },
            AuditFindings,
        )
        return self.payload_or_default(result, AuditFindings)

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
                "instruction": 'Answer with evidence from the workflow and its executions. Return JSON: {"answer": "..."}',
            },
            AnswerResult,
        )
        return self.payload_or_default(result, AnswerResult).answer


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = ["ResearcherAgent"]
