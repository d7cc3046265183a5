# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - BUILDER AGENT IMPLEMENTATION
# =============================================================================
"""
Builder Agent Implementation

The only role allowed to change workflows. Every build or fix must leave
mutation calls in the session log; the orchestrator's mutation-call gate
rejects a Builder turn that made none.

Rules given to the model:
    - Real n8n calls only; never invent workflow ids
    - Fixes touch only the nodes in the edit scope (update_partial_workflow)
    - Re-fetch after mutating and report the verification block
    - Never repeat an approach listed under ALREADY TRIED
"""

import logging
from typing import Any, Dict, List, Optional

from agents.base.agent_interface import BaseAgent
from orchestrator.models import AgentResult, AgentRole, CallType
from orchestrator.results import BlueprintResult, BuildResult, BuildVerification

logger = logging.getLogger(__name__)


# =============================================================================
# OUTPUT FORMATS
# =============================================================================

BUILD_FORMAT = """Build the workflow:
1. create_workflow with the blueprint's nodes and connections
2. get_workflow to verify what was stored
3. If more than half of the existing nodes would be removed: STOP and report
Return JSON:
{
  "workflow_id": "...",
  "workflow_name": "...",
  "node_count": 5,
  "version_id": 1,
  "graph_hash": "...",
  "snapshot_taken": false,
  "approach": "one line describing what you built",
  "verification": {
    "version_changed": true,
    "expected_changes_applied": true,
    "nodes_match": true,
    "connections_valid": true
  }
}"""

FIX_RULES = """Rules:
1. Use update_partial_workflow only
2. Only modify nodes in the edit scope
3. Verify with get_workflow afterwards
4. Do not repeat anything listed under ALREADY TRIED
Return the same JSON as a build, with "approach" describing this fix."""

AUTOFIX_FORMAT = """Apply autofix:
1. autofix_workflow
2. Review the applied fixes
3. get_workflow to verify
Return the build JSON with verification."""

DELETE_FORMAT = """Delete the workflow:
1. get_workflow first and keep its JSON in your answer as a snapshot
2. delete_workflow
Return JSON: {"workflow_id": "...", "snapshot_taken": true}"""

VERIFY_FORMAT = """Post-build verification:
1. get_workflow
2. Check the version changed, the node count matches and the modified nodes exist
Return JSON:
{"workflow_id": "...", "verification": {"version_changed": true, "expected_changes_applied": true,
 "nodes_match": true, "connections_valid": true}}"""


# =============================================================================
# BUILDER AGENT CLASS
# =============================================================================

class BuilderAgent(BaseAgent):
    """Creates, fixes and deletes workflows through logged mutation calls."""

    ROLE = AgentRole.BUILDER
    ROLE_PROMPT = """You are the Builder of an n8n workflow team.
You are the only agent that creates, updates or deletes workflows.
Every change goes through a real n8n call; results you report must match
what the instance returns."""

    @staticmethod
    def resolve_workflow_id(build: BuildResult, result: AgentResult) -> str:
        """Reported id, else the first id a mutation call in this turn touched."""
        if build.workflow_id:
            return build.workflow_id
        for call in result.logged_calls:
            if call.type != CallType.MUTATION:
                continue
            if call.result_ref:
                return call.result_ref
            workflow_id = call.params.get("workflow_id") or call.params.get("id")
            if workflow_id:
                return str(workflow_id)
        return ""

    def _build_result(self, result: AgentResult) -> BuildResult:
        build = self.payload_or_default(result, BuildResult)
        build.workflow_id = self.resolve_workflow_id(build, result)
        return build

    async def build(self, session_id: str, blueprint: BlueprintResult) -> BuildResult:
        context: Dict[str, Any] = {"blueprint": blueprint.to_dict()}
        already_tried = self.session_store.format_already_tried(session_id)
        if already_tried:
            context["already_tried"] = already_tried
        context["instruction"] = BUILD_FORMAT

        result = await self.invoke(session_id, "Build the workflow from the blueprint", context, BuildResult)
        return self._build_result(result)

    async def fix(
        self,
        session_id: str,
        workflow_id: str,
        edit_scope: List[str],
        error_details: str,
        guidance: Optional[Dict[str, Any]] = None,
        node_context: Optional[str] = None,
    ) -> BuildResult:
        scope = "\n".join(f"- {name}" for name in edit_scope) or "- (not narrowed; keep changes minimal)"
        context: Dict[str, Any] = {
            "workflow_id": workflow_id,
            "edit_scope": f"ONLY touch these nodes:\n{scope}",
            "errors": error_details,
        }
        already_tried = self.session_store.format_already_tried(session_id)
        if already_tried:
            context["already_tried"] = already_tried
        if guidance:
            context["research_guidance"] = guidance
        if node_context:
            context["isolated_nodes"] = node_context
        context["instruction"] = FIX_RULES

        result = await self.invoke(session_id, f"Fix workflow {workflow_id}", context, BuildResult)
        build = self._build_result(result)
        if not build.workflow_id:
            build.workflow_id = workflow_id
        return build

    async def autofix(self, session_id: str, workflow_id: str) -> BuildResult:
        result = await self.invoke(
            session_id,
            f"Autofix workflow {workflow_id}",
            {"workflow_id": workflow_id, "instruction": AUTOFIX_FORMAT},
            BuildResult,
        )
        build = self._build_result(result)
        build.workflow_id = build.workflow_id or workflow_id
        return build

    async def delete(self, session_id: str, workflow_id: str, confirmed: bool) -> Dict[str, Any]:
        """Delete a workflow; does nothing unless *confirmed*."""
        if not confirmed:
            self.logger.info(f"Delete of {workflow_id} not confirmed, skipping")
            return {"deleted": False, "workflow_id": workflow_id}

        result = await self.invoke(
            session_id,
            f"Delete workflow {workflow_id}",
            {"workflow_id": workflow_id, "instruction": DELETE_FORMAT},
            BuildResult,
        )
        deleted = any(call.tool == "delete_workflow" for call in result.logged_calls)
        return {"deleted": deleted, "workflow_id": workflow_id}

    async def verify_build(
        self,
        session_id: str,
        workflow_id: str,
        node_count: int,
        modified_nodes: List[str],
    ) -> BuildVerification:
        result = await self.invoke(
            session_id,
            f"Verify build of {workflow_id}",
            {
                "workflow_id": workflow_id,
                "expected_changes": {"node_count": node_count, "modified_nodes": modified_nodes},
                "instruction": VERIFY_FORMAT,
            },
            BuildResult,
        )
        return self.payload_or_default(result, BuildResult).verification


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = ["BuilderAgent"]
