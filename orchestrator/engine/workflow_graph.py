# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - LANGGRAPH WORKFLOW DEFINITION
# =============================================================================
"""
LangGraph Workflow Module

State machine for one build session, from user request to a terminal
report. Nodes live in ``orchestrator.nodes``; this module wires them into a
LangGraph ``StateGraph`` and owns the top-level error handler.

State Machine Overview:
    ┌──────────────────────────────────────────────────────────────────┐
    │                     BUILD SESSION WORKFLOW                       │
    ├──────────────────────────────────────────────────────────────────┤
    │                                                                  │
    │   ┌───────────────┐  (conversational)                            │
    │   │ CLARIFICATION │ ─────────────────────────────────┐           │
    │   └──────┬────────┘                                  │           │
    │          ▼                                           │           │
    │   ┌───────────────┐                                  │           │
    │   │   RESEARCH    │                                  │           │
    │   └──────┬────────┘                                  │           │
    │          ▼                                           │           │
    │   ┌───────────────┐  (invalid blueprint)             │           │
    │   │   DECISION    │ ─────────────────────────────────┤           │
    │   └──────┬────────┘                                  │           │
    │          ▼                                           │           │
    │   ┌───────────────┐                                  │           │
    │   │  CREDENTIALS  │                                  │           │
    │   └──────┬────────┘                                  │           │
    │          ▼                                           │           │
    │   ┌───────────────┐                                  │           │
    │   │IMPLEMENTATION │                                  │           │
    │   └──────┬────────┘                                  │           │
    │          ▼                                           │           │
    │   ┌───────────────┐  (no workflow id)                │           │
    │   │     BUILD     │ ──────────────────┐              │           │
    │   └──────┬────────┘                   │              │           │
    │          ▼                            │              │           │
    │   ┌───────────────┐  (BLOCKED)        │              │           │
    │   │      QA       │ ─────────────────▶│              │           │
    │   └──┬─────────▲──┘                   │              │           │
    │ (FAIL)│        │(cycles left)         ▼              ▼           │
    │      ▼         │              ┌─────────────┐  ┌──────────┐      │
    │   ┌───────────────┐ (exhausted)│ POST_MORTEM │  │   DONE   │◀─PASS│
    │   │      FIX      │ ─────────▶ └─────────────┘  └──────────┘      │
    │   └───────────────┘                                              │
    │                                                                  │
    └──────────────────────────────────────────────────────────────────┘

Any exception escaping a node is caught once in ``WorkflowEngine.run``,
which forces the session to blocked and runs the post-mortem.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypedDict, TYPE_CHECKING

from langgraph.graph import END, StateGraph

from orchestrator.nodes import (
    BLOCKED_PREFIX,
    NodeContext,
    build_node,
    build_router,
    clarification_node,
    clarification_router,
    credentials_node,
    decision_node,
    decision_router,
    done_node,
    fix_node,
    implementation_node,
    make_fix_router,
    post_mortem_node,
    qa_node,
    qa_router,
    research_node,
)

if TYPE_CHECKING:
    from orchestrator.context import RuntimeContext


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

logger = logging.getLogger(__name__)

RECURSION_LIMIT = 50

NodeFunction = Callable[[Dict[str, Any], NodeContext], Awaitable[Dict[str, Any]]]


# =============================================================================
# WORKFLOW STATE TYPED DICT
# =============================================================================


class GraphState(TypedDict, total=False):
    """
    State object passed through the LangGraph workflow.

    Phase results are stored as plain dicts (``PhaseResult.to_dict``);
    nodes rebuild typed results with ``from_dict``. The session in the
    store stays authoritative for stage and cycle.
    """
    # Core identifiers
    session_id: str
    request: str
    workflow_id: Optional[str]
    stage: str
    cycle: int
    resumed: bool

    # Phase results
    clarification: Dict[str, Any]
    findings: Dict[str, Any]
    options: Dict[str, Any]
    selected_option: str
    blueprint: Dict[str, Any]
    credentials: Dict[str, Any]
    guidance: Dict[str, Any]
    build: Dict[str, Any]
    qa_report: Dict[str, Any]

    # Outcome
    outcome: Optional[str]
    response: str
    block_reason: Optional[str]
    error_message: Optional[str]

    # Node trail
    trail: List[Dict[str, Any]]


# =============================================================================
# WORKFLOW ENGINE CLASS
# =============================================================================


class WorkflowEngine:
    """
    Runs the LangGraph state machine for build sessions.

    Attributes:
        runtime: Services shared by every node
        ctx: Node context wrapping the runtime
        graph: Compiled LangGraph workflow
    """

    def __init__(self, runtime: 'RuntimeContext'):
        self.runtime = runtime
        self.ctx = NodeContext(runtime=runtime)
        self.graph = self._build_graph()

    def _bind(self, node: NodeFunction) -> Callable[[GraphState], Awaitable[Dict[str, Any]]]:
        async def run(state: GraphState) -> Dict[str, Any]:
            return await node(dict(state), self.ctx)

        run.__name__ = node.__name__
        return run

    def _build_graph(self):
        """
        Build the LangGraph workflow definition.

        Returns:
            Compiled LangGraph workflow
        """
        graph = StateGraph(GraphState)

        # Add all nodes
        graph.add_node("clarification", self._bind(clarification_node))
        graph.add_node("research", self._bind(research_node))
        graph.add_node("decision", self._bind(decision_node))
        graph.add_node("credentials", self._bind(credentials_node))
        graph.add_node("implementation", self._bind(implementation_node))
        graph.add_node("build", self._bind(build_node))
        graph.add_node("qa", self._bind(qa_node))
        graph.add_node("fix", self._bind(fix_node))
        graph.add_node("post_mortem", self._bind(post_mortem_node))
        graph.add_node("done", self._bind(done_node))

        graph.set_entry_point("clarification")

        graph.add_conditional_edges(
            "clarification",
            clarification_router,
            {"conversational": "done", "build_request": "research"},
        )
        graph.add_edge("research", "decision")
        graph.add_conditional_edges(
            "decision",
            decision_router,
            {"valid": "credentials", "invalid": "done"},
        )
        graph.add_edge("credentials", "implementation")
        graph.add_edge("implementation", "build")
        graph.add_conditional_edges(
            "build",
            build_router,
            {"built": "qa", "failed": "post_mortem"},
        )
        graph.add_conditional_edges(
            "qa",
            qa_router,
            {"pass": "done", "blocked": "post_mortem", "fail": "fix"},
        )
        graph.add_conditional_edges(
            "fix",
            make_fix_router(self.runtime.max_cycles),
            {"retry": "qa", "exhausted": "post_mortem"},
        )

        graph.add_edge("done", END)
        graph.add_edge("post_mortem", END)

        return graph.compile()

    # =========================================================================
    # PUBLIC METHODS
    # =========================================================================

    @staticmethod
    def initial_state(
        session_id: str,
        request: str,
        workflow_id: Optional[str] = None,
        resumed: bool = False,
    ) -> GraphState:
        return GraphState(
            session_id=session_id,
            request=request,
            workflow_id=workflow_id,
            cycle=0,
            resumed=resumed,
            trail=[],
        )

    async def run(self, state: GraphState) -> GraphState:
        """
        Execute the workflow from clarification to a terminal node.

        Returns:
            Final workflow state; ``response`` holds the user-facing report
        """
        session_id = state["session_id"]
        config = {"recursion_limit": RECURSION_LIMIT}

        try:
            async for event in self.graph.astream(state, config=config):
                for node_name, node_state in event.items():
                    if node_state:
                        logger.debug(f"Node {node_name} completed")
                        state = node_state
        except Exception as e:
            logger.error(f"Workflow error for {session_id}: {e}", exc_info=True)
            if self.runtime.audit:
                self.runtime.audit.log_error("orchestrator", type(e).__name__, str(e), session_id)
            state = dict(state)
            state["error_message"] = str(e)
            state["block_reason"] = f"{type(e).__name__}: {e}"
            state = await self.run_post_mortem(state)

        return state

    async def run_post_mortem(self, state: GraphState) -> GraphState:
        """
        Blocked path outside the graph (errors and resume of a blocked session).

        Never raises: if the post-mortem itself fails the state still ends
        blocked with a response starting with ``BLOCKED_PREFIX``.
        """
        session_id = state["session_id"]
        try:
            return await post_mortem_node(dict(state), self.ctx)
        except Exception as e:
            logger.error(f"Post-mortem failed for {session_id}: {e}", exc_info=True)
            if self.runtime.audit:
                self.runtime.audit.log_error("post_mortem", type(e).__name__, str(e), session_id)
            state = dict(state)
            reason = state.get("block_reason") or f"{type(e).__name__}: {e}"
            state["outcome"] = "blocked"
            state["stage"] = "blocked"
            state["response"] = f"{BLOCKED_PREFIX}\n\n{reason}\n\n(Post-mortem unavailable: {e})"
            return state


# =============================================================================
# FACTORY FUNCTION
# =============================================================================


def create_workflow_engine(runtime: 'RuntimeContext') -> WorkflowEngine:
    """
    Create a workflow engine instance.

    Args:
        runtime: Services built by ``orchestrator.context.build_runtime``

    Returns:
        Configured WorkflowEngine instance
    """
    return WorkflowEngine(runtime)


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "WorkflowEngine",
    "create_workflow_engine",
    "GraphState",
    "RECURSION_LIMIT",
]
