# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - AGENT INTERFACE
# =============================================================================
"""
Agent Interface Module

The invocation contract shared by the five roles (Architect, Researcher,
Builder, QA, Analyst). ``BaseAgent.invoke`` is the only path to the model:

1. Build the system prompt (role prompt + session context block)
2. Build the task prompt (``## TASK`` + ``## CONTEXT`` sections)
3. Run the LLM tool loop with the role's permitted n8n tools, racing a
   hard timeout
4. Log every executed tool call on the session, tagged with the cycle
5. Parse the output into the requested phase result (total fallback)
6. Append the assistant turn to history and store the result

``invoke`` never raises: exceptions and timeouts come back as
``AgentResult(success=False, data={"error": ...})``.
"""

import asyncio
import json
import logging
import os
import time
from abc import ABC
from typing import Any, Dict, List, Optional, Type

from agents.base.llm_client import LLMClient, LLMResponse
from agents.base.output_handler import parse_agent_output
from agents.base.tools import WorkflowToolbox
from monitoring import AuditLogger, MetricsCollector
from orchestrator.engine.session_store import SessionStore
from orchestrator.models import AgentResult, AgentRole, HistoryEntry, LoggedCall, Session
from orchestrator.results import PhaseResult

DEFAULT_AGENT_TIMEOUT = 90


# =============================================================================
# EXCEPTIONS
# =============================================================================

class AgentError(Exception):
    """Agent invocation failed."""


class AgentTimeoutError(AgentError):
    """Agent invocation exceeded its time budget."""


# =============================================================================
# BASE AGENT
# =============================================================================

class BaseAgent(ABC):
    """
    Base class for all role agents.

    Subclasses set ``ROLE`` and ``ROLE_PROMPT`` and expose phase methods
    that call ``invoke`` with a task, a context dict and the expected
    result type.

    Args:
        session_store: Store holding the sessions this agent works on
        llm: LLM client (lazily created from the environment when omitted)
        toolbox: n8n capability set; None means the agent has no tools
        timeout: Seconds before an invocation is abandoned
        prompts_dir: Directory with ``<role>.md`` files overriding ``ROLE_PROMPT``
        audit: Audit trail writer
        metrics: Metrics collector
    """

    ROLE: AgentRole
    ROLE_PROMPT: str = ""

    def __init__(
        self,
        session_store: SessionStore,
        llm: Optional[LLMClient] = None,
        toolbox: Optional[WorkflowToolbox] = None,
        timeout: float = DEFAULT_AGENT_TIMEOUT,
        prompts_dir: Optional[str] = None,
        audit: Optional[AuditLogger] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.session_store = session_store
        self.toolbox = toolbox
        self.timeout = timeout
        self.prompts_dir = prompts_dir
        self.audit = audit
        self.metrics = metrics
        self.logger = logging.getLogger(f"agent.{self.ROLE.value}")
        self._llm = llm

    @property
    def role(self) -> AgentRole:
        return self.ROLE

    @property
    def llm(self) -> LLMClient:
        """Lazy-load LLM client."""
        if self._llm is None:
            self._llm = LLMClient()
        return self._llm

    # -------------------------------------------------------------------------
    # PROMPTS
    # -------------------------------------------------------------------------

    def get_role_prompt(self) -> str:
        if self.prompts_dir:
            path = os.path.join(self.prompts_dir, f"{self.ROLE.value}.md")
            if os.path.exists(path):
                with open(path, "r", encoding="utf-8") as f:
                    return f.read()
        return self.ROLE_PROMPT

    def build_system_prompt(self, session: Session) -> str:
        lines = [
            self.get_role_prompt().strip(),
            "",
            "## SESSION CONTEXT",
            f"- Session: {session.id}",
            f"- Stage: {session.stage.value}",
            f"- Cycle: {session.cycle}",
        ]
        if session.workflow_id:
            lines.append(f"- Workflow: {session.workflow_id}")
        lines += [
            "",
            "Respond with a single ```json fenced block containing the requested fields.",
        ]
        return "\n".join(lines)

    @staticmethod
    def build_task_prompt(task: str, context: Optional[Dict[str, Any]] = None) -> str:
        prompt = f"## TASK\n\n{task}"
        if context:
            prompt += "\n\n## CONTEXT"
            for key, value in context.items():
                rendered = value if isinstance(value, str) else json.dumps(value, indent=2, default=str)
                prompt += f"\n\n### {key}\n{rendered}"
        return prompt

    # -------------------------------------------------------------------------
    # INVOCATION
    # -------------------------------------------------------------------------

    def _call_llm(self, system: str, prompt: str) -> LLMResponse:
        if self.toolbox is None:
            return self.llm.run_with_tools(prompt, system=system)
        return self.llm.run_with_tools(
            prompt,
            system=system,
            tools=self.toolbox.definitions_for(self.ROLE),
            executor=self.toolbox.executor_for(self.ROLE),
        )

    async def invoke(
        self,
        session_id: str,
        task: str,
        context: Optional[Dict[str, Any]],
        result_type: Type[PhaseResult],
    ) -> AgentResult:
        """
        Run one model exchange for this role.

        Returns:
            AgentResult whose ``data`` is the parsed phase result, or a
            failed result carrying the error message
        """
        session = self.session_store.get(session_id)
        start_time = time.time()
        system = self.build_system_prompt(session)
        prompt = self.build_task_prompt(task, context)

        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(self._call_llm, system, prompt),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            error = AgentTimeoutError(f"{self.ROLE.value} timed out after {self.timeout}s")
            return await self._fail(session_id, error, start_time)
        except Exception as e:
            return await self._fail(session_id, e, start_time)

        cycle = session.cycle
        calls: List[LoggedCall] = [
            LoggedCall.create(c.name, self.ROLE, c.arguments, cycle=cycle, result_ref=c.result_ref)
            for c in response.tool_calls
            if c.error is None
        ]
        await self.session_store.log_calls(session_id, calls)

        payload = self.parse_output(response.content, result_type, calls)
        result = AgentResult(
            agent_role=self.ROLE,
            success=True,
            data=payload.to_dict(),
            logged_calls=calls,
        )

        await self.session_store.add_history_entry(
            session_id,
            HistoryEntry(
                role="assistant",
                content=response.content,
                agent_role=self.ROLE,
                tokens=response.total_tokens or None,
            ),
        )
        await self.session_store.store_agent_result(session_id, result)

        duration = time.time() - start_time
        self.logger.info(
            f"{self.ROLE.value} completed in {duration:.1f}s "
            f"({len(calls)} calls, {response.total_tokens} tokens)"
        )
        if self.metrics:
            self.metrics.record_agent_execution(self.ROLE.value, duration, True)
            self.metrics.record_llm_usage(
                response.model, self.ROLE.value, response.tokens_input, response.tokens_output
            )
        if self.audit:
            self.audit.log_agent_execution(
                agent_role=self.ROLE.value,
                session_id=session_id,
                success=True,
                duration=duration,
                calls_logged=len(calls),
                output_summary=response.content[:200],
            )
        return result

    def parse_output(
        self,
        content: str,
        result_type: Type[PhaseResult],
        calls: List[LoggedCall],
    ) -> PhaseResult:
        """Typed result from model output. Roles override to use call evidence."""
        return parse_agent_output(content, result_type)

    async def _fail(self, session_id: str, error: Exception, start_time: float) -> AgentResult:
        duration = time.time() - start_time
        message = str(error) or type(error).__name__
        self.logger.error(f"{self.ROLE.value} invocation failed: {message}")

        result = AgentResult.failure(self.ROLE, message)
        await self.session_store.store_agent_result(session_id, result)

        if self.metrics:
            self.metrics.record_agent_execution(self.ROLE.value, duration, False)
        if self.audit:
            self.audit.log_error(
                component=f"agent.{self.ROLE.value}",
                error_type=type(error).__name__,
                message=message,
                session_id=session_id,
            )
        return result

    # -------------------------------------------------------------------------
    # HELPERS
    # -------------------------------------------------------------------------

    @staticmethod
    def payload_or_default(result: AgentResult, result_type: Type[PhaseResult]) -> PhaseResult:
        """Typed payload of a result, or the type's empty default when it failed."""
        payload = result.payload() if result.success else None
        if isinstance(payload, result_type):
            return payload
        return result_type.from_dict({})


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "DEFAULT_AGENT_TIMEOUT",
    "AgentError",
    "AgentTimeoutError",
    "BaseAgent",
]
