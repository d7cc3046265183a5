# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - AGENT BASE PACKAGE
# =============================================================================
"""
Agent Base Package

Shared infrastructure used by all roles:

    - BaseAgent: invocation contract (prompt, tool loop, call logging, result)
    - LLMClient: provider-agnostic client with a tool-use loop
    - WorkflowApiClient / WorkflowToolbox: n8n capabilities and per-role access
    - OutputHandler: JSON extraction from model output, atomic artifact writes
"""

from .agent_interface import (
    DEFAULT_AGENT_TIMEOUT,
    AgentError,
    AgentTimeoutError,
    BaseAgent,
)
from .llm_client import (
    LLMClient,
    LLMMessage,
    LLMResponse,
    ToolCallRecord,
    ToolDefinition,
    create_llm_client,
    estimate_tokens,
)
from .output_handler import (
    OutputHandler,
    extract_json,
    parse_agent_output,
)
from .tools import (
    TOOL_DEFINITIONS,
    WorkflowApiClient,
    WorkflowApiError,
    WorkflowToolbox,
    validate_workflow_structure,
)


__all__ = [
    # Invocation contract
    "DEFAULT_AGENT_TIMEOUT",
    "AgentError",
    "AgentTimeoutError",
    "BaseAgent",

    # LLM client
    "LLMClient",
    "LLMMessage",
    "LLMResponse",
    "ToolCallRecord",
    "ToolDefinition",
    "create_llm_client",
    "estimate_tokens",

    # Output handling
    "OutputHandler",
    "extract_json",
    "parse_agent_output",

    # n8n tools
    "TOOL_DEFINITIONS",
    "WorkflowApiClient",
    "WorkflowApiError",
    "WorkflowToolbox",
    "validate_workflow_structure",
]
