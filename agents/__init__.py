# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - AGENTS PACKAGE
# =============================================================================
"""
Agents Package

The five roles that build and repair n8n workflows. Each role is a
``BaseAgent`` subclass sharing one invocation contract; they differ in
prompt, permitted n8n tools and result types.

Agent Types:
    - Architect:  Clarifies requests, ranks options, writes blueprints
    - Researcher: Searches the instance, analyzes executions (read only)
    - Builder:    The only role that creates, updates or deletes workflows
    - QA:         Validates and live-tests workflows
    - Analyst:    Post-mortems and audit synthesis; writes learnings

Package Structure:
    agents/
    ├── __init__.py          # This file
    ├── base/                # Invocation contract, LLM client, n8n tools
    ├── architect/
    ├── researcher/
    ├── builder/
    ├── qa/
    └── analyst/

Usage:
    from agents import get_agent_class

    agent = get_agent_class("builder")(session_store, llm=client, toolbox=toolbox)
"""

from typing import Dict, Type

from agents.analyst import AnalystAgent
from agents.architect import ArchitectAgent
from agents.base import BaseAgent
from agents.builder import BuilderAgent
from agents.qa import QAAgent
from agents.researcher import ResearcherAgent

__version__ = "1.0.0"

AGENT_CLASSES: Dict[str, Type[BaseAgent]] = {
    "architect": ArchitectAgent,
    "researcher": ResearcherAgent,
    "builder": BuilderAgent,
    "qa": QAAgent,
    "analyst": AnalystAgent,
}


# =============================================================================
# AGENT FACTORY
# =============================================================================

def get_agent_class(agent_type: str) -> Type[BaseAgent]:
    """
    Agent class for a role name.

    Raises:
        ValueError: If agent_type is unknown
    """
    if agent_type not in AGENT_CLASSES:
        raise ValueError(f"Unknown agent type: {agent_type}")
    return AGENT_CLASSES[agent_type]


__all__ = [
    "AGENT_CLASSES",
    "get_agent_class",
    "BaseAgent",
    "ArchitectAgent",
    "ResearcherAgent",
    "BuilderAgent",
    "QAAgent",
    "AnalystAgent",
]
