# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - RESEARCHER AGENT PACKAGE
# =============================================================================
from .researcher_agent import ResearcherAgent

__all__ = ["ResearcherAgent"]
