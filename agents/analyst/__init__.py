# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - ANALYST AGENT PACKAGE
# =============================================================================
from .analyst_agent import AnalystAgent

__all__ = ["AnalystAgent"]
