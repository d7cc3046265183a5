# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - ARCHITECT AGENT PACKAGE
# =============================================================================
from .architect_agent import ArchitectAgent

__all__ = ["ArchitectAgent"]
