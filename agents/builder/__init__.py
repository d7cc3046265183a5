# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - BUILDER AGENT PACKAGE
# =============================================================================
from .builder_agent import BuilderAgent

__all__ = ["BuilderAgent"]
