# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - QA AGENT PACKAGE
# =============================================================================
from .qa_agent import QAAgent

__all__ = ["QAAgent"]
