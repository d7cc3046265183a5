# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - ORCHESTRATOR PACKAGE
# =============================================================================
"""
Orchestrator Package

Central orchestration for the n8n agent system. The orchestrator:

1. Owns the session (stage, cycle, history, logged calls, fix attempts)
2. Runs the build flow as a LangGraph state machine
3. Checks the enforcement gates before and after every delegation
4. Escalates through L1-L4 and ends every failed run with a post-mortem

Package Structure:
    - main.py: Config loading, Orchestrator class and CLI
    - context.py: RuntimeContext construction
    - models.py: Session and evidence data model
    - results.py: Typed per-phase agent results
    - engine/: Session store, gates, retry, LangGraph workflow
    - nodes/: LangGraph node implementations
    - analyze/: Read-only audit mode (shared context, Q&A coordinator)

Usage:
    ```python
    from orchestrator.main import Orchestrator, load_config

    orchestrator = Orchestrator.from_config(load_config("config/settings.yaml"))
    report = await orchestrator.start("Build a webhook that posts to Slack")
    ```

The package root stays import-light: agents depend on ``orchestrator.models``
and ``orchestrator.engine``, so nothing here imports the agents.
"""

__version__ = "1.0.0"
__author__ = "AI Agent Development System"
