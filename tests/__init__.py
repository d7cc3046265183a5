# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - TEST PACKAGE
# =============================================================================
"""
Test Package

Test Structure:
    tests/
    ├── __init__.py              # This file
    ├── conftest.py              # Scripted LLMs, harness, canned agent replies
    ├── test_workflow.py         # End-to-end runs of the build/fix graph
    ├── test_gate_enforcer.py    # Gate rules and escalation levels
    ├── test_session_store.py    # Session model, persistence, history
    ├── test_agents.py           # Agent behaviour and result parsing
    ├── test_analyze.py          # Read-only analysis mode
    └── test_main.py             # Config, CLI, retry, n8n tools

Running Tests:
    pytest tests/ -v

    # Run with coverage
    pytest tests/ --cov=orchestrator --cov=agents --cov=monitoring

No test talks to a real model or n8n instance: every agent is driven by a
ScriptedLLM and the REST client gets a fake HTTP session.
"""
