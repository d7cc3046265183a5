# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - ORCHESTRATOR MAIN ENTRY POINT
# =============================================================================
"""
Orchestrator Main Module

Entry point for the n8n agent orchestrator. Loads configuration, builds the
runtime and runs one of four commands:

1. build (alias: create): Build a workflow from a free-text task
2. analyze: Read-only audit of an existing workflow
3. resume: Continue a persisted session
4. fix: Apply the TODO list an analysis wrote

Usage:
    python -m orchestrator.main build "Webhook that posts new leads to Slack"
    python -m orchestrator.main analyze wf_123 --project-path ./my-project
    python -m orchestrator.main analyze wf_123 --interactive
    python -m orchestrator.main fix analysis_1a2b3c4d
    python -m orchestrator.main resume session_m1abc2_x7y8z9
    python -m orchestrator.main build --interactive --config config/settings.yaml
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

# Local imports
from monitoring import log_context
from monitoring import setup_logging as setup_structured_logging
from orchestrator.context import RuntimeContext, build_runtime
from orchestrator.engine.gate_enforcer import MAX_CYCLES
from orchestrator.engine.workflow_graph import GraphState, WorkflowEngine, create_workflow_engine
from orchestrator.models import Stage
from orchestrator.nodes import ResumeError

# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/settings.yaml"

CANNOT_RESUME_BUILD = "Cannot resume: Blueprint not available. Please start a new session."
SESSION_ALREADY_COMPLETE = "Session already complete"
UNKNOWN_STAGE = "Unknown stage"


# =============================================================================
# CONFIGURATION
# =============================================================================


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load configuration from YAML file and environment variables.

    Environment variables override YAML values.

    Args:
        config_path: Path to settings.yaml

    Returns:
        Merged configuration dictionary
    """
    config = {}

    # Load YAML config if exists
    config_file = Path(config_path)
    if config_file.exists():
        with open(config_file) as f:
            config = yaml.safe_load(f) or {}
        logger.info(f"Loaded config from {config_path}")
    else:
        logger.warning(f"Config file not found: {config_path}, using defaults")

    # Environment variable overrides
    env_mappings = {
        # LLM
        "LLM_PROVIDER": ("llm", "provider"),
        "LLM_MODEL": ("llm", "model"),
        "ANTHROPIC_API_KEY": ("llm", "anthropic_api_key"),
        "OPENAI_API_KEY": ("llm", "openai_api_key"),
        "OLLAMA_BASE_URL": ("llm", "ollama_base_url"),
        # n8n
        "N8N_API_URL": ("n8n", "api_url"),
        "N8N_API_KEY": ("n8n", "api_key"),
        # Sessions
        "SESSION_BACKEND": ("sessions", "backend"),
        "REDIS_URL": ("sessions", "redis_url"),
        "SESSIONS_DIR": ("sessions", "dir"),
        # Orchestrator
        "AGENT_TIMEOUT": ("orchestrator", "agent_timeout"),
        "MAX_CYCLES": ("orchestrator", "max_cycles"),
        # External test hook
        "EXTERNAL_TEST_WEBHOOK_URL": ("external_test", "webhook_url"),
        "EXTERNAL_TEST_BOT_USERNAME": ("external_test", "bot_username"),
        # Logging
        "LOG_LEVEL": ("logging", "level"),
        "LOG_FORMAT": ("logging", "format"),
        "LOG_PATH": ("logging", "file"),
    }

    for env_var, (section, key) in env_mappings.items():
        value = os.environ.get(env_var)
        if value is not None:
            if section not in config:
                config[section] = {}
            # Convert numeric strings
            if value.isdigit():
                value = int(value)
            config[section][key] = value

    redis_url = config.get("sessions", {}).pop("redis_url", None)
    if redis_url:
        config["sessions"].setdefault("redis", {})["url"] = redis_url

    # Apply defaults
    defaults = {
        "llm": {
            "provider": "anthropic",
            "model": "claude-sonnet-4-20250514",
            "temperature": 0.0,
            "max_tokens": 8192,
            "max_turns": 30,
        },
        "n8n": {
            "api_url": "http://localhost:5678",
            "api_key": "",
            "timeout": 30,
        },
        "sessions": {
            "backend": "file",
            "dir": "./sessions",
        },
        "orchestrator": {
            "max_cycles": MAX_CYCLES,
            "agent_timeout": 90,
            "researcher_freshness_seconds": 300,
            "interactive": False,
            "snapshots": True,
            "fix_attempts": 3,
        },
        "external_test": {
            "webhook_url": "",
            "bot_username": "",
            "expected_pattern": "",
            "timeout": 60,
        },
        "paths": {
            "learnings": "./docs/learning/LEARNINGS.md",
            "system_context": "./docs/SYSTEM-CONTEXT.md",
            "reports_dir": "./reports",
            "analyze_dir": "./sessions/analyze",
        },
        "tools": {
            "architect": [],
            "researcher": [
                "get_workflow", "list_workflows", "search_nodes",
                "list_executions", "get_execution", "list_credentials",
            ],
            "builder": [
                "get_workflow", "create_workflow", "update_full_workflow",
                "update_partial_workflow", "delete_workflow", "autofix_workflow", "validate_workflow",
            ],
            "qa": [
                "get_workflow", "validate_workflow", "test_workflow",
                "list_executions", "get_execution", "activate_workflow",
            ],
            "analyst": ["get_workflow", "list_executions"],
        },
        "logging": {
            "level": "INFO",
            "format": "text",
            "dir": "./logs",
        },
        "retry": {},
    }

    for section, section_defaults in defaults.items():
        if section not in config:
            config[section] = {}
        for key, default_value in section_defaults.items():
            if key not in config[section]:
                config[section][key] = default_value

    return config


def setup_logging(config: Dict[str, Any], debug: bool = False) -> None:
    """Configure structured logging from the ``logging`` section."""
    logging_cfg = config.get("logging", {})
    level = "DEBUG" if debug else str(logging_cfg.get("level", "INFO"))

    setup_structured_logging(
        level=level,
        fmt=str(logging_cfg.get("format", "text")),
        log_file=logging_cfg.get("file"),
        log_dir=logging_cfg.get("dir"),
    )


# =============================================================================
# ORCHESTRATOR CLASS
# =============================================================================


class Orchestrator:
    """
    Drives one build session from user request to a terminal report.

    This class is responsible for:
    1. Creating or loading the session
    2. Running the LangGraph workflow for it
    3. Mapping a resumed session's stage to the right continuation

    Every call returns a user-facing string; failures inside the workflow
    end in a post-mortem report rather than an exception.
    """

    def __init__(self, runtime: RuntimeContext):
        """
        Initialize the orchestrator with a runtime.

        Args:
            runtime: Services built by ``build_runtime`` (or by tests)
        """
        self.runtime = runtime
        self.engine: WorkflowEngine = create_workflow_engine(runtime)
        self.last_state: Optional[GraphState] = None

    @classmethod
    def from_config(cls, config: Dict[str, Any], interactive: Optional[bool] = None) -> "Orchestrator":
        return cls(build_runtime(config, interactive=interactive))

    async def start(self, request: str, workflow_id: Optional[str] = None) -> str:
        """
        Start a new session for *request*.

        Args:
            request: Free-text task from the user
            workflow_id: Existing n8n workflow to work on, if any

        Returns:
            Final report for the user
        """
        session = await self.runtime.session_store.create(workflow_id=workflow_id)
        logger.info(f"Started session {session.id}")
        state = WorkflowEngine.initial_state(session.id, request, workflow_id)
        return await self._run(state)

    async def resume(self, session_id: str) -> str:
        """
        Resume a persisted session.

        Raises:
            ResumeError: If the session does not exist
        """
        store = self.runtime.session_store
        session = await store.load(session_id)
        if session is None:
            raise ResumeError(f"Session not found: {session_id}")

        logger.info(f"Resumed session {session_id} at stage {session.stage.value}")
        stage = session.stage

        if stage in (Stage.CLARIFICATION, Stage.RESEARCH):
            users = store.get_history(session_id)
            request = next((h.content for h in users if h.role == "user"), "")
            state = WorkflowEngine.initial_state(session_id, request, session.workflow_id, resumed=True)
            return await self._run(state)

        if stage in (Stage.BUILD, Stage.VALIDATE, Stage.TEST):
            logger.error("Cannot resume build phase without a blueprint")
            await store.update_stage(session_id, Stage.BLOCKED)
            if self.runtime.audit:
                self.runtime.audit.log_stage_transition(
                    session_id, stage.value, Stage.BLOCKED.value, session.cycle
                )
            return CANNOT_RESUME_BUILD

        if stage == Stage.BLOCKED:
            state = WorkflowEngine.initial_state(session_id, "", session.workflow_id, resumed=True)
            state["block_reason"] = "Resumed blocked session"
            with log_context(session_id=session_id, stage=stage.value):
                state = await self.engine.run_post_mortem(state)
            self.last_state = state
            return state.get("response", "")

        if stage == Stage.COMPLETE:
            return SESSION_ALREADY_COMPLETE

        return UNKNOWN_STAGE

    async def close(self) -> None:
        await self.runtime.session_store.close()

    async def _run(self, state: GraphState) -> str:
        with log_context(session_id=state["session_id"]):
            state = await self.engine.run(state)
        self.last_state = state
        return state.get("response") or state.get("error_message") or ""


# =============================================================================
# CLI ARGUMENT PARSING
# =============================================================================


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="AI Agent Development System - n8n Orchestrator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    for name in ("build", "create"):
        build = subparsers.add_parser(name, help="Build a workflow from a task description")
        build.add_argument("task", nargs="*", help="Task description (prompted when omitted)")
        build.add_argument("--workflow-id", default=None, help="Existing workflow to work on")
        build.add_argument(
            "--interactive",
            action="store_true",
            help="Pick the option and confirm the blueprint on the terminal",
        )

    analyze = subparsers.add_parser("analyze", help="Read-only audit of an existing workflow")
    analyze.add_argument("workflow_id", help="Workflow to analyze")
    analyze.add_argument("--project-path", default=".", help="Project containing the docs to load")
    approval = analyze.add_mutually_exclusive_group()
    approval.add_argument(
        "--interactive",
        action="store_true",
        help="Offer auto-fix, manual instructions or save after the analysis",
    )
    approval.add_argument(
        "--auto-fix",
        action="store_true",
        help="Apply the P0/P1 recommendations without asking",
    )

    fix = subparsers.add_parser("fix", help="Apply the TODO list written by an analysis")
    fix.add_argument("analysis_id", help="Analysis whose TODO.json to work through")

    resume = subparsers.add_parser("resume", help="Resume a persisted session")
    resume.add_argument("session_id", help="Session to resume")

    return parser.parse_args(argv)


def read_task(args: argparse.Namespace) -> str:
    task = " ".join(args.task).strip()
    if not task:
        task = input("What workflow should be built? ").strip()
    return task


# =============================================================================
# MAIN ENTRY POINT
# =============================================================================


async def async_main(args: argparse.Namespace) -> str:
    """Async entry point; returns the report to print."""
    config = load_config(args.config)
    setup_logging(config, debug=args.debug)

    if args.command == "analyze":
        # Imported here: the analysis variant is only needed for this command
        from orchestrator.analyze import ApprovalChoice, ApprovalFlow, Analyzer

        runtime = build_runtime(config, interactive=False)
        analyzer = Analyzer(runtime)
        try:
            result = await analyzer.analyze(args.workflow_id, args.project_path)
            if not result.success or not (args.interactive or args.auto_fix):
                return result.summary()
            choice = ApprovalChoice.AUTO_FIX if args.auto_fix else None
            outcome = await ApprovalFlow(runtime).run(
                result, args.workflow_id, choice=choice, confirm=not args.auto_fix
            )
            return f"{result.summary()}\n\n{outcome.message}"
        finally:
            await analyzer.close()

    if args.command == "fix":
        from orchestrator.analyze import FixRunner

        runtime = build_runtime(config, interactive=False)
        try:
            fix_result = await FixRunner(runtime).run_from_analysis(args.analysis_id)
        finally:
            await runtime.session_store.close()
        return fix_result.summary()

    orchestrator = Orchestrator.from_config(config, interactive=getattr(args, "interactive", None) or None)
    try:
        if args.command == "resume":
            return await orchestrator.resume(args.session_id)

        task = read_task(args)
        if not task:
            raise ValueError("No task given")
        return await orchestrator.start(task, workflow_id=args.workflow_id)
    finally:
        await orchestrator.close()


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point."""
    args = parse_args(argv)

    logger.info("=" * 60)
    logger.info("AI Agent Development System - n8n Orchestrator")
    logger.info("=" * 60)

    try:
        report = asyncio.run(async_main(args))
    except KeyboardInterrupt:
        logger.info("Orchestrator stopped by user")
        sys.exit(130)
    except Exception as e:
        logger.critical(f"Orchestrator failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    print(report)
    if report.startswith("BLOCKED") or report.startswith("Cannot"):
        sys.exit(2)


if __name__ == "__main__":
    main()
