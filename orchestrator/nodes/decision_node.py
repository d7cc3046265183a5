# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - DECISION NODE
# =============================================================================
"""
Decision Node Implementation

The Architect ranks 2-3 approaches, one is selected (first option, or the
user's pick in interactive mode) and turned into a blueprint. The blueprint
is checked before anything is built:

    - non-empty workflow name
    - at least one node
    - credentials_needed present (may be empty)
    - at least ``node_count`` nodes when the user asked for a number

Workflow Position:
    RESEARCH --> DECISION --(valid)--> CREDENTIALS
                          --(invalid)--> DONE (blocked)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from orchestrator.models import Stage
from orchestrator.nodes._base import (
    BlueprintRejectedError,
    NodeContext,
    add_history_entry,
    enter_stage,
    finish,
    record_gate,
)
from orchestrator.results import BlueprintResult, OptionsResult, ResearchFindings

logger = logging.getLogger(__name__)

BLUEPRINT_REJECTED_MESSAGE = (
    "Cannot proceed: Blueprint validation failed. "
    "Please provide more details about the workflow you want to build."
)
MAX_FEEDBACK_ROUNDS = 3


# =============================================================================
# BLUEPRINT CHECK
# =============================================================================


def validate_blueprint(blueprint: BlueprintResult, node_count: Optional[int] = None) -> Tuple[bool, str]:
    """
    Structural check run before the Builder sees a blueprint.

    Returns:
        (valid, reason) where reason is empty when valid
    """
    if not blueprint.workflow_name.strip():
        return False, "Missing workflow_name"
    if not blueprint.nodes:
        return False, "No nodes in blueprint"
    if blueprint.credentials_needed is None:
        return False, "Missing credentials_needed field"
    if node_count and len(blueprint.nodes) < node_count:
        return False, f"User requested {node_count} nodes, blueprint has only {len(blueprint.nodes)}"
    return True, ""


# =============================================================================
# INTERACTIVE HELPERS
# =============================================================================


def format_options(options: OptionsResult) -> str:
    lines = ["", "Options:"]
    for option in options.options:
        lines.append(f"  [{option.get('id', '?')}] {option.get('name', '')} (fit {option.get('fit_score', '?')})")
        if option.get("description"):
            lines.append(f"      {option['description']}")
    if options.recommendation:
        lines.append(f"Recommended: {options.recommendation}")
    return "\n".join(lines)


def format_blueprint(blueprint: BlueprintResult) -> str:
    lines = ["", f"Blueprint: {blueprint.workflow_name}", f"  {blueprint.description}", "  Nodes:"]
    for node in blueprint.nodes:
        lines.append(f"    - {node.get('name', '?')} ({node.get('type', '?')})")
    if blueprint.credentials_needed:
        lines.append(f"  Credentials: {', '.join(blueprint.credentials_needed)}")
    return "\n".join(lines)


def select_option(ctx: NodeContext, options: OptionsResult) -> str:
    default = options.default_selection()
    if not ctx.interactive or not options.options:
        return default

    valid = {str(o.get("id")) for o in options.options if o.get("id")}
    print(format_options(options))
    answer = ctx.runtime.prompt(f"Select option [{default}]: ").strip()
    if answer and answer.upper() in {v.upper() for v in valid}:
        return next(v for v in valid if v.upper() == answer.upper())
    return default


# =============================================================================
# NODE IMPLEMENTATION
# =============================================================================


async def decision_node(
    state: Dict[str, Any],
    ctx: NodeContext,
) -> Dict[str, Any]:
    """
    Choose an approach and produce a checked blueprint.

    Raises:
        BlueprintRejectedError: The user declined the blueprint (interactive)
    """
    session_id = state["session_id"]
    await enter_stage(ctx, state, Stage.DECISION)

    findings = ResearchFindings.from_dict(state.get("findings", {}))
    architect = ctx.agents.architect

    _, violations = ctx.gates.check_all_gates(
        ctx.session(state), architect.ROLE, research_findings=findings
    )
    for violation in violations:
        record_gate(ctx, state, violation)

    options = await architect.present_options(session_id, findings)
    selected = select_option(ctx, options)
    logger.info(f"Selected option: {selected}")

    requirements = ctx.session(state).requirements
    node_count = requirements.node_count if requirements else None
    explicit = requirements.explicit_requirements if requirements else []

    blueprint = await architect.create_blueprint(session_id, selected, findings, node_count, explicit)

    if ctx.interactive:
        for _ in range(MAX_FEEDBACK_ROUNDS):
            print(format_blueprint(blueprint))
            answer = ctx.runtime.prompt("Proceed with this blueprint? [Y/n or feedback]: ").strip()
            if answer.lower() in ("", "y", "yes"):
                break
            if answer.lower() in ("n", "no"):
                raise BlueprintRejectedError("User rejected blueprint. Please refine requirements.")
            blueprint = await architect.create_blueprint(
                session_id, selected, findings, node_count, explicit, feedback=answer
            )

    state["options"] = options.to_dict()
    state["selected_option"] = selected
    state["blueprint"] = blueprint.to_dict()

    valid, reason = validate_blueprint(blueprint, node_count)
    if not valid:
        logger.error(f"Blueprint check failed: {reason}")
        await enter_stage(ctx, state, Stage.BLOCKED)
        state["block_reason"] = reason
        finish(ctx, state, "blocked", BLUEPRINT_REJECTED_MESSAGE)
        add_history_entry(state, "decision", "blueprint_invalid", {"reason": reason})
        return state

    add_history_entry(state, "decision", "blueprint_ready", {
        "workflow_name": blueprint.workflow_name,
        "nodes": len(blueprint.nodes),
    })
    logger.info(f"Blueprint created: {blueprint.workflow_name} ({len(blueprint.nodes)} nodes)")
    return state


def decision_router(state: Dict[str, Any]) -> str:
    """
    Returns:
        - "invalid" when the blueprint check ended the session
        - "valid" otherwise
    """
    return "invalid" if state.get("outcome") == "blocked" else "valid"


__all__ = [
    "decision_node",
    "decision_router",
    "validate_blueprint",
    "select_option",
    "format_options",
    "format_blueprint",
    "BLUEPRINT_REJECTED_MESSAGE",
]
