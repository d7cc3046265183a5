# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - NODE ISOLATION
# =============================================================================
"""
Node Isolation

Cuts the nodes a fix task touches out of a full workflow, together with
their direct neighbours, so the Builder prompt carries only what it may
edit.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class IsolatedNode:
    name: str
    type: str
    type_version: Any = None
    parameters: Dict[str, Any] = field(default_factory=dict)
    inputs: List[str] = field(default_factory=list)
    outputs: List[str] = field(default_factory=list)


def _targets(outputs: Dict[str, Any]) -> List[str]:
    names = []
    for branches in outputs.values():
        for branch in branches or []:
            for link in branch or []:
                node = link.get("node") if isinstance(link, dict) else None
                if node and node not in names:
                    names.append(node)
    return names


def isolate_nodes(workflow: Dict[str, Any], names: List[str]) -> List[IsolatedNode]:
    """Named nodes in workflow order; names not in the workflow are ignored."""
    wanted = set(names)
    connections = workflow.get("connections") or {}
    isolated = []
    for node in workflow.get("nodes", []):
        name = node.get("name")
        if name not in wanted:
            continue
        inputs = [source for source, outputs in connections.items() if name in _targets(outputs or {})]
        isolated.append(IsolatedNode(
            name=name,
            type=node.get("type", ""),
            type_version=node.get("typeVersion"),
            parameters=dict(node.get("parameters") or {}),
            inputs=inputs,
            outputs=_targets(connections.get(name) or {}),
        ))
    return isolated


def format_isolated_nodes(nodes: List[IsolatedNode]) -> str:
    if not nodes:
        return "No specific nodes to isolate."

    lines = [f"## Isolated Node Context ({len(nodes)} nodes)", ""]
    for node in nodes:
        version = f" v{node.type_version}" if node.type_version is not None else ""
        lines += [
            f"### {node.name}",
            f"Type: {node.type}{version}",
            f"Receives from: {', '.join(node.inputs) or 'nothing (trigger)'}",
            f"Sends to: {', '.join(node.outputs) or 'nothing'}",
            "Parameters:",
            "```json",
            json.dumps(node.parameters, indent=2, default=str),
            "```",
            "",
        ]
    return "\n".join(lines).rstrip() + "\n"


__all__ = ["IsolatedNode", "isolate_nodes", "format_isolated_nodes"]
