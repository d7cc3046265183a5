# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - N8N TOOLS
# =============================================================================
"""
n8n Tools Module

The capability set agents use to read and change workflows on an n8n
instance, reached through its public REST API (``/api/v1``).

    WorkflowApiClient   one method per capability, requests + retry
    WorkflowToolbox     tool definitions for the LLM, per-role allowlist,
                        dispatch from tool name to client method

Capabilities:
    get_workflow, list_workflows, create_workflow, update_full_workflow,
    update_partial_workflow, delete_workflow, activate_workflow,
    validate_workflow, autofix_workflow, test_workflow, list_executions,
    get_execution, list_credentials, search_nodes

``validate_workflow`` and the structural part of ``autofix_workflow`` run
locally on the fetched workflow JSON. ``list_credentials`` and
``search_nodes`` are derived from the workflows stored on the instance,
since the public API has no listing endpoint for either.
"""

import logging
from collections import Counter
from typing import Any, Callable, Dict, List, Optional

import requests

from agents.base.llm_client import ToolDefinition
from orchestrator.engine.retry import RETRY_CONFIGS, RetryConfig, RetryExhaustedError, retry_sync
from orchestrator.models import AgentRole

logger = logging.getLogger(__name__)


# =============================================================================
# EXCEPTIONS
# =============================================================================

class WorkflowApiError(Exception):
    """n8n REST call failed or a tool request was not permitted."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class _TransientApiError(Exception):
    """Server-side failure worth retrying."""


# =============================================================================
# CONSTANTS
# =============================================================================

WRITABLE_FIELDS = ("name", "nodes", "connections", "settings")
TRIGGER_MARKERS = ("trigger", "webhook")
WEBHOOK_NODE_TYPE = "n8n-nodes-base.webhook"
MAX_SCAN_PAGES = 10


# =============================================================================
# VALIDATION
# =============================================================================

def _issue(code: str, message: str, node: str = "", auto_fixable: bool = False) -> Dict[str, Any]:
    return {"code": code, "message": message, "node": node, "auto_fixable": auto_fixable}


def _connection_targets(connections: Dict[str, Any]):
    """Yield (source, target) pairs from n8n's nested connection map."""
    for source, outputs in (connections or {}).items():
        for branches in (outputs or {}).values():
            for branch in branches or []:
                for link in branch or []:
                    if isinstance(link, dict):
                        yield source, link.get("node")


def validate_workflow_structure(workflow: Dict[str, Any]) -> Dict[str, Any]:
    """
    Structural check of a workflow definition.

    Errors make the workflow invalid; warnings do not.
    """
    errors: List[Dict[str, Any]] = []
    warnings: List[Dict[str, Any]] = []

    if not workflow.get("name"):
        errors.append(_issue("MISSING_NAME", "Workflow has no name"))

    nodes = workflow.get("nodes") or []
    if not nodes:
        errors.append(_issue("NO_NODES", "Workflow has no nodes"))

    names = Counter(n.get("name", "") for n in nodes)
    for name, count in names.items():
        if count > 1:
            errors.append(_issue("DUPLICATE_NODE_NAME", f"Node name '{name}' used {count} times", name))

    for node in nodes:
        if not node.get("type"):
            errors.append(_issue("MISSING_NODE_TYPE", "Node has no type", node.get("name", "")))
        if "typeVersion" not in node:
            warnings.append(_issue("MISSING_TYPE_VERSION", "Node has no typeVersion", node.get("name", ""), True))

    if nodes and not any(
        any(marker in str(n.get("type", "")).lower() for marker in TRIGGER_MARKERS) for n in nodes
    ):
        warnings.append(_issue("NO_TRIGGER", "Workflow has no trigger node"))

    connected = set()
    for source, target in _connection_targets(workflow.get("connections") or {}):
        if source not in names:
            errors.append(_issue("INVALID_CONNECTION", f"Connection from unknown node '{source}'", source, True))
        if target not in names:
            errors.append(_issue("INVALID_CONNECTION", f"Connection to unknown node '{target}'", source, True))
        connected.update((source, target))

    if len(nodes) > 1:
        for node in nodes:
            name = node.get("name", "")
            if name not in connected:
                warnings.append(_issue("DISCONNECTED_NODE", f"Node '{name}' is not connected", name))

    return {"valid": not errors, "errors": errors, "warnings": warnings, "node_count": len(nodes)}


# =============================================================================
# REST CLIENT
# =============================================================================

class WorkflowApiClient:
    """
    Thin client for the n8n public REST API.

    Args:
        api_url: Instance base URL, e.g. ``http://localhost:5678``
        api_key: Value for the ``X-N8N-API-KEY`` header
        timeout: Per-request timeout in seconds
        retry_config: Backoff profile for connection errors and 5xx replies
    """

    def __init__(
        self,
        api_url: str = "http://localhost:5678",
        api_key: str = "",
        timeout: int = 30,
        retry_config: Optional[RetryConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.retry_config = retry_config or RETRY_CONFIGS["mcp_call"]
        self.http = session or requests.Session()
        self.http.headers.update({"Accept": "application/json"})
        if api_key:
            self.http.headers["X-N8N-API-KEY"] = api_key

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "WorkflowApiClient":
        n8n = config.get("n8n", {})
        profile = config.get("retry", {}).get("mcp_call")
        return cls(
            api_url=n8n.get("api_url", "http://localhost:5678"),
            api_key=n8n.get("api_key", ""),
            timeout=int(n8n.get("timeout", 30)),
            retry_config=RetryConfig.from_dict(profile) if profile else None,
        )

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------

    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        response = self.http.request(method, url, timeout=self.timeout, **kwargs)
        if response.status_code >= 500:
            raise _TransientApiError(f"{method} {url} -> {response.status_code}")
        return response

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = f"{self.api_url}/api/v1{path}"

        def on_retry(attempt: int, error: Exception) -> None:
            logger.warning(f"n8n request {method} {path} failed (attempt {attempt}): {error}")

        try:
            response = retry_sync(
                lambda: self._send(method, url, **kwargs),
                on_retry=on_retry,
                **self.retry_config.to_kwargs()
            )
        except RetryExhaustedError as e:
            raise WorkflowApiError(f"n8n unreachable: {e.last_error}") from e

        if response.status_code >= 400:
            raise WorkflowApiError(
                f"{method} {path} failed with {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )
        if not response.content:
            return {}
        return response.json()

    def _paginate(self, path: str, params: Dict[str, Any], limit: int) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        cursor = None
        for _ in range(MAX_SCAN_PAGES):
            page_params = dict(params, limit=min(limit - len(items), 250))
            if cursor:
                page_params["cursor"] = cursor
            page = self._request("GET", path, params=page_params)
            items.extend(page.get("data", []))
            cursor = page.get("nextCursor")
            if not cursor or len(items) >= limit:
                break
        return items[:limit]

    # -------------------------------------------------------------------------
    # WORKFLOWS
    # -------------------------------------------------------------------------

    def get_workflow(self, workflow_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/workflows/{workflow_id}")

    def list_workflows(self, limit: int = 100, active: Optional[bool] = None) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        if active is not None:
            params["active"] = str(active).lower()
        workflows = self._paginate("/workflows", params, limit)
        return {
            "workflows": [
                {"id": w.get("id"), "name": w.get("name"), "active": w.get("active", False)}
                for w in workflows
            ]
        }

    def create_workflow(self, workflow: Dict[str, Any]) -> Dict[str, Any]:
        body = {key: workflow[key] for key in WRITABLE_FIELDS if key in workflow}
        body.setdefault("connections", {})
        body.setdefault("settings", {})
        return self._request("POST", "/workflows", json=body)

    def update_full_workflow(self, workflow_id: str, workflow: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/workflows/{workflow_id}", json=self._writable(workflow))

    def update_partial_workflow(
        self,
        workflow_id: str,
        nodes: Optional[List[Dict[str, Any]]] = None,
        connections: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Replace or add the named nodes only; other nodes are untouched.
        Connection entries are replaced per source node.
        """
        current = self.get_workflow(workflow_id)
        by_name = {n.get("name"): n for n in current.get("nodes", [])}
        for node in nodes or []:
            by_name[node.get("name")] = node
        current["nodes"] = list(by_name.values())
        if connections:
            merged = dict(current.get("connections") or {})
            merged.update(connections)
            current["connections"] = merged
        return self._request("PUT", f"/workflows/{workflow_id}", json=self._writable(current))

    def delete_workflow(self, workflow_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/workflows/{workflow_id}")

    def activate_workflow(self, workflow_id: str) -> Dict[str, Any]:
        return self._request("POST", f"/workflows/{workflow_id}/activate")

    @staticmethod
    def _writable(workflow: Dict[str, Any]) -> Dict[str, Any]:
        body = {key: workflow.get(key) for key in WRITABLE_FIELDS}
        body["connections"] = body["connections"] or {}
        body["settings"] = body["settings"] or {}
        return body

    # -------------------------------------------------------------------------
    # VALIDATION / AUTOFIX / TEST
    # -------------------------------------------------------------------------

    def validate_workflow(
        self,
        workflow_id: Optional[str] = None,
        workflow: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        if workflow is None:
            if not workflow_id:
                raise WorkflowApiError("validate_workflow needs workflow_id or workflow")
            workflow = self.get_workflow(workflow_id)
        result = validate_workflow_structure(workflow)
        result["id"] = workflow.get("id", workflow_id)
        return result

    def autofix_workflow(self, workflow_id: str) -> Dict[str, Any]:
        """Drop dangling connections and fill missing type versions."""
        workflow = self.get_workflow(workflow_id)
        names = {n.get("name") for n in workflow.get("nodes", [])}
        fixes: List[str] = []

        for node in workflow.get("nodes", []):
            if "typeVersion" not in node:
                node["typeVersion"] = 1
                fixes.append(f"Set typeVersion on '{node.get('name')}'")

        connections: Dict[str, Any] = {}
        for source, outputs in (workflow.get("connections") or {}).items():
            if source not in names:
                fixes.append(f"Removed connections from unknown node '{source}'")
                continue
            cleaned_outputs = {}
            for output, branches in (outputs or {}).items():
                cleaned = []
                for branch in branches or []:
                    kept = [link for link in branch or [] if link.get("node") in names]
                    if len(kept) != len(branch or []):
                        fixes.append(f"Removed dangling connection from '{source}'")
                    cleaned.append(kept)
                cleaned_outputs[output] = cleaned
            connections[source] = cleaned_outputs
        workflow["connections"] = connections

        if fixes:
            self.update_full_workflow(workflow_id, workflow)
        return {"id": workflow_id, "fixes": fixes, "applied": bool(fixes)}

    def test_workflow(self, workflow_id: str, payload: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Trigger the workflow through its webhook node.

        Returns ``success=False`` with an error instead of raising when the
        workflow cannot be triggered.
        """
        workflow = self.get_workflow(workflow_id)
        webhook = next(
            (n for n in workflow.get("nodes", []) if n.get("type") == WEBHOOK_NODE_TYPE),
            None,
        )
        if webhook is None:
            return {
                "success": False,
                "workflow_id": workflow_id,
                "test_type": "webhook",
                "error": "Workflow has no webhook trigger to test through",
            }

        params = webhook.get("parameters", {})
        method = str(params.get("httpMethod", "GET")).upper()
        url = f"{self.api_url}/webhook/{str(params.get('path', '')).lstrip('/')}"
        try:
            response = self.http.request(method, url, json=payload or {}, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            return {"success": False, "workflow_id": workflow_id, "test_type": "webhook", "error": str(e)}

        return {
            "success": response.status_code < 400,
            "workflow_id": workflow_id,
            "test_type": "webhook",
            "status_code": response.status_code,
            "response": response.text[:1000],
            "error": "" if response.status_code < 400 else f"Webhook returned {response.status_code}",
        }

    # -------------------------------------------------------------------------
    # EXECUTIONS
    # -------------------------------------------------------------------------

    def list_executions(
        self,
        workflow_id: str,
        mode: str = "summary",
        status: Optional[str] = None,
        limit: int = 10,
        node_names: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Execution history of a workflow.

        ``mode=summary`` lists executions and where they stopped.
        ``mode=filtered`` includes run data, reduced to failing nodes plus
        any nodes named in *node_names*.
        """
        params: Dict[str, Any] = {"workflowId": workflow_id, "limit": limit}
        if status:
            params["status"] = status
        if mode == "filtered":
            params["includeData"] = "true"
        executions = self._request("GET", "/executions", params=params).get("data", [])

        if mode != "filtered":
            return {
                "mode": "summary",
                "workflow_id": workflow_id,
                "executions": [
                    {
                        "id": e.get("id"),
                        "status": e.get("status"),
                        "finished": e.get("finished"),
                        "startedAt": e.get("startedAt"),
                        "stoppedAt": e.get("stoppedAt"),
                    }
                    for e in executions
                ],
            }

        wanted = set(node_names or [])
        filtered = []
        for execution in executions:
            result_data = (execution.get("data") or {}).get("resultData", {})
            run_data = result_data.get("runData", {}) or {}
            nodes = {
                name: runs
                for name, runs in run_data.items()
                if name in wanted or any(isinstance(r, dict) and r.get("error") for r in runs or [])
            }
            filtered.append({
                "id": execution.get("id"),
                "status": execution.get("status"),
                "lastNodeExecuted": result_data.get("lastNodeExecuted"),
                "error": result_data.get("error"),
                "nodes": nodes,
            })
        return {"mode": "filtered", "workflow_id": workflow_id, "executions": filtered}

    def get_execution(self, execution_id: str, include_data: bool = True) -> Dict[str, Any]:
        return self._request(
            "GET",
            f"/executions/{execution_id}",
            params={"includeData": str(include_data).lower()},
        )

    # -------------------------------------------------------------------------
    # DISCOVERY
    # -------------------------------------------------------------------------

    def _all_workflows(self) -> List[Dict[str, Any]]:
        return self._paginate("/workflows", {}, limit=250 * MAX_SCAN_PAGES)

    def list_credentials(self, credential_type: Optional[str] = None) -> Dict[str, Any]:
        """Credentials referenced by nodes of existing workflows."""
        found: Dict[str, Dict[str, Any]] = {}
        for workflow in self._all_workflows():
            for node in workflow.get("nodes", []):
                for cred_type, cred in (node.get("credentials") or {}).items():
                    if credential_type and cred_type != credential_type:
                        continue
                    key = f"{cred_type}:{cred.get('id')}"
                    found.setdefault(key, {"id": cred.get("id"), "name": cred.get("name"), "type": cred_type})
        return {"credentials": list(found.values())}

    def search_nodes(self, query: str, limit: int = 20) -> Dict[str, Any]:
        """Node types in use on the instance whose type or name matches *query*."""
        needle = query.lower()
        usage: Counter = Counter()
        for workflow in self._all_workflows():
            for node in workflow.get("nodes", []):
                node_type = node.get("type", "")
                if needle in node_type.lower() or needle in str(node.get("name", "")).lower():
                    usage[node_type] += 1
        return {"nodes": [{"type": t, "used_in": c} for t, c in usage.most_common(limit)]}


# =============================================================================
# TOOL DEFINITIONS
# =============================================================================

_ID = {"type": "string", "description": "n8n workflow id"}
_WORKFLOW = {"type": "object", "description": "n8n workflow JSON (name, nodes, connections, settings)"}

TOOL_DEFINITIONS: Dict[str, ToolDefinition] = {
    t.name: t
    for t in (
        ToolDefinition(
            "get_workflow", "Fetch a workflow by id.",
            {"type": "object", "properties": {"workflow_id": _ID}, "required": ["workflow_id"]},
        ),
        ToolDefinition(
            "list_workflows", "List workflows on the instance.",
            {"type": "object", "properties": {"limit": {"type": "integer"}, "active": {"type": "boolean"}}},
        ),
        ToolDefinition(
            "create_workflow", "Create a new workflow. Returns it with its id.",
            {"type": "object", "properties": {"workflow": _WORKFLOW}, "required": ["workflow"]},
        ),
        ToolDefinition(
            "update_full_workflow", "Replace a workflow definition entirely.",
            {
                "type": "object",
                "properties": {"workflow_id": _ID, "workflow": _WORKFLOW},
                "required": ["workflow_id", "workflow"],
            },
        ),
        ToolDefinition(
            "update_partial_workflow",
            "Replace or add only the given nodes (matched by name) and connection entries.",
            {
                "type": "object",
                "properties": {
                    "workflow_id": _ID,
                    "nodes": {"type": "array", "items": {"type": "object"}},
                    "connections": {"type": "object"},
                },
                "required": ["workflow_id"],
            },
        ),
        ToolDefinition(
            "delete_workflow", "Delete a workflow permanently.",
            {"type": "object", "properties": {"workflow_id": _ID}, "required": ["workflow_id"]},
        ),
        ToolDefinition(
            "activate_workflow", "Activate a workflow.",
            {"type": "object", "properties": {"workflow_id": _ID}, "required": ["workflow_id"]},
        ),
        ToolDefinition(
            "validate_workflow", "Check a workflow's structure. Pass workflow_id or a workflow object.",
            {"type": "object", "properties": {"workflow_id": _ID, "workflow": _WORKFLOW}},
        ),
        ToolDefinition(
            "autofix_workflow", "Remove dangling connections and fill missing node type versions.",
            {"type": "object", "properties": {"workflow_id": _ID}, "required": ["workflow_id"]},
        ),
        ToolDefinition(
            "test_workflow", "Run the workflow through its webhook trigger.",
            {
                "type": "object",
                "properties": {"workflow_id": _ID, "payload": {"type": "object"}},
                "required": ["workflow_id"],
            },
        ),
        ToolDefinition(
            "list_executions",
            "Execution history. mode=summary shows WHERE runs stopped; "
            "mode=filtered shows WHY, with run data of failing nodes.",
            {
                "type": "object",
                "properties": {
                    "workflow_id": _ID,
                    "mode": {"type": "string", "enum": ["summary", "filtered"]},
                    "status": {"type": "string", "enum": ["error", "success", "waiting"]},
                    "limit": {"type": "integer"},
                    "node_names": {"type": "array", "items": {"type": "string"}},
                },
                "required": ["workflow_id", "mode"],
            },
        ),
        ToolDefinition(
            "get_execution", "Fetch one execution with its run data.",
            {
                "type": "object",
                "properties": {"execution_id": {"type": "string"}, "include_data": {"type": "boolean"}},
                "required": ["execution_id"],
            },
        ),
        ToolDefinition(
            "list_credentials", "Credentials referenced by existing workflows.",
            {"type": "object", "properties": {"credential_type": {"type": "string"}}},
        ),
        ToolDefinition(
            "search_nodes", "Search node types used on the instance.",
            {
                "type": "object",
                "properties": {"query": {"type": "string"}, "limit": {"type": "integer"}},
                "required": ["query"],
            },
        ),
    )
}


# =============================================================================
# TOOLBOX
# =============================================================================

class WorkflowToolbox:
    """
    Per-role view of the capability set.

    Args:
        client: REST client the tools dispatch to
        allowed: Role name -> permitted tool names (the ``tools`` config section)
    """

    def __init__(self, client: WorkflowApiClient, allowed: Dict[str, List[str]]):
        self.client = client
        self.allowed = {role: list(names or []) for role, names in (allowed or {}).items()}

        unknown = {n for names in self.allowed.values() for n in names} - set(TOOL_DEFINITIONS)
        if unknown:
            raise ValueError(f"Unknown tools in configuration: {sorted(unknown)}")

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "WorkflowToolbox":
        return cls(WorkflowApiClient.from_config(config), config.get("tools", {}))

    def tool_names(self, role: AgentRole) -> List[str]:
        return list(self.allowed.get(role.value, []))

    def definitions_for(self, role: AgentRole) -> List[ToolDefinition]:
        return [TOOL_DEFINITIONS[name] for name in self.tool_names(role)]

    def execute(self, role: AgentRole, name: str, arguments: Dict[str, Any]) -> Any:
        if name not in self.allowed.get(role.value, []):
            raise WorkflowApiError(f"Tool '{name}' is not permitted for {role.value}")

        schema = TOOL_DEFINITIONS[name].input_schema.get("properties", {})
        kwargs = {key: value for key, value in (arguments or {}).items() if key in schema}
        logger.debug(f"{role.value} -> {name}({', '.join(kwargs)})")
        return getattr(self.client, name)(**kwargs)

    def executor_for(self, role: AgentRole) -> Callable[[str, Dict[str, Any]], Any]:
        return lambda name, arguments: self.execute(role, name, arguments)


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = [
    "WorkflowApiError",
    "validate_workflow_structure",
    "WorkflowApiClient",
    "TOOL_DEFINITIONS",
    "WorkflowToolbox",
]
