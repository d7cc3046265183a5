# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - WORKFLOW SNAPSHOTS
# =============================================================================
"""
Workflow Snapshots

Copies of a workflow taken before the Builder mutates it, so a fix that
makes things worse can be undone.

Snapshots live in memory for the lifetime of the process, newest last per
workflow. Rollback writes the newest snapshot back with a full update.
Without an n8n client every operation is skipped and reported as such.

Usage:
    snapshots = SnapshotManager(client)
    taken = await snapshots.take("wf_1")
    ...
    if qa_failed:
        await snapshots.rollback("wf_1")
"""

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from agents.base.tools import WorkflowApiClient, WorkflowApiError

logger = logging.getLogger(__name__)

MAX_SNAPSHOTS_PER_WORKFLOW = 10


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass
class WorkflowSnapshot:
    workflow_id: str
    workflow: Dict[str, Any]
    version_id: Optional[str] = None
    taken_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "version_id": self.version_id,
            "node_count": len(self.workflow.get("nodes", [])),
            "taken_at": self.taken_at.isoformat(),
        }


@dataclass
class SnapshotResult:
    success: bool
    skipped: bool = False
    version_id: Optional[str] = None
    error: Optional[str] = None


# =============================================================================
# SNAPSHOT MANAGER
# =============================================================================

class SnapshotManager:
    """
    In-memory snapshot stacks keyed by workflow id.

    Args:
        client: n8n REST client; None disables snapshots
        max_per_workflow: Oldest snapshots beyond this are dropped
    """

    def __init__(
        self,
        client: Optional[WorkflowApiClient],
        max_per_workflow: int = MAX_SNAPSHOTS_PER_WORKFLOW,
    ):
        self.client = client
        self.max_per_workflow = max_per_workflow
        self._snapshots: Dict[str, List[WorkflowSnapshot]] = {}

    @property
    def enabled(self) -> bool:
        return self.client is not None

    async def take(self, workflow_id: str) -> SnapshotResult:
        """Fetch and keep the current workflow definition."""
        if not self.enabled or not workflow_id:
            logger.debug("Snapshots disabled, skipping")
            return SnapshotResult(success=True, skipped=True)

        try:
            workflow = await asyncio.to_thread(self.client.get_workflow, workflow_id)
        except WorkflowApiError as e:
            logger.error(f"Snapshot of {workflow_id} failed: {e}")
            return SnapshotResult(success=False, error=str(e))

        snapshot = WorkflowSnapshot(
            workflow_id=workflow_id,
            workflow=copy.deepcopy(workflow),
            version_id=workflow.get("versionId"),
        )
        stack = self._snapshots.setdefault(workflow_id, [])
        stack.append(snapshot)
        del stack[:-self.max_per_workflow]
        logger.info(f"Snapshot taken for {workflow_id} (version {snapshot.version_id})")
        return SnapshotResult(success=True, version_id=snapshot.version_id)

    def latest(self, workflow_id: str) -> Optional[WorkflowSnapshot]:
        stack = self._snapshots.get(workflow_id)
        return stack[-1] if stack else None

    async def rollback(self, workflow_id: str) -> SnapshotResult:
        """
        Restore the newest snapshot of *workflow_id*.

        The snapshot stays on the stack so a later failure in the same run
        rolls back to the same point.
        """
        if not self.enabled:
            return SnapshotResult(success=True, skipped=True)

        snapshot = self.latest(workflow_id)
        if snapshot is None:
            logger.warning(f"No snapshot to roll back {workflow_id} to")
            return SnapshotResult(success=False, error=f"No snapshot for {workflow_id}")

        try:
            await asyncio.to_thread(self.client.update_full_workflow, workflow_id, snapshot.workflow)
        except WorkflowApiError as e:
            logger.error(f"Rollback of {workflow_id} failed: {e}")
            return SnapshotResult(success=False, version_id=snapshot.version_id, error=str(e))

        logger.info(f"Rolled back {workflow_id} to version {snapshot.version_id}")
        return SnapshotResult(success=True, version_id=snapshot.version_id)

    def clear(self, workflow_id: Optional[str] = None) -> None:
        if workflow_id is None:
            self._snapshots.clear()
        else:
            self._snapshots.pop(workflow_id, None)


__all__ = [
    "WorkflowSnapshot",
    "SnapshotResult",
    "SnapshotManager",
    "MAX_SNAPSHOTS_PER_WORKFLOW",
]
