# =============================================================================
# AI AGENT DEVELOPMENT SYSTEM - RUNTIME CONTEXT
# =============================================================================
"""
Runtime Context Module

Everything the orchestrator needs, constructed once at process start and
passed explicitly to the graph, the nodes and the analysis flow:

    RuntimeContext
    ├── config           merged settings
    ├── session_store    SessionStore (file or redis backend)
    ├── gate_enforcer    GateEnforcer
    ├── agents           AgentTeam (architect, researcher, builder, qa, analyst)
    ├── audit            AuditLogger (JSONL)
    └── metrics          MetricsCollector (Prometheus)

There are no module-level singletons; tests build a RuntimeContext with
fake agents directly.
"""

import builtins
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from agents.analyst import AnalystAgent
from agents.architect import ArchitectAgent
from agents.base.llm_client import LLMClient
from agents.base.tools import WorkflowToolbox
from agents.builder import BuilderAgent
from agents.qa import QAAgent
from agents.researcher import ResearcherAgent
from monitoring import AuditLogger, MetricsCollector, create_metrics_collector
from orchestrator.engine.external_test import ExternalTester
from orchestrator.engine.gate_enforcer import MAX_CYCLES, GateEnforcer
from orchestrator.engine.session_store import SessionStore
from orchestrator.engine.snapshot import SnapshotManager
from orchestrator.models import AgentRole

logger = logging.getLogger(__name__)


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass
class AgentTeam:
    """The five role agents sharing one session store."""
    architect: ArchitectAgent
    researcher: ResearcherAgent
    builder: BuilderAgent
    qa: QAAgent
    analyst: AnalystAgent

    def by_role(self, role: AgentRole) -> Any:
        return getattr(self, role.value)


@dataclass
class RuntimeContext:
    config: Dict[str, Any]
    session_store: SessionStore
    gate_enforcer: GateEnforcer
    agents: AgentTeam
    audit: Optional[AuditLogger] = None
    metrics: Optional[MetricsCollector] = None
    interactive: bool = False
    prompt: Callable[[str], str] = field(default=builtins.input)
    snapshots: Optional[SnapshotManager] = None
    external_tester: Optional[ExternalTester] = None

    @property
    def max_cycles(self) -> int:
        return int(self.config.get("orchestrator", {}).get("max_cycles", MAX_CYCLES))

    @property
    def reports_dir(self) -> str:
        return self.config.get("paths", {}).get("reports_dir", "./reports")

    @property
    def sessions_dir(self) -> str:
        return self.config.get("sessions", {}).get("dir", "./sessions")

    @property
    def analyze_dir(self) -> str:
        paths = self.config.get("paths", {})
        default = os.path.join(self.sessions_dir, "analyze")
        return paths.get("analyze_dir") or default


# =============================================================================
# FACTORY
# =============================================================================

def build_agent_team(
    config: Dict[str, Any],
    session_store: SessionStore,
    llm: Optional[LLMClient] = None,
    toolbox: Optional[WorkflowToolbox] = None,
    audit: Optional[AuditLogger] = None,
    metrics: Optional[MetricsCollector] = None,
) -> AgentTeam:
    """Instantiate the five agents with shared LLM client and toolbox."""
    orchestrator_cfg = config.get("orchestrator", {})
    paths = config.get("paths", {})
    common = {
        "llm": llm,
        "toolbox": toolbox,
        "timeout": float(orchestrator_cfg.get("agent_timeout", 90)),
        "prompts_dir": paths.get("prompts_dir"),
        "audit": audit,
        "metrics": metrics,
    }

    analyst_kwargs = {}
    if paths.get("learnings"):
        analyst_kwargs["learnings_path"] = paths["learnings"]
    if paths.get("system_context"):
        analyst_kwargs["context_path"] = paths["system_context"]

    return AgentTeam(
        architect=ArchitectAgent(session_store, **common),
        researcher=ResearcherAgent(session_store, **common),
        builder=BuilderAgent(session_store, **common),
        qa=QAAgent(session_store, **common),
        analyst=AnalystAgent(session_store, **common, **analyst_kwargs),
    )


def build_runtime(config: Dict[str, Any], interactive: Optional[bool] = None) -> RuntimeContext:
    """
    Construct the full runtime from merged configuration.

    Args:
        config: Output of ``orchestrator.main.load_config``
        interactive: Overrides ``orchestrator.interactive`` when given

    Returns:
        RuntimeContext ready for ``Orchestrator`` or ``Analyzer``
    """
    orchestrator_cfg = config.get("orchestrator", {})
    log_dir = config.get("logging", {}).get("dir", "./logs")

    session_store = SessionStore.from_config(config.get("sessions", {}))
    audit = AuditLogger(os.path.join(log_dir, "audit.jsonl"))
    metrics = create_metrics_collector(config.get("metrics", {}))
    llm = LLMClient.from_config(config.get("llm", {}))
    toolbox = WorkflowToolbox.from_config(config)

    agents = build_agent_team(config, session_store, llm=llm, toolbox=toolbox, audit=audit, metrics=metrics)
    gate_enforcer = GateEnforcer(
        freshness_seconds=int(orchestrator_cfg.get("researcher_freshness_seconds", 300)),
        max_cycles=int(orchestrator_cfg.get("max_cycles", MAX_CYCLES)),
    )

    if interactive is None:
        interactive = bool(orchestrator_cfg.get("interactive", False))

    snapshots = SnapshotManager(toolbox.client) if orchestrator_cfg.get("snapshots", True) else None
    external_tester = ExternalTester.from_config(config)

    logger.info(
        f"Runtime ready: llm={llm.provider_name}/{llm.get_model()}, "
        f"sessions={config.get('sessions', {}).get('backend', 'file')}, interactive={interactive}, "
        f"external_test={'on' if external_tester.enabled else 'off'}"
    )
    return RuntimeContext(
        config=config,
        session_store=session_store,
        gate_enforcer=gate_enforcer,
        agents=agents,
        audit=audit,
        metrics=metrics,
        interactive=interactive,
        snapshots=snapshots,
        external_tester=external_tester,
    )


# =============================================================================
# EXPORTS
# =============================================================================

__all__ = ["AgentTeam", "RuntimeContext", "build_agent_team", "build_runtime"]
