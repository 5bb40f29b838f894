"""
hostpulse Edge Agent - Host telemetry agent.

Samples CPU, memory, disk, network and load metrics on a fixed interval
and reports them to a collection endpoint, registering on first contact.
"""

from .agent import AgentState, EdgeAgent, run_agent
from .collectors import MetricsSnapshot, SnapshotAssembler
from .config import AgentConfig
from .sender import Reporter, ReporterSession

__all__ = [
    "AgentState",
    "EdgeAgent",
    "run_agent",
    "MetricsSnapshot",
    "SnapshotAssembler",
    "AgentConfig",
    "Reporter",
    "ReporterSession",
]
