"""
hostpulse Edge Agent Collectors.

The assembler turns provider readings into one snapshot per cycle.
"""

from .system import (
    CPUInfo,
    DiskInfo,
    DiskUsage,
    FailurePolicy,
    HostIdentity,
    LoadInfo,
    MemoryInfo,
    MetricsSnapshot,
    NetworkInfo,
    PartitionInfo,
    SnapshotAssembler,
)
from .provider import HostMetricsProvider, PsutilProvider

__all__ = [
    "CPUInfo",
    "DiskInfo",
    "DiskUsage",
    "FailurePolicy",
    "HostIdentity",
    "LoadInfo",
    "MemoryInfo",
    "MetricsSnapshot",
    "NetworkInfo",
    "PartitionInfo",
    "SnapshotAssembler",
    "HostMetricsProvider",
    "PsutilProvider",
]
