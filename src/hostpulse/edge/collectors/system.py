"""
System Metrics Collector.

Assembles host identity, CPU, memory, disk, network and load readings
into one immutable MetricsSnapshot per cycle.
"""

import asyncio
import dataclasses
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from ..config import AgentConfig
from ..errors import CollectionError

logger = logging.getLogger(__name__)

# CPU usage is sampled over a fixed window on every cycle.
CPU_SAMPLE_SECONDS = 1.0


@dataclass(frozen=True)
class HostIdentity:
    """Host identity."""
    hostname: str
    platform: str
    os: str
    version: str


@dataclass(frozen=True)
class CPUInfo:
    """CPU metrics."""
    usage: float
    cores: int
    model_name: str


@dataclass(frozen=True)
class MemoryInfo:
    """Memory metrics, in bytes."""
    total: int
    used: int
    free: int
    usage_rate: float


@dataclass(frozen=True)
class PartitionInfo:
    """A mounted partition as listed by the provider."""
    device: str
    mount_point: str
    fs_type: str


@dataclass(frozen=True)
class DiskUsage:
    """Usage of one mount point, in bytes."""
    total: int
    used: int
    free: int
    usage_rate: float


@dataclass(frozen=True)
class DiskInfo:
    """Disk metrics for a mount point."""
    device: str
    mount_point: str
    total: int
    used: int
    free: int
    usage_rate: float
    fs_type: str


@dataclass(frozen=True)
class NetworkInfo:
    """Cumulative network interface counters."""
    interface: str
    bytes_sent: int
    bytes_recv: int
    packets_sent: int
    packets_recv: int


@dataclass(frozen=True)
class LoadInfo:
    """1, 5 and 15 minute load averages."""
    load1: float = 0.0
    load5: float = 0.0
    load15: float = 0.0


@dataclass(frozen=True)
class MetricsSnapshot:
    """Complete system metrics snapshot."""
    timestamp: datetime
    token: str
    host: HostIdentity
    ip_addresses: tuple[str, ...]
    keepalive: int
    cpu: CPUInfo
    memory: MemoryInfo
    disks: tuple[DiskInfo, ...] = field(default_factory=tuple)
    network: tuple[NetworkInfo, ...] = field(default_factory=tuple)
    load: LoadInfo = field(default_factory=LoadInfo)

    @property
    def hostname(self) -> str:
        return self.host.hostname

    def total_bytes_recv(self) -> int:
        return sum(n.bytes_recv for n in self.network)

    def total_bytes_sent(self) -> int:
        return sum(n.bytes_sent for n in self.network)

    def to_dict(self) -> dict:
        """Render the wire representation."""
        return {
            'token': self.token,
            'timestamp': self.timestamp.isoformat(),
            'hostname': self.host.hostname,
            'platform': self.host.platform,
            'os': self.host.os,
            'version': self.host.version,
            'ip_addresses': list(self.ip_addresses),
            'keepalive': self.keepalive,
            'cpu': dataclasses.asdict(self.cpu),
            'memory': dataclasses.asdict(self.memory),
            'disks': [dataclasses.asdict(d) for d in self.disks],
            'network': [dataclasses.asdict(n) for n in self.network],
            'load': dataclasses.asdict(self.load),
        }


class FailurePolicy(Enum):
    """What a failed provider query means for the cycle."""
    ABORT = "abort"      # no snapshot this cycle
    SKIP = "skip"        # drop the affected entry
    DEFAULT = "default"  # substitute a fallback value


CATEGORY_POLICY = {
    'host': FailurePolicy.ABORT,
    'cpu': FailurePolicy.ABORT,
    'cpu_info': FailurePolicy.ABORT,
    'memory': FailurePolicy.ABORT,
    'partitions': FailurePolicy.ABORT,
    'disk_usage': FailurePolicy.SKIP,
    'network': FailurePolicy.ABORT,
    'load': FailurePolicy.DEFAULT,
    'ip_addresses': FailurePolicy.DEFAULT,
}

_SKIPPED = object()


def _query(category: str, fn: Callable, *args, default: Any = None) -> Any:
    """Run one provider query under its category's failure policy.

    Returns the reading, ``default`` for DEFAULT categories, or the
    ``_SKIPPED`` sentinel for SKIP categories.
    """
    try:
        return fn(*args)
    except Exception as e:
        policy = CATEGORY_POLICY[category]
        if policy is FailurePolicy.ABORT:
            raise CollectionError(category, e) from e
        if policy is FailurePolicy.SKIP:
            logger.debug(f"Skipping {category} {args}: {e}")
            return _SKIPPED
        logger.debug(f"Using fallback for {category}: {e}")
        return default


def _allowed(allow_list: tuple[str, ...], *names: str) -> bool:
    """An empty allow-list admits everything."""
    if not allow_list:
        return True
    return any(name in allow_list for name in names)


class SnapshotAssembler:
    """Collects system-level metrics from a host metrics provider."""

    def __init__(self, config: AgentConfig, provider=None):
        """Initialize the assembler."""
        if provider is None:
            from .provider import PsutilProvider
            provider = PsutilProvider()
        self.config = config
        self.provider = provider

    async def collect(self) -> MetricsSnapshot:
        """Collect one snapshot; raises CollectionError."""
        # Run blocking provider calls in thread pool
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.assemble)

    async def collect_batch(self) -> list[MetricsSnapshot]:
        """Collect the snapshots for one reporting window."""
        return [await self.collect()]

    def assemble(self, now: Optional[datetime] = None) -> MetricsSnapshot:
        """Build a snapshot synchronously."""
        timestamp = now or datetime.now(timezone.utc)
        p = self.provider

        host = _query('host', p.host_info)
        usage = _query('cpu', p.cpu_percent, CPU_SAMPLE_SECONDS)
        cpu = dataclasses.replace(_query('cpu_info', p.cpu_info), usage=usage)
        memory = _query('memory', p.virtual_memory)
        disks = self._collect_disks()
        network = self._collect_network()
        load = _query('load', p.load_avg, default=LoadInfo())
        ips = _query('ip_addresses', p.local_ips, default=["unknown"])

        return MetricsSnapshot(
            timestamp=timestamp,
            token=self.config.token,
            host=host,
            ip_addresses=tuple(ips),
            keepalive=self.config.interval,
            cpu=cpu,
            memory=memory,
            disks=tuple(disks),
            network=tuple(network),
            load=load,
        )

    def _collect_disks(self) -> list[DiskInfo]:
        """Collect usage for every allowed partition."""
        disks = []

        for partition in _query('partitions', self.provider.disk_partitions):
            if not _allowed(self.config.devices, partition.device, partition.mount_point):
                continue

            usage = _query('disk_usage', self.provider.disk_usage, partition.mount_point)
            if usage is _SKIPPED:
                continue

            disks.append(DiskInfo(
                device=partition.device,
                mount_point=partition.mount_point,
                total=usage.total,
                used=usage.used,
                free=usage.free,
                usage_rate=usage.usage_rate,
                fs_type=partition.fs_type,
            ))

        return disks

    def _collect_network(self) -> list[NetworkInfo]:
        """Collect counters for every allowed interface."""
        return [
            net for net in _query('network', self.provider.net_io_counters)
            if _allowed(self.config.interfaces, net.interface)
        ]
