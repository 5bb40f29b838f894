"""
Host Metrics Provider.

Point-in-time readings straight from the operating system. Every method
may raise; deciding which failures are fatal is the assembler's job.
"""

import platform
import socket
from typing import Protocol
import psutil

from .system import (
    CPUInfo,
    HostIdentity,
    LoadInfo,
    MemoryInfo,
    NetworkInfo,
    PartitionInfo,
    DiskUsage,
)


class HostMetricsProvider(Protocol):
    """Capability the snapshot assembler reads from."""

    def host_info(self) -> HostIdentity: ...

    def cpu_percent(self, interval: float) -> float: ...

    def cpu_info(self) -> CPUInfo: ...

    def virtual_memory(self) -> MemoryInfo: ...

    def disk_partitions(self) -> list[PartitionInfo]: ...

    def disk_usage(self, mount_point: str) -> DiskUsage: ...

    def net_io_counters(self) -> list[NetworkInfo]: ...

    def load_avg(self) -> LoadInfo: ...

    def local_ips(self) -> list[str]: ...


def _cpu_model_name() -> str:
    """Best-effort CPU model string."""
    try:
        with open('/proc/cpuinfo') as f:
            for line in f:
                if line.lower().startswith('model name'):
                    return line.split(':', 1)[1].strip()
    except OSError:
        pass
    return platform.processor()


class PsutilProvider:
    """Host metrics backed by psutil."""

    def host_info(self) -> HostIdentity:
        uname = platform.uname()
        plat, plat_version = uname.system.lower(), uname.version
        if psutil.LINUX:
            try:
                release = platform.freedesktop_os_release()
                plat = release.get("ID", plat)
                plat_version = release.get("VERSION_ID", "")
            except OSError:
                plat_version = ""
        return HostIdentity(
            hostname=socket.gethostname(),
            platform=plat,
            os=uname.system.lower(),
            version=f"{plat} {plat_version} ({uname.release})",
        )

    def cpu_percent(self, interval: float) -> float:
        return psutil.cpu_percent(interval=interval)

    def cpu_info(self) -> CPUInfo:
        return CPUInfo(
            usage=0.0,
            cores=psutil.cpu_count() or 0,
            model_name=_cpu_model_name(),
        )

    def virtual_memory(self) -> MemoryInfo:
        mem = psutil.virtual_memory()
        return MemoryInfo(
            total=mem.total,
            used=mem.used,
            free=mem.free,
            usage_rate=mem.percent,
        )

    def disk_partitions(self) -> list[PartitionInfo]:
        return [
            PartitionInfo(device=p.device, mount_point=p.mountpoint, fs_type=p.fstype)
            for p in psutil.disk_partitions(all=False)
        ]

    def disk_usage(self, mount_point: str) -> DiskUsage:
        usage = psutil.disk_usage(mount_point)
        return DiskUsage(
            total=usage.total,
            used=usage.used,
            free=usage.free,
            usage_rate=usage.percent,
        )

    def net_io_counters(self) -> list[NetworkInfo]:
        net_io = psutil.net_io_counters(pernic=True)
        return [
            NetworkInfo(
                interface=interface,
                bytes_sent=stats.bytes_sent,
                bytes_recv=stats.bytes_recv,
                packets_sent=stats.packets_sent,
                packets_recv=stats.packets_recv,
            )
            for interface, stats in net_io.items()
        ]

    def load_avg(self) -> LoadInfo:
        load1, load5, load15 = psutil.getloadavg()
        return LoadInfo(load1=load1, load5=load5, load15=load15)

    def local_ips(self) -> list[str]:
        ips = []
        for addrs in psutil.net_if_addrs().values():
            for addr in addrs:
                if addr.family != socket.AF_INET:
                    continue
                if addr.address.startswith("127."):
                    continue
                ips.append(addr.address)
        return ips or ["unknown"]
