from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from hostpulse.edge.collectors.system import (
    CPUInfo,
    DiskInfo,
    DiskUsage,
    HostIdentity,
    LoadInfo,
    MemoryInfo,
    MetricsSnapshot,
    NetworkInfo,
    PartitionInfo,
)
from hostpulse.edge.config import AgentConfig

EPOCH = datetime(2026, 1, 1, tzinfo=timezone.utc)
GB = 1024 ** 3


def make_snapshot(
    seconds: float = 0,
    rx: int = 0,
    tx: int = 0,
    disks: tuple[DiskInfo, ...] = (),
    hostname: str = "web-01",
    token: str = "secret-token",
    cpu_usage: float = 12.5,
) -> MetricsSnapshot:
    """Snapshot taken ``seconds`` after EPOCH with one interface."""
    return MetricsSnapshot(
        timestamp=EPOCH + timedelta(seconds=seconds),
        token=token,
        host=HostIdentity(
            hostname=hostname,
            platform="ubuntu",
            os="linux",
            version="ubuntu 22.04 (5.15.0-91-generic)",
        ),
        ip_addresses=("10.0.0.5",),
        keepalive=60,
        cpu=CPUInfo(usage=cpu_usage, cores=4, model_name="Test CPU"),
        memory=MemoryInfo(total=8 * GB, used=2 * GB, free=6 * GB, usage_rate=25.0),
        disks=disks,
        network=(NetworkInfo("eth0", bytes_sent=tx, bytes_recv=rx, packets_sent=10, packets_recv=20),),
        load=LoadInfo(0.5, 0.4, 0.3),
    )


class FakeProvider:
    """In-memory host metrics provider; methods listed in ``fail`` raise."""

    def __init__(self, fail: set[str] | None = None, fail_usage: set[str] | None = None):
        self.fail = fail or set()
        self.fail_usage = fail_usage or set()
        self.cpu_intervals: list[float] = []
        self.partitions = [
            PartitionInfo("/dev/sda1", "/", "ext4"),
            PartitionInfo("/dev/sda2", "/home", "ext4"),
            PartitionInfo("/dev/sdb1", "/data", "xfs"),
        ]
        self.interfaces = [
            NetworkInfo("lo", 500, 500, 5, 5),
            NetworkInfo("eth0", 2000, 1000, 20, 10),
            NetworkInfo("wlan0", 300, 400, 3, 4),
        ]

    def _check(self, name: str) -> None:
        if name in self.fail:
            raise OSError(f"{name} unavailable")

    def host_info(self):
        self._check("host_info")
        return HostIdentity("web-01", "ubuntu", "linux", "ubuntu 22.04 (5.15.0)")

    def cpu_percent(self, interval):
        self._check("cpu_percent")
        self.cpu_intervals.append(interval)
        return 42.0

    def cpu_info(self):
        self._check("cpu_info")
        return CPUInfo(usage=0.0, cores=8, model_name="Test CPU")

    def virtual_memory(self):
        self._check("virtual_memory")
        return MemoryInfo(total=16 * GB, used=4 * GB, free=12 * GB, usage_rate=25.0)

    def disk_partitions(self):
        self._check("disk_partitions")
        return list(self.partitions)

    def disk_usage(self, mount_point):
        if mount_point in self.fail_usage:
            raise PermissionError(mount_point)
        return DiskUsage(total=100 * GB, used=50 * GB, free=50 * GB, usage_rate=50.0)

    def net_io_counters(self):
        self._check("net_io_counters")
        return list(self.interfaces)

    def load_avg(self):
        self._check("load_avg")
        return LoadInfo(1.0, 0.5, 0.25)

    def local_ips(self):
        self._check("local_ips")
        return ["10.0.0.5", "192.168.1.20"]


class FakeCollector:
    """In-process collection server recording every request."""

    def __init__(self, register_response: dict | None = None, register_status: int = 200, status_code: int = 200):
        self.register_response = register_response or {
            "success": True,
            "message": "agent registered",
            "agent": {"id": 7},
        }
        self.register_status = register_status
        self.status_code = status_code
        self.register_calls: list[dict] = []
        self.status_calls: list = []
        self.headers: list = []
        self.server: TestServer | None = None

    async def _register(self, request: web.Request) -> web.Response:
        self.headers.append(request.headers.copy())
        self.register_calls.append(await request.json())
        return web.json_response(self.register_response, status=self.register_status)

    async def _status(self, request: web.Request) -> web.Response:
        self.headers.append(request.headers.copy())
        self.status_calls.append(await request.json())
        return web.json_response({"success": 200 <= self.status_code < 300}, status=self.status_code)

    @property
    def url(self) -> str:
        # Trailing slash on purpose: the reporter must normalize it.
        return f"http://{self.server.host}:{self.server.port}/"

    def config(self, **kwargs) -> AgentConfig:
        return AgentConfig(server_url=self.url, token="secret-token", **kwargs)

    async def __aenter__(self) -> "FakeCollector":
        app = web.Application()
        app.router.add_post("/api/agents/register", self._register)
        app.router.add_post("/api/agents/status", self._status)
        self.server = TestServer(app)
        await self.server.start_server()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.server.close()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep HOSTPULSE_* variables from the host out of the tests."""
    import os

    for key in list(os.environ):
        if key.startswith("HOSTPULSE_"):
            monkeypatch.delenv(key)
