"""
Collection Endpoint Reporter.

Registers the agent lazily, derives network rates from successive
snapshots and posts status reports to the collection endpoint.
No retries: every failure is raised to the caller.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence
import aiohttp

from .. import __version__
from .collectors.system import MetricsSnapshot
from .config import AgentConfig
from .errors import (
    EmptyBatchError,
    RegistrationFailed,
    SerializationFailed,
    ServerRejected,
    TransportFailed,
)

logger = logging.getLogger(__name__)

REGISTER_PATH = "/api/agents/register"
STATUS_PATH = "/api/agents/status"
USER_AGENT = f"hostpulse-agent/{__version__}"

# success=false responses carrying one of these still confirm registration
ALREADY_REGISTERED_MARKERS = ("already exists", "already registered")

KB = 1024


@dataclass
class ReporterSession:
    """Registration and rate state carried across cycles."""
    registered: bool = False
    last_network_rx: int = 0
    last_network_tx: int = 0
    last_sample_time: Optional[datetime] = None


@dataclass(frozen=True)
class NetworkRate:
    """Network throughput in KB/s."""
    rx: float = 0.0
    tx: float = 0.0


def compute_rate(
    session: ReporterSession,
    rx_bytes: int,
    tx_bytes: int,
    sample_time: datetime,
) -> NetworkRate:
    """Rate against the previous sample; zero when there is none."""
    if session.last_sample_time is None:
        return NetworkRate()

    elapsed = (sample_time - session.last_sample_time).total_seconds()
    if elapsed <= 0:
        return NetworkRate()

    def per_second(current: int, previous: int) -> float:
        # Counters go backwards on interface reset or wrap.
        if current < previous:
            return 0.0
        return (current - previous) / elapsed / KB

    return NetworkRate(
        rx=per_second(rx_bytes, session.last_network_rx),
        tx=per_second(tx_bytes, session.last_network_tx),
    )


def build_register_payload(snapshot: MetricsSnapshot) -> dict:
    """Registration view of a snapshot."""
    return {
        'token': snapshot.token,
        'name': snapshot.hostname,
        'hostname': snapshot.hostname,
        'ip_addresses': list(snapshot.ip_addresses),
        'os': snapshot.host.os,
        'version': snapshot.host.version,
    }


def build_status_payload(snapshot: MetricsSnapshot, rate: NetworkRate) -> dict:
    """Status view of a snapshot plus the summary columns the server keeps."""
    payload = snapshot.to_dict()
    payload.update({
        'cpu_usage': snapshot.cpu.usage,
        'memory_total': snapshot.memory.total // KB,
        'memory_used': snapshot.memory.used // KB,
        'disk_total': sum(d.total for d in snapshot.disks) // KB,
        'disk_used': sum(d.used for d in snapshot.disks) // KB,
        'network_rx': round(rate.rx, 2),
        'network_tx': round(rate.tx, 2),
    })
    return payload


class Reporter:
    """
    Sends snapshots to the collection endpoint.

    All session state is read and written under one lock, so overlapping
    callers are serialized and never see a half-updated session.
    """

    def __init__(self, config: AgentConfig):
        """Initialize the reporter."""
        self.server_url = config.server_url
        self.proxy_url = config.proxy_url
        self.timeout = config.timeout

        self.session_state = ReporterSession()
        self._lock = asyncio.Lock()
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def registered(self) -> bool:
        return self.session_state.registered

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    def _get_headers(self) -> dict:
        """Get request headers."""
        return {
            'Content-Type': 'application/json',
            'User-Agent': USER_AGENT,
        }

    async def report(self, snapshot: MetricsSnapshot) -> None:
        """Register if needed, then send one snapshot."""
        async with self._lock:
            await self._ensure_registered(snapshot)
            payloads, rx, tx = self._status_payloads([snapshot])
            await self._send_status(payloads[0])
            self._commit(snapshot, rx, tx)

    async def report_batch(self, snapshots: Sequence[MetricsSnapshot]) -> None:
        """Register if needed (from the first snapshot), then send all of them."""
        if not snapshots:
            raise EmptyBatchError()

        async with self._lock:
            await self._ensure_registered(snapshots[0])
            payloads, rx, tx = self._status_payloads(snapshots)
            await self._send_status(payloads)
            self._commit(snapshots[-1], rx, tx)

    def _status_payloads(self, snapshots: Sequence[MetricsSnapshot]) -> tuple[list[dict], int, int]:
        """Rate each snapshot against its predecessor without touching the session."""
        ancestry = ReporterSession(
            last_network_rx=self.session_state.last_network_rx,
            last_network_tx=self.session_state.last_network_tx,
            last_sample_time=self.session_state.last_sample_time,
        )
        payloads = []
        rx = tx = 0

        for snapshot in snapshots:
            rx, tx = snapshot.total_bytes_recv(), snapshot.total_bytes_sent()
            rate = compute_rate(ancestry, rx, tx, snapshot.timestamp)
            payloads.append(build_status_payload(snapshot, rate))
            ancestry.last_network_rx = rx
            ancestry.last_network_tx = tx
            ancestry.last_sample_time = snapshot.timestamp

        return payloads, rx, tx

    def _commit(self, snapshot: MetricsSnapshot, rx: int, tx: int) -> None:
        """Record the last successfully sent sample."""
        self.session_state.last_network_rx = rx
        self.session_state.last_network_tx = tx
        self.session_state.last_sample_time = snapshot.timestamp

    async def _ensure_registered(self, snapshot: MetricsSnapshot) -> None:
        """Register the agent unless already confirmed."""
        if self.session_state.registered:
            return

        logger.info(f"Registering agent {snapshot.hostname} with {self.server_url}")
        data = self._encode(build_register_payload(snapshot))

        try:
            session = await self._get_session()
            async with session.post(
                f"{self.server_url}{REGISTER_PATH}",
                data=data,
                headers=self._get_headers(),
                proxy=self.proxy_url,
            ) as response:
                status = response.status
                body = await response.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise RegistrationFailed(f"transport error: {e!r}") from e

        try:
            result = json.loads(body)
        except ValueError:
            raise RegistrationFailed(f"HTTP {status}: unparseable response {body[:200]!r}")
        if not isinstance(result, dict):
            raise RegistrationFailed(f"HTTP {status}: unexpected response {body[:200]!r}")

        message = str(result.get('message') or '')
        if result.get('success') is True and 200 <= status < 300:
            agent = result.get('agent')
            agent_id = agent.get('id') if isinstance(agent, dict) else None
            logger.info(f"Agent registered (id={agent_id})")
        elif any(marker in message.lower() for marker in ALREADY_REGISTERED_MARKERS):
            logger.info(f"Agent already registered: {message}")
        else:
            raise RegistrationFailed(message or f"HTTP {status}")

        self.session_state.registered = True

    async def _send_status(self, payload) -> None:
        """POST a status object or array."""
        data = self._encode(payload)

        try:
            session = await self._get_session()
            async with session.post(
                f"{self.server_url}{STATUS_PATH}",
                data=data,
                headers=self._get_headers(),
                proxy=self.proxy_url,
            ) as response:
                if not 200 <= response.status < 300:
                    error_text = await response.text()
                    raise ServerRejected(response.status, error_text[:500])
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransportFailed(e) from e

        logger.debug(f"Status report accepted ({len(data)} bytes)")

    @staticmethod
    def _encode(payload) -> str:
        try:
            return json.dumps(payload, allow_nan=False)
        except (TypeError, ValueError) as e:
            raise SerializationFailed(e) from e

    async def close(self):
        """Close the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
