"""
hostpulse Edge Agent - Main Daemon.

Runs one collection cycle at startup and one per interval tick after
that, reporting every snapshot to the collection endpoint.
"""

import asyncio
import logging
import signal
from enum import Enum
from typing import Awaitable, Callable, Optional

from ..utils.logger import setup_logging
from .collectors import SnapshotAssembler
from .config import AgentConfig
from .errors import CollectionError, ReportError
from .sender import Reporter

logger = logging.getLogger(__name__)


class AgentState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


class EdgeAgent:
    """
    Main Edge Agent daemon.

    At most one cycle is in flight: a tick that fires while the previous
    cycle is still running is skipped. Stopping is cooperative, the
    in-flight cycle is allowed to finish.
    """

    def __init__(
        self,
        config: AgentConfig,
        assembler: Optional[SnapshotAssembler] = None,
        reporter: Optional[Reporter] = None,
        handle_signals: bool = True,
    ):
        """Initialize the Edge Agent."""
        self.config = config
        self.assembler = assembler or SnapshotAssembler(config)
        self.reporter = reporter or Reporter(config)
        self.handle_signals = handle_signals

        # State
        self.state = AgentState.IDLE
        self.cycles_started = 0
        self.ticks_skipped = 0
        self._stop_event: Optional[asyncio.Event] = None
        self._current: Optional[asyncio.Task] = None
        self._signals: list[int] = []

    async def start(self):
        """Run until stop() is called or a termination signal arrives."""
        if self.state is not AgentState.IDLE:
            raise RuntimeError(f"agent cannot start from state {self.state.value}")

        logger.info(f"Starting hostpulse agent, reporting to {self.config.server_url}")
        logger.info(f"Sampling interval: {self.config.interval}s")
        if self.config.proxy_url:
            logger.info(f"Using proxy: {self.config.proxy_url}")

        loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        self.state = AgentState.RUNNING
        if self.handle_signals:
            self._install_signal_handlers(loop)

        # Immediate cycle on startup
        self._launch(self.collect_and_report)

        next_tick = loop.time() + self.config.interval
        try:
            while not self._stop_event.is_set():
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(),
                        timeout=max(0.0, next_tick - loop.time()),
                    )
                except asyncio.TimeoutError:
                    next_tick += self.config.interval
                    self._launch(self.collect_and_report_batch)
        finally:
            self.state = AgentState.STOPPED
            self._remove_signal_handlers(loop)
            await self._drain()
            await self.reporter.close()
            logger.info("Agent stopped")

    async def stop(self):
        """Stop issuing new cycles."""
        if self.state is AgentState.IDLE:
            self.state = AgentState.STOPPED
            return
        if self._stop_event is not None and not self._stop_event.is_set():
            logger.info("Stopping agent...")
            self._stop_event.set()

    def _launch(self, cycle: Callable[[], Awaitable[None]]) -> None:
        """Start a cycle unless one is already running."""
        if self._current is not None and not self._current.done():
            self.ticks_skipped += 1
            logger.warning("Previous cycle still running, skipping this tick")
            return
        self.cycles_started += 1
        self._current = asyncio.create_task(cycle())

    async def _drain(self):
        """Let the in-flight cycle finish."""
        if self._current is not None and not self._current.done():
            logger.info("Waiting for the in-flight cycle to finish")
            await self._current

    async def collect_and_report(self):
        """Collect one snapshot and report it."""
        await self._guarded(self._single)

    async def collect_and_report_batch(self):
        """Collect the snapshots for one window and report them together."""
        await self._guarded(self._batch)

    async def _single(self):
        snapshot = await self.assembler.collect()
        await self.reporter.report(snapshot)

    async def _batch(self):
        snapshots = await self.assembler.collect_batch()
        logger.debug(f"Collected {len(snapshots)} snapshot(s)")
        await self.reporter.report_batch(snapshots)

    async def _guarded(self, work: Callable[[], Awaitable[None]]):
        """Run one cycle; every failure ends the cycle only."""
        try:
            await work()
            logger.info("System metrics collected and reported")
        except CollectionError as e:
            logger.error(f"System metrics collection error: {e}")
        except ReportError as e:
            logger.error(f"Report error: {e}")
        except Exception:
            logger.exception("Unexpected error in collection cycle")

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop):
        for sig in (signal.SIGTERM, signal.SIGINT):
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except (NotImplementedError, RuntimeError):
                # Windows event loops and non-main threads
                continue
            self._signals.append(sig)

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop):
        for sig in self._signals:
            loop.remove_signal_handler(sig)
        self._signals = []

    def _on_signal(self, sig: int):
        logger.info(f"Received {signal.Signals(sig).name}, shutting down")
        if self._stop_event is not None:
            self._stop_event.set()


def run_agent(config: AgentConfig):
    """Run the Edge Agent."""
    setup_logging(config.log_level, config.log_file)
    agent = EdgeAgent(config)

    try:
        asyncio.run(agent.start())
    except KeyboardInterrupt:
        pass
