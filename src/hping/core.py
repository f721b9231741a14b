import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable

import aiohttp
from rich.console import Console

from .config import Settings
from .history import History
from .logging_config import StatusLog
from .models import RequestOutcome, Statistics, Target
from .rendering import make_console, render_outcome, render_statistics, status_changed
from .requester import Requester
from .scheduler import PollScheduler, RequesterLike, SchedulerState
from .utils import GracefulKiller, normalize_target, resolve_ip

logger = logging.getLogger(__name__)

MAX_RUN_TIME_NOTICE = "hPING: Maximum running time has been reached (set in config), exiting."


class RunState:
    """Process-wide run bookkeeping, owned by the coordinator."""

    def __init__(self) -> None:
        self.total_in_flight = 0
        self.drain_requested = False
        self.finalized = False
        self.done = asyncio.Event()

    def increment(self) -> None:
        self.total_in_flight += 1

    def decrement(self) -> None:
        if self.total_in_flight <= 0:
            raise RuntimeError("in-flight counter would go negative")
        self.total_in_flight -= 1

    def request_drain(self) -> bool:
        """True only for the first drain request."""
        if self.drain_requested:
            return False
        self.drain_requested = True
        return True

    def try_finalize(self, all_stopped: bool) -> bool:
        """Latch `finalized` once everything is stopped and idle; True only on that call."""
        if self.finalized or not all_stopped or self.total_in_flight != 0:
            return False
        self.finalized = True
        return True


class ShutdownCoordinator:
    """Runs one PollScheduler per target and finalizes the run exactly once."""

    def __init__(
        self,
        settings: Settings,
        method: str | None = None,
        *,
        requester: RequesterLike | None = None,
        status_log: StatusLog | None = None,
        console: Console | None = None,
        ip_resolver: Callable[[str], Awaitable[str]] | None = resolve_ip,
        handle_signals: bool = True,
    ) -> None:
        self.settings = settings
        self.method = (method or settings.type).upper()
        self.requester = requester
        self.status_log = status_log
        self.console = console or make_console()
        self.ip_resolver = ip_resolver
        self.handle_signals = handle_signals

        self.run_state = RunState()
        self.schedulers: list[PollScheduler] = []
        self.histories: dict[str, History] = {}
        self.statistics: dict[str, Statistics] = {}
        self._limit_notice_shown = False
        self._launches: list[asyncio.Task] = []

        logger.debug(
            f"Coordinator ready: method={self.method}, interval={settings.interval}s, "
            f"timeout={settings.timeout}ms, max_run_time={settings.max_run_time}s"
        )

    # ────────────────────────────────
    # Main Runner
    # ────────────────────────────────

    async def start(self, targets: Iterable[str]) -> dict[str, Statistics]:
        urls = list(dict.fromkeys(normalize_target(t) for t in targets))
        if not urls:
            raise ValueError("at least one target is required")

        if self.requester is not None:
            return await self._run(urls)

        timeout = aiohttp.ClientTimeout(total=self.settings.timeout / 1000)
        connector = aiohttp.TCPConnector(limit=0)
        async with aiohttp.ClientSession(connector=connector, timeout=timeout) as session:
            self.requester = Requester(session)
            return await self._run(urls)

    async def _run(self, urls: list[str]) -> dict[str, Statistics]:
        # Every scheduler exists before any of them starts, so "all stopped" is well defined
        for url in urls:
            history = self.histories.setdefault(url, History(self.settings.stats_for_last))
            self.schedulers.append(
                PollScheduler(
                    Target(url),
                    requester=self.requester,
                    history=history,
                    in_flight=self.run_state,
                    method=self.method,
                    interval_s=self.settings.interval,
                    timeout_ms=self.settings.timeout,
                    max_run_time_s=self.settings.max_run_time,
                    on_outcome=self._on_outcome,
                    on_limit_reached=self._on_limit_reached,
                    on_stopped=self._on_stopped,
                )
            )

        killer = GracefulKiller(self.shutdown)
        if self.handle_signals:
            killer.install()
        try:
            self._launches = [
                asyncio.create_task(self._launch(s), name=f"launch-{s.url}") for s in self.schedulers
            ]
            await self.run_state.done.wait()
            await asyncio.gather(*self._launches, return_exceptions=True)
            await asyncio.gather(*(s.wait_stopped() for s in self.schedulers))
        finally:
            if self.handle_signals:
                killer.restore()
        return self.statistics

    async def _launch(self, scheduler: PollScheduler) -> None:
        ip = ""
        if self.ip_resolver is not None and scheduler.state is SchedulerState.IDLE:
            try:
                ip = await self.ip_resolver(scheduler.url)
            except Exception:
                logger.exception(f"Resolving {scheduler.url} for display failed")
        scheduler.start(ip)

    # ────────────────────────────────
    # Shutdown & Finalize
    # ────────────────────────────────

    def shutdown(self, message: str | None = None) -> None:
        """Drain every scheduler; in-flight requests finish on their own."""
        if self.run_state.finalized or not self.run_state.request_drain():
            return
        if message:
            self.console.print(message)
        logger.info(f"Shutdown requested, draining {len(self.schedulers)} target(s)")
        for scheduler in self.schedulers:
            scheduler.drain()
        self._maybe_finalize()

    def _on_limit_reached(self, scheduler: PollScheduler) -> None:
        if self._limit_notice_shown or self.run_state.drain_requested:
            return
        self._limit_notice_shown = True
        self.console.print(MAX_RUN_TIME_NOTICE)

    def _on_stopped(self, scheduler: PollScheduler) -> None:
        logger.debug(f"Scheduler for {scheduler.url} stopped after {scheduler.rounds} round(s)")
        self._maybe_finalize()

    def _maybe_finalize(self) -> None:
        all_stopped = all(s.state is SchedulerState.STOPPED for s in self.schedulers)
        if self.run_state.try_finalize(all_stopped):
            self._finalize()

    def _finalize(self) -> None:
        try:
            limit = self.settings.show_stats_for_last
            for url, history in self.histories.items():
                stats = history.statistics(limit)
                self.statistics[url] = stats
                try:
                    self._report(url, stats)
                except Exception:
                    logger.exception(f"Reporting statistics for {url} failed")
        finally:
            if self.status_log is not None:
                self.status_log.close()
            self.run_state.done.set()

    def _report(self, url: str, stats: Statistics) -> None:
        report = render_statistics(url, stats, self.settings.use_colors)
        if not report:
            return
        self.console.print(report)
        if self.settings.log_stats_on_exit and self.status_log is not None:
            self.status_log.info(report.plain)

    # ────────────────────────────────
    # Display
    # ────────────────────────────────

    def _on_outcome(self, target: Target, outcome: RequestOutcome, previous: RequestOutcome | None) -> None:
        line = render_outcome(
            target,
            outcome,
            self.method,
            self.settings.display_in_output,
            self.settings.use_colors,
        )
        self.console.print(line)
        if (
            self.settings.log_status_change
            and self.status_log is not None
            and status_changed(previous, outcome)
        ):
            self.status_log.info(line.plain)
