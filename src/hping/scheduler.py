import asyncio
import dataclasses
import logging
from collections.abc import Callable
from enum import Enum
from typing import Protocol

from .history import History
from .models import OutcomeCallback, RequestOutcome, Target

logger = logging.getLogger(__name__)


class RequesterLike(Protocol):
    async def execute(self, url: str, method: str, timeout_ms: int) -> RequestOutcome: ...


class InFlightCounter(Protocol):
    def increment(self) -> None: ...

    def decrement(self) -> None: ...


class SchedulerState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


_TRANSITIONS = {
    SchedulerState.IDLE: {SchedulerState.RUNNING, SchedulerState.STOPPED},
    SchedulerState.RUNNING: {SchedulerState.DRAINING},
    SchedulerState.DRAINING: {SchedulerState.STOPPED},
    SchedulerState.STOPPED: set(),
}


class IntervalTimer:
    """Fires once after `delay_s` seconds unless cancelled first."""

    def __init__(self, delay_s: float):
        self.delay_s = delay_s
        self._cancelled = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    async def wait(self) -> bool:
        """True when the delay elapsed, False when cancelled."""
        if self._cancelled.is_set():
            return False
        try:
            await asyncio.wait_for(self._cancelled.wait(), timeout=self.delay_s)
        except TimeoutError:
            return not self._cancelled.is_set()
        return False


def keep_running(max_run_time_s: float, interval_s: float, next_round: int) -> bool:
    return max_run_time_s == 0 or max_run_time_s > interval_s * next_round


class PollScheduler:
    """Repeatedly probes one target, one request at a time.

    The first probe goes out as soon as the scheduler starts; each following probe
    is dispatched `interval_s` seconds after the previous outcome was recorded and
    displayed, so a slow target throttles itself instead of piling up requests.
    The scheduler drains when the run-time limit is hit, when `drain()` is called,
    or when the outcome callback raises.
    """

    def __init__(
        self,
        target: Target,
        *,
        requester: RequesterLike,
        history: History,
        in_flight: InFlightCounter,
        method: str = "HEAD",
        interval_s: float = 1.0,
        timeout_ms: int = 5000,
        max_run_time_s: float = 0,
        on_outcome: OutcomeCallback | None = None,
        on_limit_reached: Callable[["PollScheduler"], None] | None = None,
        on_stopped: Callable[["PollScheduler"], None] | None = None,
    ) -> None:
        self.target = target
        self.requester = requester
        self.history = history
        self.method = method
        self.interval_s = interval_s
        self.timeout_ms = timeout_ms
        self.max_run_time_s = max_run_time_s
        self._in_flight_counter = in_flight
        self._on_outcome = on_outcome
        self._on_limit_reached = on_limit_reached
        self._on_stopped = on_stopped

        self.state = SchedulerState.IDLE
        self.rounds = 0
        self._in_flight = 0
        self._timer: IntervalTimer | None = None
        self._task: asyncio.Task | None = None
        self._stopped = asyncio.Event()

    @property
    def url(self) -> str:
        return self.target.url

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def shutting_down(self) -> bool:
        return self.state in (SchedulerState.DRAINING, SchedulerState.STOPPED)

    # ────────────────────────────────
    # Lifecycle
    # ────────────────────────────────

    def start(self, ip: str = "") -> None:
        if self.state is not SchedulerState.IDLE:
            logger.debug(f"Not starting {self.url}: scheduler is {self.state.value}")
            return
        if ip:
            self.target = dataclasses.replace(self.target, ip=ip)
        self._transition(SchedulerState.RUNNING)
        self._task = asyncio.create_task(self._run(), name=f"poll-{self.url}")

    def drain(self) -> None:
        """Stop scheduling new probes; an in-flight probe is left to finish."""
        if self.state is SchedulerState.IDLE:
            self._stop()
        elif self.state is SchedulerState.RUNNING:
            self._transition(SchedulerState.DRAINING)
            if self._timer is not None:
                self._timer.cancel()

    async def wait_stopped(self) -> None:
        await self._stopped.wait()
        if self._task is None:
            return
        await asyncio.wait({self._task})
        if not self._task.cancelled() and self._task.exception() is not None:
            logger.error(
                f"Request loop for {self.url} ended with an error",
                exc_info=self._task.exception(),
            )

    def _transition(self, new_state: SchedulerState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Invalid scheduler transition for {self.url}: "
                f"{self.state.value} -> {new_state.value}"
            )
        logger.debug(f"{self.url}: {self.state.value} -> {new_state.value}")
        self.state = new_state

    def _stop(self) -> None:
        if self.state is SchedulerState.STOPPED:
            return
        self._transition(SchedulerState.STOPPED)
        self._stopped.set()
        if self._on_stopped is not None:
            self._on_stopped(self)

    # ────────────────────────────────
    # Request Loop
    # ────────────────────────────────

    async def _run(self) -> None:
        try:
            while self.state is SchedulerState.RUNNING:
                try:
                    await self._probe()
                except Exception:
                    logger.exception(f"Request loop for {self.url} failed, draining target")
                    self.drain()
                    break

                self.rounds += 1
                if self.state is not SchedulerState.RUNNING:
                    break
                if not keep_running(self.max_run_time_s, self.interval_s, self.rounds):
                    self.drain()
                    if self._on_limit_reached is not None:
                        self._on_limit_reached(self)
                    break

                self._timer = IntervalTimer(self.interval_s)
                try:
                    fired = await self._timer.wait()
                finally:
                    self._timer = None
                if not fired:
                    break
        finally:
            if self.state is SchedulerState.RUNNING:
                self._transition(SchedulerState.DRAINING)
            self._stop()

    async def _probe(self) -> None:
        if self._in_flight:
            raise RuntimeError(f"A request to {self.url} is already in flight")
        self._in_flight = 1
        self._in_flight_counter.increment()
        try:
            outcome = await self.requester.execute(self.url, self.method, self.timeout_ms)
            previous = self.history.last()
            self.history.record(outcome)
            if self._on_outcome is not None:
                self._on_outcome(self.target, outcome, previous)
        finally:
            self._in_flight = 0
            self._in_flight_counter.decrement()
