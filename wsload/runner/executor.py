import asyncio
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..exceptions import CancellationTimeout
from ..metrics.sink import MetricSink, MetricsSnapshot
from ..models.config import ScenarioConfig
from ..models.events import CLOSE_COUNT, ERROR_COUNT, MESSAGE_COUNT
from ..utils.duration import format_duration
from .virtual_user import Outcome, VirtualUser

logger = logging.getLogger(__name__)


@dataclass
class RunSummary:
    """What happened to every virtual user in one run."""
    outcomes: Dict[Outcome, int] = field(default_factory=dict)
    forced_terminations: int = 0
    iterations: int = 0
    elapsed_seconds: float = 0.0
    metrics: Optional[MetricsSnapshot] = None

    def count(self, outcome: Outcome) -> int:
        return self.outcomes.get(outcome, 0)

    @property
    def total(self) -> int:
        return sum(self.outcomes.values())


class Executor:
    """
    Constant-concurrency executor.

    LIFECYCLE:
    1. Start exactly `vus` virtual users at once (no ramp)
    2. Hold the steady state for `duration`, or until stop() is called
    3. Broadcast cancellation to every virtual user
    4. Wait up to `shutdown_grace` for all of them to finish
    5. Force-cancel stragglers and report each as an anomaly

    ISOLATION:
    - A failing virtual user only affects its own outcome
    - Unexpected exceptions inside a virtual user are logged and counted
      as ERROR, they never abort the run
    """

    def __init__(self, config: ScenarioConfig, sink: Optional[MetricSink] = None):
        self.config = config
        self.sink = sink if sink is not None else MetricSink()
        self._cancel = asyncio.Event()
        self._stop = asyncio.Event()
        self._iterations = 0

    def stop(self) -> None:
        """End the steady state early. Safe to call more than once."""
        if not self._stop.is_set():
            logger.info("Stop requested, ending steady state early")
            self._stop.set()

    async def execute(self) -> RunSummary:
        config = self.config
        logger.info(
            f"Starting scenario: {config.vus} virtual user(s) -> {config.ws_url} "
            f"topic={config.topic} duration={format_duration(config.duration)}"
        )
        start_time = time.monotonic()

        tasks = [
            asyncio.create_task(self._slot(vu_id), name=f"vu-{vu_id}")
            for vu_id in range(config.vus)
        ]
        monitor_task = None
        if config.progress_interval.total_seconds() > 0:
            monitor_task = asyncio.create_task(self._monitor(start_time))

        try:
            await self._hold(tasks)
        finally:
            # also runs when execute() itself is cancelled
            self._cancel.set()
            if monitor_task:
                monitor_task.cancel()
                await asyncio.gather(monitor_task, return_exceptions=True)

            logger.info("Steady state over, cancelling virtual users")
            outcomes, forced = await self._drain(tasks)

        elapsed = time.monotonic() - start_time
        summary = RunSummary(
            outcomes=dict(outcomes),
            forced_terminations=forced,
            iterations=self._iterations,
            elapsed_seconds=elapsed,
            metrics=self.sink.snapshot(),
        )
        logger.info(
            f"Scenario complete in {elapsed:.2f}s: "
            + ", ".join(f"{outcome.value}={summary.count(outcome)}" for outcome in Outcome)
            + (f", forced={forced}" if forced else "")
        )
        return summary

    async def _hold(self, tasks: List[asyncio.Task]) -> None:
        """
        Wait for the duration to expire or for stop(). Returns early if every
        virtual user is already done.
        """
        stop_task = asyncio.create_task(self._stop.wait())
        all_done = asyncio.ensure_future(asyncio.wait(tasks))
        try:
            await asyncio.wait(
                {stop_task, all_done},
                timeout=self.config.duration_seconds,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            stop_task.cancel()
            all_done.cancel()

    async def _drain(self, tasks: List[asyncio.Task]) -> Tuple[Counter, int]:
        grace = self.config.shutdown_grace.total_seconds()
        _, pending = await asyncio.wait(tasks, timeout=grace)

        forced = 0
        for task in pending:
            anomaly = CancellationTimeout(
                f"{task.get_name()} did not acknowledge cancellation within {grace:g}s, terminating"
            )
            logger.warning(anomaly.message)
            task.cancel()
            forced += 1
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

        outcomes: Counter = Counter()
        for task in tasks:
            if task in pending or task.cancelled():
                outcomes[Outcome.CANCELLED] += 1
                continue
            error = task.exception()
            if error is not None:
                logger.error(f"{task.get_name()} crashed: {error}", exc_info=error)
                outcomes[Outcome.ERROR] += 1
            else:
                outcomes[task.result()] += 1
        return outcomes, forced

    async def _slot(self, vu_id: int) -> Outcome:
        """
        One virtual-user slot. Without reconnect it runs a single connection;
        with reconnect it starts a fresh one after each termination until the
        run is cancelled.
        """
        delay = self.config.reconnect_delay.total_seconds()
        while True:
            self._iterations += 1
            outcome = await VirtualUser(vu_id, self.config, self.sink).run(self._cancel)

            if not self.config.reconnect or self._cancel.is_set():
                return outcome

            logger.debug(f"vu-{vu_id}: {outcome.value}, reconnecting in {delay:g}s")
            try:
                await asyncio.wait_for(self._cancel.wait(), timeout=delay)
                return outcome
            except asyncio.TimeoutError:
                continue

    async def _monitor(self, start_time: float) -> None:
        """
        Log running counters while the scenario is in its steady state.
        """
        interval = self.config.progress_interval.total_seconds()
        while True:
            await asyncio.sleep(interval)
            snapshot = self.sink.snapshot()
            logger.info(
                f"[{time.monotonic() - start_time:6.1f}s] "
                f"messages={snapshot.counter(MESSAGE_COUNT)} "
                f"closed={snapshot.counter(CLOSE_COUNT)} "
                f"errors={snapshot.counter(ERROR_COUNT)}"
            )


async def execute_scenario(config: ScenarioConfig, sink: Optional[MetricSink] = None) -> RunSummary:
    """Run one scenario to completion and return its summary."""
    return await Executor(config, sink).execute()
