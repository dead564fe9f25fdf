"""Tick-driven rounds of redundant range queries.

Every tick the scheduler computes a fresh ``(now - span, now)`` window and
starts ``workers`` threads. Each thread walks the full instance x template
cross-product on its own, so the offered load per round is
``workers * instances * templates`` queries. The next tick is not served
until every thread of the current round has been joined.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Sequence

from .errors import QueryBenchError
from .stats import ByteMeter, RoundReport, RoundStats

LOGGER = logging.getLogger(__name__)

PLACEHOLDER = 'instance="host-0"'


@dataclass(frozen=True)
class QueryWindow:
    start: float
    end: float
    step: timedelta


@dataclass(frozen=True)
class Round:
    number: int
    window: QueryWindow
    instances: tuple[str, ...]
    templates: tuple[str, ...]
    workers: int
    sleep: float


Executor = Callable[[str, QueryWindow], None]


def substitute(template: str, instance: str) -> str:
    return template.replace(PLACEHOLDER, f'instance="{instance}"')


def run_worker(
    index: int,
    rnd: Round,
    execute: Executor,
    stats: RoundStats,
    *,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    for inst_idx, instance in enumerate(rnd.instances):
        for template in rnd.templates:
            query = substitute(template, instance)
            try:
                execute(query, rnd.window)
            except QueryBenchError as exc:
                stats.add_failure()
                LOGGER.warning(
                    "worker %d instance %d (%s) query failed: %s", index, inst_idx, instance, exc
                )
                continue
            except Exception:  # noqa: BLE001
                stats.add_failure()
                LOGGER.exception("worker %d instance %d (%s) unexpected error", index, inst_idx, instance)
                continue
            stats.add_success()
            LOGGER.debug("worker %d instance %d ok: %s", index, inst_idx, query)
        if rnd.sleep > 0:
            sleep(rnd.sleep)


def run_round(
    rnd: Round,
    execute: Executor,
    *,
    sleep: Callable[[float], None] = time.sleep,
    meter: ByteMeter | None = None,
) -> RoundReport:
    """Start one thread per worker, join them all and report."""

    stats = RoundStats()
    if meter:
        meter.start()
    started = time.perf_counter()
    threads = []
    for i in range(rnd.workers):
        t = threading.Thread(
            target=run_worker,
            args=(i, rnd, execute, stats),
            kwargs={"sleep": sleep},
            name=f"worker-{i + 1}",
            daemon=True,
        )
        t.start()
        threads.append(t)
    for t in threads:
        t.join()
    elapsed = time.perf_counter() - started
    bytes_sent, bytes_received = meter.stop() if meter else (0, 0)

    attempts, failures = stats.snapshot()
    return RoundReport(
        number=rnd.number,
        workers=rnd.workers,
        attempts=attempts,
        failures=failures,
        elapsed=elapsed,
        bytes_sent=bytes_sent,
        bytes_received=bytes_received,
    )


class IntervalTicker:
    """Fixed-interval timer whose ticks stay on a grid.

    A tick that came due while the caller was busy fires immediately on the
    next ``wait()``; any further missed ticks are dropped.
    """

    def __init__(
        self,
        interval: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be greater than 0")
        self._interval = interval
        self._clock = clock
        self._sleep = sleep
        self._next = clock() + interval

    def wait(self) -> None:
        now = self._clock()
        if now < self._next:
            self._sleep(self._next - now)
            now = self._next
        missed = int((now - self._next) // self._interval) + 1
        self._next += missed * self._interval


class Scheduler:
    def __init__(
        self,
        *,
        instances: Sequence[str],
        templates: Sequence[str],
        span: timedelta,
        step: timedelta,
        workers: int,
        sleep_between: float,
        execute: Executor,
        ticker: IntervalTicker,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        meter: ByteMeter | None = None,
    ) -> None:
        self._instances = tuple(instances)
        self._templates = tuple(templates)
        self._span = span
        self._step = step
        self._workers = workers
        self._sleep_between = sleep_between
        self._execute = execute
        self._ticker = ticker
        self._clock = clock
        self._sleep = sleep
        self._meter = meter

    def run_once(self, number: int) -> RoundReport:
        end = self._clock()
        start = end - self._span.total_seconds()
        rnd = Round(
            number=number,
            window=QueryWindow(start=start, end=end, step=self._step),
            instances=self._instances,
            templates=self._templates,
            workers=self._workers,
            sleep=self._sleep_between,
        )
        report = run_round(rnd, self._execute, sleep=self._sleep, meter=self._meter)
        LOGGER.info(
            "round %d done: %d queries (%d failed) by %d workers in %.3fs, sent=%dB recv=%dB",
            report.number,
            report.attempts,
            report.failures,
            report.workers,
            report.elapsed,
            report.bytes_sent,
            report.bytes_received,
        )
        return report

    def run(self, max_rounds: int | None = None) -> int:
        """Run rounds until killed, or until ``max_rounds`` have completed."""

        LOGGER.info(
            "starting: %d instances x %d templates x %d workers per round",
            len(self._instances),
            len(self._templates),
            self._workers,
        )
        completed = 0
        while max_rounds is None or completed < max_rounds:
            self._ticker.wait()
            completed += 1
            self.run_once(completed)
        return completed
