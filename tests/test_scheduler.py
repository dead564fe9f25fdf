import sys
import threading
import unittest
from datetime import timedelta
from pathlib import Path
from unittest.mock import patch

import requests

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "py"))

from query_bench.client import PrometheusClient
from query_bench.errors import HTTPStatusError, NetworkError
from query_bench.main import make_executor
from query_bench.scheduler import (
    IntervalTicker,
    QueryWindow,
    Round,
    Scheduler,
    run_round,
    run_worker,
    substitute,
)
from query_bench.stats import ByteMeter, RoundStats


class RecordingExecutor:
    """Thread-safe executor stub that records calls and can fail on demand."""

    def __init__(self, fail_on: set[int] | None = None, exc: Exception | None = None) -> None:
        self._lock = threading.Lock()
        self._fail_on = fail_on or set()
        self._exc = exc or NetworkError("connection refused")
        self.calls: list[tuple[str, QueryWindow]] = []

    def __call__(self, query: str, window: QueryWindow) -> None:
        with self._lock:
            index = len(self.calls)
            self.calls.append((query, window))
        if index in self._fail_on:
            raise self._exc


class FakeTicker:
    def __init__(self) -> None:
        self.ticks = 0

    def wait(self) -> None:
        self.ticks += 1


WINDOW = QueryWindow(start=0.0, end=3600.0, step=timedelta(minutes=5))


def make_round(instances, templates, *, workers: int = 1, sleep: float = 0.0) -> Round:
    return Round(
        number=1,
        window=WINDOW,
        instances=tuple(instances),
        templates=tuple(templates),
        workers=workers,
        sleep=sleep,
    )


def no_sleep(_seconds: float) -> None:
    return None


class SubstituteTest(unittest.TestCase):
    def test_placeholder_is_replaced(self) -> None:
        self.assertEqual(substitute('instance="host-0"', "host-42"), 'instance="host-42"')

    def test_every_occurrence_is_replaced(self) -> None:
        template = 'up{instance="host-0"} / on() count(up{instance="host-0"})'
        self.assertEqual(
            substitute(template, "db-1"),
            'up{instance="db-1"} / on() count(up{instance="db-1"})',
        )

    def test_template_without_placeholder_is_unchanged(self) -> None:
        for template in ("sum(up)", 'up{instance="host-1"}', "up{instance=~\"host-0\"}"):
            with self.subTest(template=template):
                self.assertEqual(substitute(template, "x"), template)


class RunWorkerTest(unittest.TestCase):
    def test_iterates_instances_outer_templates_inner(self) -> None:
        executor = RecordingExecutor()
        rnd = make_round(["a", "b"], ['q1{instance="host-0"}', 'q2{instance="host-0"}'])
        run_worker(0, rnd, executor, RoundStats(), sleep=no_sleep)

        self.assertEqual(
            [query for query, _ in executor.calls],
            ['q1{instance="a"}', 'q2{instance="a"}', 'q1{instance="b"}', 'q2{instance="b"}'],
        )

    def test_sleeps_once_per_instance(self) -> None:
        sleeps: list[float] = []
        rnd = make_round(["a", "b", "c"], ["q1", "q2", "q3"], sleep=0.25)
        run_worker(0, rnd, RecordingExecutor(), RoundStats(), sleep=sleeps.append)
        self.assertEqual(sleeps, [0.25, 0.25, 0.25])

    def test_zero_sleep_is_skipped(self) -> None:
        sleeps: list[float] = []
        run_worker(0, make_round(["a"], ["q"]), RecordingExecutor(), RoundStats(), sleep=sleeps.append)
        self.assertEqual(sleeps, [])

    def test_failure_does_not_stop_the_worker(self) -> None:
        executor = RecordingExecutor(fail_on={1})
        stats = RoundStats()
        rnd = make_round(["a", "b"], ["q1", "q2"])
        with self.assertLogs("query_bench.scheduler", level="WARNING") as logs:
            run_worker(3, rnd, executor, stats, sleep=no_sleep)

        self.assertEqual(len(executor.calls), 4)
        self.assertEqual(stats.snapshot(), (4, 1))
        self.assertIn("worker 3 instance 0 (a) query failed", logs.output[0])

    def test_unexpected_exception_does_not_stop_the_worker(self) -> None:
        executor = RecordingExecutor(fail_on={0, 2}, exc=RuntimeError("boom"))
        stats = RoundStats()
        with self.assertLogs("query_bench.scheduler", level="ERROR"):
            run_worker(0, make_round(["a", "b"], ["q1", "q2"]), executor, stats, sleep=no_sleep)
        self.assertEqual(stats.snapshot(), (4, 2))


class RunRoundTest(unittest.TestCase):
    def test_every_worker_runs_the_full_cross_product(self) -> None:
        for workers, instances, templates in ((1, 1, 1), (3, 4, 2), (5, 2, 3)):
            with self.subTest(workers=workers, instances=instances, templates=templates):
                executor = RecordingExecutor()
                rnd = make_round(
                    [f"host-{i}" for i in range(instances)],
                    [f't{j}{{instance="host-0"}}' for j in range(templates)],
                    workers=workers,
                )
                report = run_round(rnd, executor, sleep=no_sleep)

                self.assertEqual(len(executor.calls), workers * instances * templates)
                self.assertEqual(report.attempts, workers * instances * templates)
                self.assertEqual(report.failures, 0)
                self.assertEqual(report.workers, workers)
                queries = [query for query, _ in executor.calls]
                for i in range(instances):
                    for j in range(templates):
                        self.assertEqual(queries.count(f't{j}{{instance="host-{i}"}}'), workers)

    def test_round_completes_when_queries_fail(self) -> None:
        executor = RecordingExecutor(fail_on=set(range(0, 12, 2)), exc=HTTPStatusError(500, "oops"))
        rnd = make_round(["a", "b", "c"], ["q1", "q2"], workers=2)
        with self.assertLogs("query_bench.scheduler", level="WARNING"):
            report = run_round(rnd, executor, sleep=no_sleep)
        self.assertEqual(report.attempts, 12)
        self.assertEqual(report.failures, 6)
        self.assertEqual(report.successes, 6)

    def test_empty_inputs_issue_no_queries(self) -> None:
        executor = RecordingExecutor()
        report = run_round(make_round([], ["q"], workers=4), executor, sleep=no_sleep)
        self.assertEqual(report.attempts, 0)
        self.assertEqual(executor.calls, [])

    def test_byte_meter_is_sampled_around_the_round(self) -> None:
        samples = iter([(1000, 5000), (1600, 9000)])
        meter = ByteMeter(sampler=lambda: next(samples))
        report = run_round(make_round(["a"], ["q"]), RecordingExecutor(), sleep=no_sleep, meter=meter)
        self.assertEqual((report.bytes_sent, report.bytes_received), (600, 4000))


class SchedulerTest(unittest.TestCase):
    def test_single_tick_end_to_end(self) -> None:
        client = PrometheusClient("http://x")
        ok = {"status": "success", "data": {"resultType": "matrix", "result": []}}
        executor = RecordingExecutor()
        ticker = FakeTicker()

        def execute(query: str, window: QueryWindow) -> None:
            executor(query, window)
            make_executor(client)(query, window)

        scheduler = Scheduler(
            instances=["a", "b"],
            templates=['{instance="host-0"}'],
            span=timedelta(hours=1),
            step=timedelta(minutes=5),
            workers=1,
            sleep_between=0.001,
            execute=execute,
            ticker=ticker,
            clock=lambda: 1_700_000_000.5,
            sleep=no_sleep,
        )
        with patch.object(requests.Session, "get") as get:
            get.return_value.status_code = 200
            get.return_value.json.return_value = ok
            completed = scheduler.run(max_rounds=1)

        self.assertEqual(completed, 1)
        self.assertEqual(ticker.ticks, 1)
        self.assertEqual([query for query, _ in executor.calls], ['{instance="a"}', '{instance="b"}'])
        windows = {window for _, window in executor.calls}
        self.assertEqual(windows, {QueryWindow(start=1_699_996_400.5, end=1_700_000_000.5, step=timedelta(minutes=5))})

        self.assertEqual(get.call_count, 2)
        urls = [call.args[0] for call in get.call_args_list]
        self.assertEqual(urls, ["http://x/api/v1/query_range"] * 2)
        params = [call.kwargs["params"] for call in get.call_args_list]
        self.assertEqual([p["query"] for p in params], ['{instance="a"}', '{instance="b"}'])
        self.assertTrue(all(p["start"] == "1699996400" and p["end"] == "1700000000" for p in params))
        self.assertTrue(all(p["step"] == "300" for p in params))

    def test_each_round_gets_a_fresh_window(self) -> None:
        times = iter([100.0, 105.0, 111.0])
        executor = RecordingExecutor()
        scheduler = Scheduler(
            instances=["a"],
            templates=["q"],
            span=timedelta(seconds=60),
            step=timedelta(seconds=15),
            workers=2,
            sleep_between=0.0,
            execute=executor,
            ticker=FakeTicker(),
            clock=lambda: next(times),
            sleep=no_sleep,
        )
        with self.assertLogs("query_bench.scheduler", level="INFO") as logs:
            scheduler.run(max_rounds=3)

        ends = sorted({window.end for _, window in executor.calls})
        self.assertEqual(ends, [100.0, 105.0, 111.0])
        self.assertTrue(all(window.end - window.start == 60 for _, window in executor.calls))
        self.assertEqual(len(executor.calls), 6)
        self.assertTrue(any("round 3 done: 2 queries (0 failed)" in line for line in logs.output))


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class IntervalTickerTest(unittest.TestCase):
    def test_ticks_on_a_fixed_grid(self) -> None:
        clock = FakeClock()
        ticker = IntervalTicker(5.0, clock=clock, sleep=clock.sleep)
        ticker.wait()
        clock.now += 1.5
        ticker.wait()
        self.assertEqual(clock.sleeps, [5.0, 3.5])
        self.assertEqual(clock.now, 10.0)

    def test_late_tick_fires_immediately_and_extra_ticks_are_dropped(self) -> None:
        clock = FakeClock()
        ticker = IntervalTicker(5.0, clock=clock, sleep=clock.sleep)
        ticker.wait()
        clock.now = 17.0
        ticker.wait()
        self.assertEqual(clock.sleeps, [5.0])
        ticker.wait()
        self.assertEqual(clock.sleeps, [5.0, 3.0])
        self.assertEqual(clock.now, 20.0)

    def test_rejects_non_positive_interval(self) -> None:
        with self.assertRaises(ValueError):
            IntervalTicker(0)


if __name__ == "__main__":
    unittest.main()
