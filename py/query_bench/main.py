"""query-bench の起動ロジック。

起動時に範囲・テンプレート・インスタンス一覧をそろえ、どれか一つでも
失敗したら終了コード 1 で抜ける。そろったらスケジューラに渡して
プロセスが止められるまでラウンドを回し続ける。
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Iterable, Sequence

from .client import PrometheusClient
from .config import ConfigError, load_config
from .duration import ParseError, parse_range
from .errors import QueryBenchError
from .scheduler import Executor, IntervalTicker, QueryWindow, Scheduler
from .stats import ByteMeter
from .templates import TemplateLoadError, load_templates

LOGGER = logging.getLogger("query_bench")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Periodic range-query load generator for Prometheus-compatible APIs")
    parser.add_argument("--config", help="Path to a TOML file with a [bench] table of defaults")
    parser.add_argument("--prom-url", dest="prom_url", help="Base URL of Prometheus (default: http://localhost:9090)")
    parser.add_argument("--query-file", dest="query_file", help="File with one PromQL template per line (default: queries.txt)")
    parser.add_argument("--range", dest="range", help="Time range to query, e.g. 7d, 12h, 30m (default: 30d)")
    parser.add_argument("--auth-header", dest="auth_token", help="Bearer token sent in the Authorization header")
    parser.add_argument("--step", help="Step duration for the query (default: 5m)")
    parser.add_argument("--ticker", dest="interval", help="Interval between rounds (default: 5s)")
    parser.add_argument("--label", help="Label name to fetch all values for (default: instance)")
    parser.add_argument("--num-threads", dest="workers", type=int, help="Number of worker threads per round (default: 1)")
    parser.add_argument("--sleep", help="Sleep after each instance inside a worker (default: 1ms)")
    parser.add_argument("--query-timeout", dest="query_timeout", type=float, help="Per-query timeout in seconds, 0 disables (default: 0)")
    parser.add_argument(
        "--check-status",
        dest="check_status",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Count 200 responses whose envelope status is not 'success' as failures",
    )
    parser.add_argument("--rounds", type=int, help="Stop after this many rounds (default: run until killed)")
    parser.add_argument("--log-level", dest="log_level", help="Logging level (default: INFO)")
    return parser


def make_executor(client: PrometheusClient) -> Executor:
    def execute(query: str, window: QueryWindow) -> None:
        client.query_range(query, start=window.start, end=window.end, step=window.step)

    return execute


def _fail(message: str, exc: Exception) -> SystemExit:
    print(f"{message}: {exc}", file=sys.stderr)
    return SystemExit(1)


def main(argv: Sequence[str] | None = None) -> None:
    args = build_parser().parse_args(argv)
    overrides = {key: value for key, value in vars(args).items() if key != "config"}
    try:
        config = load_config(args.config, overrides)
    except ConfigError as exc:
        raise _fail("Invalid configuration", exc) from exc

    logging.basicConfig(level=getattr(logging, config.log_level, logging.INFO), format="%(levelname)s %(name)s: %(message)s")

    try:
        span = parse_range(config.range)
    except ParseError as exc:
        raise _fail("Invalid range", exc) from exc

    try:
        templates = load_templates(config.query_file)
    except TemplateLoadError as exc:
        raise _fail("Failed to load queries", exc) from exc

    client = PrometheusClient(
        config.prom_url,
        auth_token=config.auth_token,
        query_timeout=config.query_timeout,
        check_status=config.check_status,
    )
    try:
        instances = client.label_values(config.label)
    except QueryBenchError as exc:
        client.close()
        raise _fail("Error fetching label values", exc) from exc

    if not instances:
        LOGGER.warning("label %s has no values; rounds will issue no queries", config.label)
    if not templates:
        LOGGER.warning("%s contains no query templates", config.query_file)

    scheduler = Scheduler(
        instances=instances,
        templates=templates,
        span=span,
        step=config.step,
        workers=config.workers,
        sleep_between=config.sleep.total_seconds(),
        execute=make_executor(client),
        ticker=IntervalTicker(config.interval.total_seconds()),
        meter=ByteMeter(),
    )
    try:
        scheduler.run(config.rounds)
    except KeyboardInterrupt:
        LOGGER.info("shutting down (keyboard interrupt)")
    finally:
        client.close()


def run(argv: Iterable[str] | None = None) -> None:
    main(list(argv) if argv else None)
