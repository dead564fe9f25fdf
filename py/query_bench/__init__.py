"""Periodic range-query load generator for Prometheus-compatible APIs."""

from .client import PrometheusClient
from .config import BenchConfig, ConfigError, load_config
from .duration import ParseError, parse_duration, parse_range
from .errors import APIError, DecodeError, HTTPStatusError, NetworkError, QueryBenchError
from .main import main, run
from .scheduler import IntervalTicker, QueryWindow, Round, Scheduler, run_round, run_worker, substitute
from .stats import ByteMeter, RoundReport, RoundStats
from .templates import TemplateLoadError, load_templates

__all__ = [
    "PrometheusClient",
    "BenchConfig",
    "ConfigError",
    "load_config",
    "ParseError",
    "parse_duration",
    "parse_range",
    "QueryBenchError",
    "NetworkError",
    "HTTPStatusError",
    "DecodeError",
    "APIError",
    "main",
    "run",
    "IntervalTicker",
    "QueryWindow",
    "Round",
    "Scheduler",
    "run_round",
    "run_worker",
    "substitute",
    "ByteMeter",
    "RoundReport",
    "RoundStats",
    "TemplateLoadError",
    "load_templates",
]
