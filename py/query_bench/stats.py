"""Per-round counters shared by the worker threads."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Callable, Tuple

import psutil


def snapshot_bytes() -> Tuple[int, int]:
    counters = psutil.net_io_counters()
    if counters is None:
        return 0, 0
    return counters.bytes_sent, counters.bytes_recv


@dataclass(frozen=True)
class RoundReport:
    number: int
    workers: int
    attempts: int
    failures: int
    elapsed: float
    bytes_sent: int = 0
    bytes_received: int = 0

    @property
    def successes(self) -> int:
        return self.attempts - self.failures


class RoundStats:
    """Lock-protected attempt/failure counters for one round."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._attempts = 0
        self._failures = 0

    def add_success(self) -> None:
        with self._lock:
            self._attempts += 1

    def add_failure(self) -> None:
        with self._lock:
            self._attempts += 1
            self._failures += 1

    def snapshot(self) -> Tuple[int, int]:
        with self._lock:
            return self._attempts, self._failures


class ByteMeter:
    """Measures NIC traffic between ``start()`` and ``stop()``.

    Counts are host-wide, so other traffic on the machine is included.
    """

    def __init__(self, sampler: Callable[[], Tuple[int, int]] = snapshot_bytes) -> None:
        self._sampler = sampler
        self._start: Tuple[int, int] | None = None

    def start(self) -> None:
        self._start = self._sampler()

    def stop(self) -> Tuple[int, int]:
        if self._start is None:
            return 0, 0
        sent0, recv0 = self._start
        sent1, recv1 = self._sampler()
        self._start = None
        return max(sent1 - sent0, 0), max(recv1 - recv0, 0)
