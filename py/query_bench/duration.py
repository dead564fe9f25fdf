"""範囲指定文字列を timedelta に変換する。

基本の文法は ``1h30m`` や ``250ms`` のような単位付き数値の並び。
``d`` で終わる値だけは独自拡張で、数値部分を時間として読み 24 倍する
(暦日や夏時間は考慮しない)。
"""

from __future__ import annotations

import re
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from .errors import QueryBenchError

_NANOS_PER_UNIT = {
    "ns": Decimal(1),
    "us": Decimal(1_000),
    "µs": Decimal(1_000),  # U+00B5
    "μs": Decimal(1_000),  # U+03BC
    "ms": Decimal(1_000_000),
    "s": Decimal(1_000_000_000),
    "m": Decimal(60 * 1_000_000_000),
    "h": Decimal(3600 * 1_000_000_000),
}

_COMPONENT = re.compile(r"([0-9]*(?:\.[0-9]*)?)([^0-9.]*)")

# int64 nanoseconds, the largest span the upstream grammar can represent
_MAX_NANOS = Decimal(2**63 - 1)
_MAX_SPAN = timedelta(microseconds=(2**63 - 1) // 1000)


class ParseError(QueryBenchError, ValueError):
    """範囲指定が解釈できないときに投げる例外。"""

    def __init__(self, text: str, reason: str) -> None:
        super().__init__(f"invalid duration {text!r}: {reason}")
        self.text = text


def parse_duration(text: str) -> timedelta:
    """``[-+]<number><unit>...`` 形式の文字列を timedelta にする。"""

    remaining = text
    negative = False
    if remaining[:1] in ("-", "+"):
        negative = remaining[0] == "-"
        remaining = remaining[1:]

    if remaining == "0":
        return timedelta(0)
    if not remaining:
        raise ParseError(text, "empty duration")

    total = Decimal(0)
    pos = 0
    while pos < len(remaining):
        match = _COMPONENT.match(remaining, pos)
        number, unit = match.group(1), match.group(2)
        if number.strip(".") == "":
            raise ParseError(text, "expected a number")
        if not unit:
            raise ParseError(text, "missing unit")
        scale = _NANOS_PER_UNIT.get(unit)
        if scale is None:
            raise ParseError(text, f"unknown unit {unit!r}")
        try:
            total += Decimal(number) * scale
        except InvalidOperation as exc:
            raise ParseError(text, "expected a number") from exc
        pos = match.end()

    if total > _MAX_NANOS:
        raise ParseError(text, "duration out of range")
    micros = int(total / 1000)
    return timedelta(microseconds=-micros if negative else micros)


def parse_range(text: str) -> timedelta:
    """クエリ範囲を解釈する。``Nd`` は ``Nh`` の 24 倍として扱う。"""

    if text.endswith("d"):
        span = parse_duration(text[:-1] + "h") * 24
        if abs(span) > _MAX_SPAN:
            raise ParseError(text, "duration out of range")
        return span
    return parse_duration(text)
