"""Exception hierarchy shared by the query-bench modules."""

from __future__ import annotations


def _shorten(text: str, limit: int = 200) -> str:
    return text if len(text) <= limit else f"{text[:limit - 3]}..."


class QueryBenchError(Exception):
    """Base class for every error raised by query-bench."""


class NetworkError(QueryBenchError):
    """The request could not be sent or timed out."""


class HTTPStatusError(QueryBenchError):
    """The API answered with a status other than 200."""

    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"HTTP {status}: {_shorten(body.strip())}")
        self.status = status
        self.body = body


class DecodeError(QueryBenchError):
    """The response body is not the expected JSON envelope."""

    def __init__(self, reason: str, *, status: int | None = None, body: str = "") -> None:
        message = reason
        if status is not None:
            message = f"{message} (HTTP {status}: {_shorten(body.strip())})"
        super().__init__(message)
        self.status = status
        self.body = body


class APIError(QueryBenchError):
    """The envelope decoded fine but its status is not ``success``."""

    def __init__(self, status: object, detail: str = "") -> None:
        message = f"API returned status {status!r}"
        if detail:
            message = f"{message}: {_shorten(detail)}"
        super().__init__(message)
        self.status = status
