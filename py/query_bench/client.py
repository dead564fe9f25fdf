"""Prometheus 互換 API へのリクエストをまとめたクライアント.

起動時に一度だけ呼ぶラベル値の列挙 (`label_values`) と、ワーカーが
何度も呼ぶ範囲クエリ (`query_range`) の二つだけを提供する。
結果の中身は使わないので、エンベロープの形だけを確認して捨てる。
"""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Any
from urllib.parse import quote

import requests

from .errors import APIError, DecodeError, HTTPStatusError, NetworkError

LOGGER = logging.getLogger(__name__)

LABEL_VALUES_TIMEOUT = 10.0
USER_AGENT = "query-bench/0.1"


class PrometheusClient:
    """Thin wrapper over ``requests`` with one session per calling thread."""

    def __init__(
        self,
        base_url: str,
        *,
        auth_token: str = "",
        query_timeout: float | None = None,
        check_status: bool = False,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth_token = auth_token
        self._query_timeout = query_timeout
        self._check_status = check_status
        self._local = threading.local()

    def _session(self) -> requests.Session:
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.headers["User-Agent"] = USER_AGENT
            if self._auth_token:
                session.headers["Authorization"] = f"Bearer {self._auth_token}"
            self._local.session = session
        return session

    def _get(self, path: str, *, params: dict[str, str] | None, timeout: float | None) -> requests.Response:
        url = f"{self._base_url}{path}"
        try:
            return self._session().get(url, params=params, timeout=timeout)
        except requests.Timeout as exc:
            raise NetworkError(f"request to {url} timed out after {timeout}s") from exc
        except requests.RequestException as exc:
            raise NetworkError(f"HTTP request failed: {exc}") from exc

    def label_values(self, label: str) -> list[str]:
        """ラベルの値一覧を取得する。順序も重複もそのまま返す。"""

        resp = self._get(
            f"/api/v1/label/{quote(label, safe='')}/values",
            params=None,
            timeout=LABEL_VALUES_TIMEOUT,
        )
        envelope = _decode_envelope(resp)
        data = envelope.get("data")
        if data is None:
            data = []
        if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
            raise DecodeError("label values data must be a list of strings", status=resp.status_code, body=resp.text)
        status = envelope.get("status")
        if status != "success":
            raise APIError(status, str(envelope.get("error", "failed to fetch label values")))
        LOGGER.debug("label %s has %d values", label, len(data))
        return data

    def query_range(self, query: str, *, start: float, end: float, step: timedelta) -> None:
        """範囲クエリを一回発行する。成功なら何も返さず、失敗なら例外。

        start/end は epoch 秒 (小数切り捨て)、step も秒単位に切り捨てて送る。
        """

        params = {
            "query": query,
            "start": str(int(start)),
            "end": str(int(end)),
            "step": str(int(step.total_seconds())),
        }
        resp = self._get("/api/v1/query_range", params=params, timeout=self._query_timeout)
        if resp.status_code != 200:
            raise HTTPStatusError(resp.status_code, resp.text)

        envelope = _decode_envelope(resp)
        data = envelope.get("data")
        if data is not None:
            if not isinstance(data, dict):
                raise DecodeError("query data must be an object", status=resp.status_code, body=resp.text)
            result_type = data.get("resultType")
            if result_type is not None and not isinstance(result_type, str):
                raise DecodeError("resultType must be a string", status=resp.status_code, body=resp.text)
        if self._check_status and envelope.get("status") != "success":
            raise APIError(envelope.get("status"), str(envelope.get("error", "")))

    def close(self) -> None:
        session = getattr(self._local, "session", None)
        if session is not None:
            session.close()
            self._local.session = None


def _decode_envelope(resp: requests.Response) -> dict[str, Any]:
    try:
        envelope = resp.json()
    except ValueError as exc:
        raise DecodeError(f"JSON decode error: {exc}", status=resp.status_code, body=resp.text) from exc
    if envelope is None:
        return {}
    if not isinstance(envelope, dict):
        raise DecodeError("response is not a JSON object", status=resp.status_code, body=resp.text)
    status = envelope.get("status")
    if status is not None and not isinstance(status, str):
        raise DecodeError("status must be a string", status=resp.status_code, body=resp.text)
    return envelope
