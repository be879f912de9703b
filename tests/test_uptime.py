"""
tests/test_uptime.py

Uptime probe classification, driven through httpx.MockTransport.

Coverage
--------
- 2xx and 4xx responses are UP (status < 500 rule)
- 5xx responses are DOWN
- Network exceptions are DOWN with the error populated and no status code
- The probe issues HEAD requests
- Latency parsing of legacy "123ms" values
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from maintenance_os.audit.uptime import check_uptime
from maintenance_os.schemas import UptimeResult


def _probe(handler) -> UptimeResult:
    async def go() -> UptimeResult:
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            return await check_uptime("https://site.example.com", timeout=1.0, client=client)

    return asyncio.run(go())


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


class TestClassification:
    def test_200_is_up(self) -> None:
        result = _probe(lambda request: httpx.Response(200))
        assert result.status == "UP"
        assert result.status_code == 200
        assert result.error is None

    def test_404_is_up(self) -> None:
        result = _probe(lambda request: httpx.Response(404))
        assert result.status == "UP"
        assert result.status_code == 404

    def test_499_is_up(self) -> None:
        assert _probe(lambda request: httpx.Response(499)).status == "UP"

    def test_503_is_down(self) -> None:
        result = _probe(lambda request: httpx.Response(503))
        assert result.status == "DOWN"
        assert result.status_code == 503

    def test_500_is_down(self) -> None:
        assert _probe(lambda request: httpx.Response(500)).status == "DOWN"

    def test_network_exception_is_down_with_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        result = _probe(handler)
        assert result.status == "DOWN"
        assert result.status_code is None
        assert "connection refused" in result.error

    def test_timeout_is_down(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        result = _probe(handler)
        assert result.status == "DOWN"
        assert result.error


# ---------------------------------------------------------------------------
# Request shape
# ---------------------------------------------------------------------------


class TestRequest:
    def test_uses_head_and_records_latency(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.method)
            return httpx.Response(204)

        result = _probe(handler)
        assert seen == ["HEAD"]
        assert isinstance(result.latency, int)
        assert result.latency >= 0

    def test_wire_shape_omits_absent_fields(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("dns failure", request=request)

        wire = _probe(handler).to_wire()
        assert wire["status"] == "DOWN"
        assert "statusCode" not in wire


# ---------------------------------------------------------------------------
# UptimeResult model
# ---------------------------------------------------------------------------


class TestUptimeResult:
    def test_parses_legacy_latency_string(self) -> None:
        result = UptimeResult.model_validate({"status": "UP", "statusCode": 200, "latency": "123ms"})
        assert result.latency == 123

    def test_rejects_unknown_status(self) -> None:
        with pytest.raises(ValueError):
            UptimeResult(status="MAYBE")
