"""Tests for the httpx upload transport (mocked HTTP)."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from healthsync.sync.batch import HealthDataBatch, HealthDataPoint
from healthsync.sync.errors import TransportError
from healthsync.sync.transport import HttpUploadTransport
from healthsync.tests.conftest import TEST_OWNER_ID, make_heart_rates


@pytest.fixture
def batch() -> HealthDataBatch:
    return HealthDataBatch(
        owner_id=TEST_OWNER_ID,
        data_points=[HealthDataPoint.from_metric(m) for m in make_heart_rates(3)],
    )


def _transport(handler, **kwargs) -> HttpUploadTransport:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpUploadTransport("https://api.example.com/", http_client=client, **kwargs)


class TestHttpUploadTransport:
    @pytest.mark.asyncio
    async def test_posts_batch_with_auth(self, batch: HealthDataBatch) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={"success": True, "uploadId": "u-42", "timestamp": "2026-02-23T12:00:00Z"},
            )

        transport = _transport(handler, api_token="secret", device_id="iphone-15")
        response = await transport.upload(batch, TEST_OWNER_ID)

        assert response.success is True
        assert response.upload_id == "u-42"

        request = seen[0]
        assert request.method == "POST"
        assert str(request.url) == "https://api.example.com/api/v1/health/batch"
        assert request.headers["Authorization"] == "Bearer secret"
        body = json.loads(request.content)
        assert body["userId"] == TEST_OWNER_ID
        assert body["deviceId"] == "iphone-15"
        assert body["checksum"] == batch.checksum
        assert len(body["batch"]["dataPoints"]) == 3

    @pytest.mark.asyncio
    async def test_no_auth_header_without_token(self, batch: HealthDataBatch) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"success": True})

        await _transport(handler).upload(batch, TEST_OWNER_ID)
        assert "Authorization" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_rejection_is_returned_not_raised(self, batch: HealthDataBatch) -> None:
        transport = _transport(
            lambda request: httpx.Response(200, json={"success": False, "message": "duplicate"})
        )
        response = await transport.upload(batch, TEST_OWNER_ID)
        assert response.success is False
        assert response.message == "duplicate"

    @pytest.mark.asyncio
    async def test_http_error_status(self, batch: HealthDataBatch) -> None:
        transport = _transport(lambda request: httpx.Response(503, text="unavailable"))
        with pytest.raises(TransportError) as exc_info:
            await transport.upload(batch, TEST_OWNER_ID)
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_network_error(self, batch: HealthDataBatch) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportError, match="Network error"):
            await _transport(handler).upload(batch, TEST_OWNER_ID)

    @pytest.mark.asyncio
    async def test_non_json_response(self, batch: HealthDataBatch) -> None:
        transport = _transport(lambda request: httpx.Response(200, text="<html>ok</html>"))
        with pytest.raises(TransportError, match="not JSON"):
            await transport.upload(batch, TEST_OWNER_ID)

    @pytest.mark.asyncio
    async def test_unexpected_shape(self, batch: HealthDataBatch) -> None:
        transport = _transport(lambda request: httpx.Response(200, json={"status": "ok"}))
        with pytest.raises(TransportError, match="Unexpected response shape"):
            await transport.upload(batch, TEST_OWNER_ID)

    @pytest.mark.asyncio
    async def test_injected_client_not_closed(self) -> None:
        mock_client = MagicMock()
        mock_client.aclose = AsyncMock()
        transport = HttpUploadTransport("https://api.example.com", http_client=mock_client)
        await transport.aclose()
        mock_client.aclose.assert_not_awaited()
