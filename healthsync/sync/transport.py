"""Upload transport: delivers one batch to the remote health service.

Endpoint used:
    POST {api_base_url}/api/v1/health/batch — upload one batch

The transport bounds hung requests with the httpx timeout; the sync engine
imposes no deadline of its own.
"""

from __future__ import annotations

import logging
from typing import Protocol

import httpx
from pydantic import ValidationError

from healthsync.metrics import utc_now
from healthsync.models.sync import UploadRequest, UploadResponse
from healthsync.sync.batch import HealthDataBatch
from healthsync.sync.errors import TransportError

logger = logging.getLogger("healthsync.sync.transport")

_BATCH_PATH = "/api/v1/health/batch"


class UploadTransport(Protocol):
    """Delivers one batch and reports whether the service accepted it."""

    async def upload(self, batch: HealthDataBatch, owner_id: str) -> UploadResponse:
        """Upload ``batch`` on behalf of ``owner_id``.

        Raises:
            TransportError: If the request could not be completed.
        """
        ...


class HttpUploadTransport:
    """``UploadTransport`` over HTTPS using httpx."""

    def __init__(
        self,
        api_base_url: str,
        api_token: str = "",
        device_id: str = "",
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            api_base_url: Base URL of the health service.
            api_token:    Bearer token; omitted from requests when empty.
            device_id:    Identifier of this device, sent with every batch.
            timeout:      Per-request timeout in seconds.
            http_client:  Optional pre-configured httpx client (for testing).
        """
        self._base_url = api_base_url.rstrip("/")
        self._api_token = api_token
        self._device_id = device_id
        self._timeout = timeout
        self._http_client = http_client
        self._owns_client = http_client is None

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"
        return headers

    async def upload(self, batch: HealthDataBatch, owner_id: str) -> UploadResponse:
        body = UploadRequest(
            user_id=owner_id,
            device_id=self._device_id,
            timestamp=utc_now(),
            checksum=batch.checksum,
            batch=batch.to_dict(),
        )
        url = f"{self._base_url}{_BATCH_PATH}"

        try:
            response = await self._client().post(
                url,
                content=body.model_dump_json(by_alias=True),
                headers=self._headers(),
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.warning("Batch %s rejected with HTTP %d", batch.batch_id, status)
            raise TransportError(f"HTTP {status} from {url}", status_code=status, cause=exc) from exc
        except httpx.HTTPError as exc:
            logger.warning("Batch %s upload failed: %s", batch.batch_id, exc)
            raise TransportError(f"Network error: {exc}", cause=exc) from exc
        except ValueError as exc:
            raise TransportError(f"Response from {url} is not JSON", cause=exc) from exc

        try:
            result = UploadResponse.model_validate(data)
        except ValidationError as exc:
            raise TransportError(f"Unexpected response shape from {url}", cause=exc) from exc

        logger.debug(
            "Uploaded batch %s (%d points): success=%s",
            batch.batch_id, len(batch), result.success,
        )
        return result

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None
