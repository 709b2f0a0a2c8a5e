"""Envelope publisher: forwards stored envelopes to a bundling service.

The stored envelope bytes are posted unchanged; the bundler answers with a
JSON receipt.

Environment Variables (read through GatewaySettings):
    BLOBGATE_BUNDLER_URL: Base URL of the bundler (POST {url}/tx)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from blobgate.errors import BackendError

logger = logging.getLogger(__name__)

DEFAULT_BUNDLER_TIMEOUT_S = 30.0
ENVELOPE_MEDIA_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class PublishReceipt:
    """Bundler acknowledgement of a published envelope."""

    item_id: str
    status_code: int
    receipt: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.item_id, "status_code": self.status_code, "receipt": self.receipt}


class BundlerPublisher:
    """Posts envelope bytes to a bundler over HTTP."""

    def __init__(
        self,
        base_url: str,
        *,
        http_client: httpx.Client | None = None,
        timeout_s: float = DEFAULT_BUNDLER_TIMEOUT_S,
    ) -> None:
        """Initialize the publisher.

        Args:
            base_url: Bundler base URL.
            http_client: Optional httpx.Client for dependency injection (testing).
            timeout_s: Request timeout when the publisher creates its own client.
        """
        self._endpoint = f"{base_url.rstrip('/')}/tx"
        self._http_client = http_client or httpx.Client(timeout=timeout_s)

    def publish(self, item_id: str, envelope: bytes) -> PublishReceipt:
        """Post one envelope.

        Raises:
            BackendError: With sub_write="publish" on network errors or a
                non-2xx answer.
        """
        try:
            response = self._http_client.post(
                self._endpoint,
                content=envelope,
                headers={"Content-Type": ENVELOPE_MEDIA_TYPE, "Accept": "application/json"},
            )
        except httpx.HTTPError as e:
            raise BackendError(
                f"Bundler unreachable: {type(e).__name__}",
                sub_write="publish",
                item_id=item_id,
                cause=e,
            ) from e

        if not response.is_success:
            raise BackendError(
                f"Bundler rejected envelope with HTTP {response.status_code}",
                sub_write="publish",
                item_id=item_id,
            )

        receipt: dict[str, Any] = {}
        try:
            payload = response.json()
            if isinstance(payload, dict):
                receipt = payload
        except ValueError:
            logger.warning("Bundler returned a non-JSON receipt for %s", item_id)

        logger.info("Published envelope %s (HTTP %d)", item_id, response.status_code)
        return PublishReceipt(item_id=item_id, status_code=response.status_code, receipt=receipt)

    def close(self) -> None:
        self._http_client.close()
