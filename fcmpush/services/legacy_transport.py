"""Client for the legacy FCM HTTP API (server key auth)."""

from __future__ import annotations

import logging

import httpx

from fcmpush.exceptions import TransportError
from fcmpush.models.message import OutboundMessage
from fcmpush.models.status import DispatchStatus
from fcmpush.services.payload import normalize_data
from fcmpush.services.response import status_from_legacy
from fcmpush.utils.error_handling import log_errors

logger = logging.getLogger(__name__)

FCM_LEGACY_URL = "https://fcm.googleapis.com/fcm/send"
RETRY_AFTER_HEADER = "Retry-After"


class LegacyHttpTransport:
    """Posts the legacy JSON request body to an injected endpoint."""

    def __init__(
        self,
        api_key: str,
        *,
        endpoint: str = FCM_LEGACY_URL,
        timeout_seconds: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize the legacy transport.

        Args:
            api_key: FCM server key
            endpoint: URL to post to (tests point this at a mock server)
            timeout_seconds: Timeout for the HTTP request
            client: Optional pre-built client; one is created per send otherwise
        """
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout_seconds
        self._client = client

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"key={self.api_key}",
            "Content-Type": "application/json",
        }

    @log_errors("legacy_send")
    async def send(self, message: OutboundMessage) -> DispatchStatus:
        """
        Send a single request and normalize the response.

        Raises:
            MalformedPayloadError: If the data payload is not a mapping
            TransportError: On network errors or an unparseable 200 body
        """
        # Same validation as the SDK path; the raw payload is what gets posted
        normalize_data(message.data)
        body = message.to_wire()

        logger.debug(
            "Sending legacy request",
            extra={"target": message.target_kind, "dry_run": message.dry_run},
        )

        try:
            if self._client is not None:
                response = await self._client.post(self.endpoint, headers=self._headers(), json=body)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.endpoint, headers=self._headers(), json=body)
        except httpx.HTTPError as e:
            msg = f"Legacy FCM request failed: {type(e).__name__}"
            raise TransportError(msg, context={"endpoint": self.endpoint}) from e

        logger.info(
            "Legacy request sent",
            extra={"status_code": response.status_code},
        )

        return status_from_legacy(
            response.status_code,
            response.text,
            retry_after=response.headers.get(RETRY_AFTER_HEADER, ""),
        )
