"""Sequence message build, credential resolution, send and normalization."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from firebase_admin import messaging

from fcmpush.exceptions import FcmPushError, TransportError
from fcmpush.models.message import DeviceListTarget, OutboundMessage
from fcmpush.models.status import DispatchStatus
from fcmpush.services import credentials
from fcmpush.services.payload import build_multicast_message, build_single_message
from fcmpush.services.response import status_from_batch, status_from_message_id
from fcmpush.utils.dispatch_context import generate_dispatch_id, reset_dispatch_id, set_dispatch_id
from fcmpush.utils.redaction import redact_sensitive_data

if TYPE_CHECKING:
    from fcmpush.config import Settings
    from fcmpush.services.credentials import CredentialSource, MessagingClient

logger = logging.getLogger(__name__)

Resolver = Callable[["CredentialSource", "str | None"], "MessagingClient"]


@dataclass
class _Attempt:
    source: str
    status: DispatchStatus | None = None
    error: Exception | None = None

    def describe(self) -> str:
        if self.error is not None:
            return f"{self.source}: {type(self.error).__name__}: {redact_sensitive_data(str(self.error))}"
        if self.status is not None:
            return (
                f"{self.source}: not ok (status={self.status.status_code}, "
                f"success={self.status.success}, failure={self.status.failure})"
            )
        return f"{self.source}: no result"


class PushDispatcher:
    """
    Sends OutboundMessages through FCM.

    On the normal path the single configured credential source is used and
    every error propagates. When the message is a dry run, the fallback
    sources are tried in order and the first ok result wins. Errors from
    earlier attempts are logged and attached to the final result as
    ``fallback_errors`` instead of being raised; only the last source's
    outcome reaches the caller. Use dry runs for diagnostics, not as a
    production delivery path.
    """

    def __init__(
        self,
        source: CredentialSource,
        *,
        project_id: str | None = None,
        fallback_sources: Sequence[CredentialSource] | None = None,
        resolver: Resolver | None = None,
    ) -> None:
        self.source = source
        self.project_id = project_id
        self.fallback_sources = list(fallback_sources) if fallback_sources else [source]
        self._resolver = resolver or credentials.resolve

    @classmethod
    def from_settings(cls, settings: Settings) -> PushDispatcher:
        """Build a dispatcher from configuration."""
        return cls(
            credentials.build_source(settings),
            project_id=settings.gcp_project_id,
            fallback_sources=credentials.default_fallback_sources(settings),
        )

    async def send(self, message: OutboundMessage) -> DispatchStatus:
        """
        Send a message and return its normalized status.

        Raises:
            MessageBuildError: Malformed payload or missing target; nothing is sent
            CredentialResolutionError: The credential could not be loaded
            TransportError: The provider call failed
        """
        token = set_dispatch_id(generate_dispatch_id())
        try:
            sdk_message = self._build(message)

            if message.dry_run:
                logger.info("Dry run mode enabled", extra={"sources": len(self.fallback_sources)})
                return await self._send_with_fallback(message, sdk_message)

            return await self._send_once(self.source, message, sdk_message)
        finally:
            reset_dispatch_id(token)

    def _build(self, message: OutboundMessage) -> messaging.MulticastMessage | messaging.Message:
        if isinstance(message.target, DeviceListTarget):
            return build_multicast_message(message)
        return build_single_message(message)

    async def _send_with_fallback(
        self,
        message: OutboundMessage,
        sdk_message: messaging.MulticastMessage | messaging.Message,
    ) -> DispatchStatus:
        attempts: list[_Attempt] = []

        for index, source in enumerate(self.fallback_sources):
            is_last = index == len(self.fallback_sources) - 1
            attempt = _Attempt(source=source.name)
            try:
                attempt.status = await self._send_once(source, message, sdk_message)
            except FcmPushError as e:
                attempt.error = e
                if is_last:
                    e.context["fallback_errors"] = [a.describe() for a in attempts]
                    raise

            if attempt.status is not None and (attempt.status.ok or is_last):
                if attempt.status.ok:
                    logger.info("Dry run succeeded", extra={"source": source.name})
                attempt.status.fallback_errors = [a.describe() for a in attempts]
                return attempt.status

            logger.info(
                "Dry run attempt failed, trying next source",
                extra={"source": source.name, "attempt": attempt.describe()},
            )
            attempts.append(attempt)

        # Only reachable with an empty source list
        return DispatchStatus(fallback_errors=[a.describe() for a in attempts])

    async def _send_once(
        self,
        source: CredentialSource,
        message: OutboundMessage,
        sdk_message: messaging.MulticastMessage | messaging.Message,
    ) -> DispatchStatus:
        client = self._resolver(source, self.project_id)
        try:
            if isinstance(sdk_message, messaging.MulticastMessage):
                batch = await self._call(
                    client.send_each_for_multicast, sdk_message, message.dry_run, source.name
                )
                return status_from_batch(batch)

            message_id = await self._call(client.send, sdk_message, message.dry_run, source.name)
            return status_from_message_id(message_id)
        finally:
            client.close()

    async def _call(self, func, sdk_message, dry_run: bool, source_name: str):
        try:
            return await asyncio.to_thread(func, sdk_message, dry_run)
        except Exception as e:
            logger.error(
                "Error sending message",
                extra={
                    "source": source_name,
                    "error_type": type(e).__name__,
                    "error": redact_sensitive_data(str(e)),
                },
            )
            msg = f"Error sending message: {e}"
            raise TransportError(msg, context={"source": source_name}) from e
