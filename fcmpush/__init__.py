"""Firebase Cloud Messaging client: message builder, credential fallback and status normalization."""

from fcmpush.exceptions import (
    CredentialResolutionError,
    FcmPushError,
    MalformedPayloadError,
    MessageBuildError,
    MissingTargetError,
    NoCredentialForEnvironmentError,
    TargetConflictError,
    TransportError,
)
from fcmpush.models import DispatchStatus, NotificationPayload, OutboundMessage
from fcmpush.services.credentials import (
    EmbeddedKeySource,
    EnvironmentKeySource,
    IdentityPoolKeySource,
    resolve,
)
from fcmpush.services.dispatcher import PushDispatcher
from fcmpush.services.legacy_transport import LegacyHttpTransport

__all__ = [
    "CredentialResolutionError",
    "DispatchStatus",
    "EmbeddedKeySource",
    "EnvironmentKeySource",
    "FcmPushError",
    "IdentityPoolKeySource",
    "LegacyHttpTransport",
    "MalformedPayloadError",
    "MessageBuildError",
    "MissingTargetError",
    "NoCredentialForEnvironmentError",
    "NotificationPayload",
    "OutboundMessage",
    "PushDispatcher",
    "TargetConflictError",
    "TransportError",
    "resolve",
]
