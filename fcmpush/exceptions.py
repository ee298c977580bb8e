"""
Custom exception classes with context for fcmpush.

All exceptions inherit from FcmPushError and support attaching
contextual information for better debugging and logging.
"""

from __future__ import annotations


class FcmPushError(Exception):
    """
    Base exception for fcmpush.

    Attributes:
        message: Human-readable error message
        context: Optional dictionary with additional context for logging/debugging
    """

    def __init__(self, message: str, context: dict[str, object] | None = None):
        """
        Initialize exception with message and optional context.

        Args:
            message: Human-readable error message
            context: Optional dictionary with contextual information
                    (operation name, credential source, error details, etc.)
        """
        super().__init__(message)
        self.context = context or {}


class MessageBuildError(FcmPushError):
    """
    The outbound message could not be turned into a transport request.

    Raised before any credential or transport work happens.
    """


class MalformedPayloadError(MessageBuildError):
    """
    Data payload is not a key/value mapping.

    Example:
        raise MalformedPayloadError(
            "Data payload must be a mapping",
            context={"payload_type": "list"}
        )
    """


class MissingTargetError(MessageBuildError):
    """Message has no token, topic, device list or condition target."""


class TargetConflictError(MessageBuildError):
    """
    A targeting setter conflicts with the target already set.

    Example:
        raise TargetConflictError(
            "Cannot append devices to a topic target",
            context={"current_target": "topic", "to": "/topics/news"}
        )
    """


class CredentialResolutionError(FcmPushError):
    """
    Credential could not be loaded or a messaging client could not be built.

    Raised for unreadable key files, missing environment variables,
    malformed credential JSON and firebase app initialization failures.
    Never retried.
    """


class NoCredentialForEnvironmentError(CredentialResolutionError):
    """
    No embedded credential exists for the configured environment.

    Example:
        raise NoCredentialForEnvironmentError(
            "No credential available for environment 'development'",
            context={"environment": "development", "known": ["production", "staging"]}
        )
    """


class TransportError(FcmPushError):
    """
    The provider call failed (network error, provider error, bad response body).

    Surfaced verbatim to the caller with the original exception as __cause__.
    """


class ConfigurationError(FcmPushError):
    """
    Configuration error.

    Example:
        raise ConfigurationError(
            "Unknown credential source",
            context={"credential_source": "vault"}
        )
    """


class RetryAfterParseError(FcmPushError, ValueError):
    """Retry-After hint is missing or not a valid duration."""
