"""Models for fcmpush."""

from fcmpush.models.message import (
    MAX_TTL,
    PRIORITY_HIGH,
    PRIORITY_NORMAL,
    ConditionTarget,
    DeviceListTarget,
    NotificationPayload,
    OutboundMessage,
    TopicTarget,
)
from fcmpush.models.status import RETRYABLE_ERROR_CODES, RETRYABLE_ERRORS, DispatchStatus, parse_duration

__all__ = [
    "MAX_TTL",
    "PRIORITY_HIGH",
    "PRIORITY_NORMAL",
    "RETRYABLE_ERRORS",
    "RETRYABLE_ERROR_CODES",
    "ConditionTarget",
    "DeviceListTarget",
    "DispatchStatus",
    "NotificationPayload",
    "OutboundMessage",
    "TopicTarget",
    "parse_duration",
]
