"""Translate an OutboundMessage into firebase-admin messaging objects."""

from __future__ import annotations

import dataclasses
import json
import logging
import time
from collections.abc import Mapping
from typing import Any

from firebase_admin import messaging
from pydantic import BaseModel

from fcmpush.exceptions import MalformedPayloadError, MessageBuildError, MissingTargetError
from fcmpush.models.message import (
    PRIORITY_HIGH,
    ConditionTarget,
    DeviceListTarget,
    NotificationPayload,
    OutboundMessage,
    TopicTarget,
)

logger = logging.getLogger(__name__)

STRING_FIELDS = (
    "title",
    "body",
    "item_type",
    "item_id",
    "deeplink",
    "image_url",
    "sound",
    "actor_nickname",
)
BADGE_COUNT_FIELD = "badge_count"
JSON_FIELDS = ("actions", "tracking_payload")

TOPIC_PREFIX = "/topics/"


def _json_default(obj: Any) -> Any:
    if isinstance(obj, BaseModel):
        return obj.model_dump(mode="json")
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    msg = f"Object of type {type(obj).__name__} is not JSON serializable"
    raise TypeError(msg)


def _to_json_text(field: str, value: Any) -> str:
    try:
        return json.dumps(
            value,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
            default=_json_default,
        )
    except (TypeError, ValueError) as e:
        logger.warning(
            "Dropping unserializable payload field",
            extra={"field": field, "error_type": type(e).__name__},
        )
        return ""


def _to_string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(value)


def _to_badge_count(value: Any) -> str:
    if isinstance(value, bool):
        return str(int(value))
    if isinstance(value, int):
        return str(value)
    try:
        if isinstance(value, float):
            return str(int(value))
        try:
            # Exact for integer strings of any size
            return str(int(value))
        except ValueError:
            return str(int(float(value)))
    except (TypeError, ValueError, OverflowError):
        logger.warning(
            "Non-numeric badge_count, defaulting to 0",
            extra={"field": BADGE_COUNT_FIELD, "value_type": type(value).__name__},
        )
        return "0"


def normalize_data(data: Any) -> dict[str, str]:
    """
    Flatten a loosely typed data payload into FCM's string-to-string map.

    Only the known keys survive. Missing keys become "" ("0" for
    badge_count). A field that cannot be coerced degrades to its default
    without affecting its siblings.

    Args:
        data: The message data payload, or None

    Returns:
        Map with exactly the known keys, or {} when data is None

    Raises:
        MalformedPayloadError: If data is present but not a mapping
    """
    if data is None:
        return {}

    if not isinstance(data, Mapping):
        msg = "Data payload must be a key/value mapping"
        raise MalformedPayloadError(msg, context={"payload_type": type(data).__name__})

    normalized: dict[str, str] = {}
    for field in STRING_FIELDS:
        normalized[field] = _to_string(data.get(field))

    normalized[BADGE_COUNT_FIELD] = (
        _to_badge_count(data[BADGE_COUNT_FIELD]) if BADGE_COUNT_FIELD in data else "0"
    )

    for field in JSON_FIELDS:
        normalized[field] = _to_json_text(field, data[field]) if field in data else ""

    return normalized


def _loc_args(value: str) -> list[str] | None:
    """Legacy loc args are a JSON array in a string; a bare string is one arg."""
    if not value:
        return None
    try:
        parsed = json.loads(value)
    except ValueError:
        return [value]
    if isinstance(parsed, list):
        return [_to_string(item) for item in parsed]
    return [value]


def as_aps(
    notification: NotificationPayload | None,
    *,
    content_available: bool = False,
    mutable_content: bool = False,
) -> messaging.Aps:
    """
    Build the APNs ``aps`` dictionary.

    A badge that does not parse as an integer is left out rather than
    failing the send.
    """
    alert = None
    sound = None
    badge = None
    if notification is not None:
        alert = messaging.ApsAlert(title=notification.title or None, body=notification.body or None)
        sound = notification.sound or None
        badge = notification.badge_number()
        if badge is None and notification.badge:
            logger.warning("Ignoring non-numeric badge", extra={"badge": notification.badge})

    return messaging.Aps(
        alert=alert,
        badge=badge,
        sound=sound,
        content_available=content_available or None,
        mutable_content=mutable_content or None,
    )


def _android_notification(notification: NotificationPayload) -> messaging.AndroidNotification | None:
    fields = {
        "icon": notification.icon or None,
        "color": notification.color or None,
        "sound": notification.sound or None,
        "tag": notification.tag or None,
        "click_action": notification.click_action or None,
        "body_loc_key": notification.body_loc_key or None,
        "body_loc_args": _loc_args(notification.body_loc_args),
        "title_loc_key": notification.title_loc_key or None,
        "title_loc_args": _loc_args(notification.title_loc_args),
        "channel_id": notification.android_channel_id or None,
    }
    if not any(value is not None for value in fields.values()):
        return None
    return messaging.AndroidNotification(**fields)


def _android_config(message: OutboundMessage) -> messaging.AndroidConfig | None:
    android_notification = None
    if message.notification is not None:
        android_notification = _android_notification(message.notification)

    if not (
        message.priority
        or message.collapse_key
        or message.time_to_live
        or message.restricted_package_name
        or android_notification
    ):
        return None

    return messaging.AndroidConfig(
        collapse_key=message.collapse_key or None,
        priority=message.priority,
        ttl=message.time_to_live or None,
        restricted_package_name=message.restricted_package_name or None,
        notification=android_notification,
    )


def _apns_config(message: OutboundMessage) -> messaging.APNSConfig | None:
    if message.notification is None and not (message.content_available or message.mutable_content):
        return None

    headers: dict[str, str] = {}
    if message.priority:
        headers["apns-priority"] = "10" if message.priority == PRIORITY_HIGH else "5"
    if message.collapse_key:
        headers["apns-collapse-id"] = message.collapse_key
    if message.time_to_live:
        # APNs wants an absolute UNIX expiry rather than a TTL
        headers["apns-expiration"] = str(int(time.time()) + message.time_to_live)

    aps = as_aps(
        message.notification,
        content_available=message.content_available,
        mutable_content=message.mutable_content,
    )
    return messaging.APNSConfig(
        headers=headers or None,
        payload=messaging.APNSPayload(aps=aps),
    )


def add_image_url(message: messaging.MulticastMessage | messaging.Message, image_url: str):
    """
    Attach an image to every platform block of the message.

    APNs needs mutable_content so the notification service extension can
    download the attachment.
    """
    if message.notification is None:
        message.notification = messaging.Notification()
    message.notification.image = image_url

    if message.apns is None:
        message.apns = messaging.APNSConfig(payload=messaging.APNSPayload(aps=messaging.Aps()))
    if message.apns.payload is None:
        message.apns.payload = messaging.APNSPayload(aps=messaging.Aps())
    message.apns.payload.aps.mutable_content = True
    message.apns.fcm_options = messaging.APNSFCMOptions(image=image_url)

    if message.android is None:
        message.android = messaging.AndroidConfig()
    if message.android.notification is None:
        message.android.notification = messaging.AndroidNotification()
    message.android.notification.image = image_url

    return message


def _apply_common(
    sdk_message: messaging.MulticastMessage | messaging.Message,
    message: OutboundMessage,
) -> None:
    if message.notification is not None:
        sdk_message.notification = messaging.Notification(
            title=message.notification.title or None,
            body=message.notification.body or None,
        )
    sdk_message.android = _android_config(message)
    sdk_message.apns = _apns_config(message)

    if message.notification is not None and message.notification.image:
        add_image_url(sdk_message, message.notification.image)


def build_multicast_message(message: OutboundMessage) -> messaging.MulticastMessage:
    """
    Build the multicast request for a device-list message.

    Raises:
        MalformedPayloadError: If the data payload is not a mapping
        MissingTargetError: If the message has no device tokens
    """
    data = normalize_data(message.data)

    if not isinstance(message.target, DeviceListTarget) or not message.target.tokens:
        msg = "Multicast message needs at least one device token"
        raise MissingTargetError(msg, context={"target": message.target_kind})

    try:
        multicast = messaging.MulticastMessage(tokens=list(message.target.tokens), data=data)
    except ValueError as e:
        # firebase-admin caps a multicast at 500 tokens
        raise MessageBuildError(str(e), context={"token_count": len(message.target.tokens)}) from e
    _apply_common(multicast, message)
    return multicast


def build_single_message(message: OutboundMessage) -> messaging.Message:
    """
    Build a single request for a token, topic or condition target.

    Raises:
        MalformedPayloadError: If the data payload is not a mapping
        MissingTargetError: If the message has no token/topic/condition target
    """
    data = normalize_data(message.data)

    target = message.target
    if isinstance(target, TopicTarget) and target.to:
        if target.to.startswith(TOPIC_PREFIX):
            single = messaging.Message(data=data, topic=target.to[len(TOPIC_PREFIX):])
        else:
            single = messaging.Message(data=data, token=target.to)
    elif isinstance(target, ConditionTarget) and target.condition:
        single = messaging.Message(data=data, condition=target.condition)
    else:
        msg = "Message needs a token, topic or condition target"
        raise MissingTargetError(msg, context={"target": message.target_kind})

    _apply_common(single, message)
    return single
