"""Outbound message model and its fluent builder setters."""

from __future__ import annotations

import logging
import re
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fcmpush.exceptions import TargetConflictError

logger = logging.getLogger(__name__)

# Four weeks, the longest FCM keeps an undelivered message
MAX_TTL = 2419200
PRIORITY_HIGH = "high"
PRIORITY_NORMAL = "normal"

# Plain signed ASCII integer, no spaces or underscores
_BADGE_PATTERN = re.compile(r"[+-]?[0-9]+")


class NotificationPayload(BaseModel):
    """Rich notification fields, as accepted by the legacy HTTP API."""

    title: str = ""
    body: str = ""
    icon: str = ""
    sound: str = ""
    badge: str = ""
    image: str = ""
    tag: str = ""
    color: str = ""
    click_action: str = ""
    body_loc_key: str = ""
    body_loc_args: str = ""
    title_loc_key: str = ""
    title_loc_args: str = ""
    android_channel_id: str = ""

    def badge_number(self) -> int | None:
        """Badge as an int, or None when it is not a plain integer."""
        if not _BADGE_PATTERN.fullmatch(self.badge):
            return None
        return int(self.badge)

    def to_wire(self) -> dict[str, str]:
        """Legacy JSON form; empty fields are omitted."""
        return {key: value for key, value in self.model_dump().items() if value}


class TopicTarget(BaseModel):
    """Single registration token or "/topics/<name>" destination."""

    kind: Literal["to"] = "to"
    to: str


class DeviceListTarget(BaseModel):
    """Multicast to an explicit list of registration tokens."""

    kind: Literal["devices"] = "devices"
    tokens: list[str] = Field(default_factory=list)


class ConditionTarget(BaseModel):
    """Logical expression over topics, e.g. "'a' in topics && 'b' in topics"."""

    kind: Literal["condition"] = "condition"
    condition: str


Target = Annotated[
    Union[TopicTarget, DeviceListTarget, ConditionTarget],
    Field(discriminator="kind"),
]


class OutboundMessage(BaseModel):
    """
    One outbound push message.

    Setters mutate the message in place and return it so calls can be chained:

        message = (
            OutboundMessage()
            .set_devices(["token0", "token1"], {"title": "Hi"})
            .set_priority("high")
            .set_time_to_live(3600)
        )

    Only one targeting mode is active at a time; each targeting setter
    replaces the previous target.

    Not safe for concurrent mutation; a finalized message may be read
    from several sends at once.
    """

    model_config = ConfigDict(validate_assignment=True)

    target: Target | None = None
    data: Any = None
    notification: NotificationPayload | None = None
    priority: Literal["high", "normal"] | None = None
    collapse_key: str = ""
    time_to_live: int = 0
    restricted_package_name: str = ""
    content_available: bool = False
    delay_while_idle: bool = False
    dry_run: bool = False
    mutable_content: bool = False

    @field_validator("time_to_live", mode="after")
    @classmethod
    def clamp_time_to_live(cls, v: int) -> int:
        """Clamp TTL to MAX_TTL."""
        return min(v, MAX_TTL)

    @property
    def to(self) -> str:
        if isinstance(self.target, TopicTarget):
            return self.target.to
        return ""

    @property
    def registration_ids(self) -> list[str]:
        if isinstance(self.target, DeviceListTarget):
            return self.target.tokens
        return []

    @property
    def condition(self) -> str:
        if isinstance(self.target, ConditionTarget):
            return self.target.condition
        return ""

    @property
    def target_kind(self) -> str | None:
        return self.target.kind if self.target is not None else None

    # Targeting

    def set_destination(self, to: str, data: Any) -> OutboundMessage:
        """Target a single token or topic and set the data payload."""
        self._replace_target(TopicTarget(to=to))
        self.data = data
        return self

    def set_topic_message(self, to: str, data: dict[str, str]) -> OutboundMessage:
        """Target a topic with a flat string payload."""
        return self.set_destination(to, data)

    def set_devices(self, tokens: list[str], data: Any) -> OutboundMessage:
        """Target a list of device tokens and set the data payload."""
        self.new_devices_list(tokens)
        self.data = data
        return self

    def new_devices_list(self, tokens: list[str]) -> OutboundMessage:
        """Replace the device list with a copy of the given tokens."""
        self._replace_target(DeviceListTarget(tokens=list(tokens)))
        return self

    def append_devices(self, tokens: list[str]) -> OutboundMessage:
        """
        Extend the device list, keeping prior entries and order.

        Raises:
            TargetConflictError: If a topic or condition target is already set
        """
        if self.target is None:
            self.target = DeviceListTarget()
        elif not isinstance(self.target, DeviceListTarget):
            msg = f"Cannot append devices to a {self.target.kind} target"
            raise TargetConflictError(msg, context={"current_target": self.target.kind})

        self.target.tokens.extend(tokens)
        return self

    def set_condition(self, condition: str) -> OutboundMessage:
        """Target devices subscribed to a topic condition expression."""
        self._replace_target(ConditionTarget(condition=condition))
        return self

    def _replace_target(self, target: TopicTarget | DeviceListTarget | ConditionTarget) -> None:
        if self.target is not None and self.target.kind != target.kind:
            logger.debug(
                "Replacing message target",
                extra={"previous_target": self.target.kind, "new_target": target.kind},
            )
        self.target = target

    # Payload

    def set_data(self, data: Any) -> OutboundMessage:
        """Replace the data payload without touching the target."""
        self.data = data
        return self

    def set_notification_payload(self, payload: NotificationPayload | None) -> OutboundMessage:
        self.notification = payload
        return self

    # Delivery options

    def set_priority(self, priority: str) -> OutboundMessage:
        """Anything other than "high" is stored as "normal"."""
        self.priority = PRIORITY_HIGH if priority == PRIORITY_HIGH else PRIORITY_NORMAL
        return self

    def set_collapse_key(self, collapse_key: str) -> OutboundMessage:
        """
        Group collapsible messages so only the last one is delivered when
        the device comes back online.
        """
        self.collapse_key = collapse_key
        return self

    def set_content_available(self, content_available: bool) -> OutboundMessage:
        """On iOS, wake an inactive app (APNs content-available)."""
        self.content_available = content_available
        return self

    def set_delay_while_idle(self, delay_while_idle: bool) -> OutboundMessage:
        self.delay_while_idle = delay_while_idle
        return self

    def set_time_to_live(self, ttl: int) -> OutboundMessage:
        """Seconds FCM keeps the message while the device is offline, at most MAX_TTL."""
        self.time_to_live = ttl
        return self

    def set_restricted_package_name(self, package_name: str) -> OutboundMessage:
        self.restricted_package_name = package_name
        return self

    def set_dry_run(self, dry_run: bool) -> OutboundMessage:
        """Validate the request without delivering it."""
        self.dry_run = dry_run
        return self

    def set_mutable_content(self, mutable_content: bool) -> OutboundMessage:
        """On iOS 10+, let a notification service extension modify the content."""
        self.mutable_content = mutable_content
        return self

    def to_wire(self) -> dict[str, Any]:
        """
        Legacy HTTP request body.

        Empty and false fields are omitted, matching what the legacy
        endpoint expects.
        """
        wire: dict[str, Any] = {}
        if self.data is not None:
            wire["data"] = self.data

        fields: list[tuple[str, Any]] = [
            ("to", self.to),
            ("registration_ids", list(self.registration_ids)),
            ("collapse_key", self.collapse_key),
            ("priority", self.priority),
            ("notification", self.notification.to_wire() if self.notification else None),
            ("content_available", self.content_available),
            ("delay_while_idle", self.delay_while_idle),
            ("time_to_live", self.time_to_live),
            ("restricted_package_name", self.restricted_package_name),
            ("dry_run", self.dry_run),
            ("condition", self.condition),
            ("mutable_content", self.mutable_content),
        ]
        for key, value in fields:
            if value:
                wire[key] = value
        return wire
