"""
Command line entry point for sending a diagnostic push.

Usage:
    python -m fcmpush send --token TOKEN --title Hi --body Hello --dry-run
    python -m fcmpush send --topic news --data '{"item_type": "Post"}'
    python -m fcmpush send --condition "'a' in topics" --legacy
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from fcmpush.config import get_settings
from fcmpush.exceptions import ConfigurationError, FcmPushError
from fcmpush.logging_config import configure_json_logging
from fcmpush.models.message import NotificationPayload, OutboundMessage
from fcmpush.services.dispatcher import PushDispatcher
from fcmpush.services.legacy_transport import LegacyHttpTransport
from fcmpush.utils.error_handling import format_exception
from fcmpush.version import get_version

EXIT_OK = 0
EXIT_NOT_OK = 1
EXIT_ERROR = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fcmpush", description=__doc__.splitlines()[1])
    parser.add_argument("--version", action="version", version=f"%(prog)s {get_version()}")
    parser.add_argument("--config", help="YAML config file (default: $FCMPUSH_CONFIG_PATH)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    send = subparsers.add_parser("send", help="Send one message")
    target = send.add_mutually_exclusive_group(required=True)
    target.add_argument("--token", action="append", help="Device token (repeatable)")
    target.add_argument("--topic", help="Topic name or /topics/<name>")
    target.add_argument("--condition", help="Topic condition expression")

    send.add_argument("--data", help="Data payload as a JSON object")
    send.add_argument("--title", default="")
    send.add_argument("--body", default="")
    send.add_argument("--image", default="")
    send.add_argument("--badge", default="")
    send.add_argument("--priority", default="normal")
    send.add_argument("--ttl", type=int, default=0, help="Time to live in seconds")
    send.add_argument("--collapse-key", default="")
    send.add_argument("--dry-run", action="store_true", help="Validate only; tries fallback credentials")
    send.add_argument("--legacy", action="store_true", help="Use the legacy HTTP API")
    return parser


def build_message(args: argparse.Namespace) -> OutboundMessage:
    """Translate parsed arguments into an OutboundMessage."""
    data = json.loads(args.data) if args.data else None

    message = OutboundMessage()
    if args.token:
        message.set_devices(args.token, data)
    elif args.topic:
        topic = args.topic if args.topic.startswith("/topics/") else f"/topics/{args.topic}"
        message.set_destination(topic, data)
    else:
        message.set_condition(args.condition).set_data(data)

    if args.title or args.body or args.image or args.badge:
        message.set_notification_payload(
            NotificationPayload(title=args.title, body=args.body, image=args.image, badge=args.badge)
        )

    return (
        message.set_priority(args.priority)
        .set_time_to_live(args.ttl)
        .set_collapse_key(args.collapse_key)
        .set_dry_run(args.dry_run)
    )


async def _send(args: argparse.Namespace) -> int:
    settings = get_settings(args.config)
    configure_json_logging(settings.log_level, use_json=settings.log_json)

    message = build_message(args)

    if args.legacy:
        if not settings.legacy_api_key:
            msg = "Legacy transport needs FCMPUSH_LEGACY_API_KEY"
            raise ConfigurationError(msg, context={"setting": "legacy_api_key"})
        transport = LegacyHttpTransport(
            settings.legacy_api_key,
            endpoint=settings.legacy_endpoint,
            timeout_seconds=settings.legacy_timeout_seconds,
        )
        status = await transport.send(message)
    else:
        status = await PushDispatcher.from_settings(settings).send(message)

    print(status.format_results())
    return EXIT_OK if status.ok else EXIT_NOT_OK


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        return asyncio.run(_send(args))
    except json.JSONDecodeError as e:
        print(json.dumps({"error": "InvalidData", "message": f"--data is not valid JSON: {e}"}), file=sys.stderr)
        return EXIT_ERROR
    except (FcmPushError, ValueError, OSError) as e:
        print(json.dumps(format_exception(e), default=str), file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
