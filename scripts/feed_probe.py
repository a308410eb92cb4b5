#!/usr/bin/env python3
"""Live feed probe for a car image service.

Connects to the push channel, prints every feed entry as it arrives and,
optionally, uploads an image and/or submits a car number on the way.

Configuration comes from ``CARFEED_*`` environment variables (see
``FeedConfig.from_env``) and can be overridden on the command line.

Examples::

    python scripts/feed_probe.py --base-url http://192.168.1.108:8000
    python scripts/feed_probe.py --image car.jpg --car-number AB123CD --listen 10
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pycarfeed import (  # noqa: E402
    CarFeedClient,
    CarFeedConfigError,
    FeedConfig,
    FeedEntry,
    LocalFileCapture,
    Notification,
    NotificationLevel,
)


class _PrintNotifier:
    def notify(self, notification: Notification) -> None:
        marker = "!" if notification.level == NotificationLevel.ERROR else "*"
        print(f"[{marker}] {notification.title}: {notification.message}")


def _print_entry(config: FeedConfig, entry: FeedEntry) -> None:
    side = "me" if entry.origin == "self" else "remote"
    parts = [f"#{entry.sequence_key}", entry.timestamp.strftime("%H:%M:%S"), f"<{side}>"]
    if entry.text:
        parts.append(entry.text)
    if entry.car_identifier:
        parts.append(f"(Car: {entry.car_identifier})")
    if entry.image_ref:
        parts.append(config.image_url(entry.image_ref))
    print(" ".join(parts))


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--base-url", help="HTTP base URL of the service")
    parser.add_argument("--client-id", help="Device id used on the push channel")
    parser.add_argument("--image", type=Path, help="Image file to upload")
    parser.add_argument("--car-number", help="Car number to submit (truncated to 8 chars)")
    parser.add_argument("--listen", type=float, default=5.0, help="Seconds to keep listening (default: 5)")
    parser.add_argument("--local-echo", action="store_true", help="Append own entries after each Ack")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable DEBUG logging")
    return parser


async def _run(args: argparse.Namespace) -> int:
    overrides: dict[str, Any] = {}
    if args.base_url:
        overrides["base_url"] = args.base_url
    if args.client_id:
        overrides["client_id"] = args.client_id
    if args.local_echo:
        overrides["local_echo"] = True

    try:
        config = FeedConfig.from_env(**overrides)
    except CarFeedConfigError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2

    print(f"Server: {config.base_url}")
    async with CarFeedClient(config, notifier=_PrintNotifier()) as client:
        client.feed.subscribe(lambda entry: _print_entry(config, entry))
        handle = await client.connect()
        if handle is None:
            return 1

        failed = False
        if args.car_number:
            client.capture.stage_identifier(args.car_number)
        if args.image is not None:
            staged = await client.capture.acquire_image(LocalFileCapture(args.image))
            if staged is None or await client.capture.confirm_image_submit() is None:
                failed = True
        if args.car_number and await client.capture.confirm_identifier_submit() is None:
            failed = True

        await asyncio.sleep(max(args.listen, 0.0))
        print(f"{len(client.feed)} entries received")
        return 1 if failed else 0


def main() -> None:
    args = _build_parser().parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        sys.exit(asyncio.run(_run(args)))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
