#!/usr/bin/env python3
"""
Terminal chat through the relay: prints the reply as it streams.

Usage:
  cloudai-chat "Explain TCP slow start"
  cloudai-chat --url http://localhost:3001 --temperature 0.7 "..."

Ctrl+C cancels the exchange. Exit code: 0 done, 1 error, 130 cancelled.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from cloudai.client.consumer import StreamConsumer
from cloudai.config import get_config
from cloudai.core.events import ConsumerState, Sophistication
from cloudai.core.logging_config import setup_logging

logger = logging.getLogger(__name__)

EXIT_CODES = {
    ConsumerState.DONE: 0,
    ConsumerState.ERROR: 1,
    ConsumerState.CANCELLED: 130,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cloudai-chat", description="Stream a CloudAi reply")
    parser.add_argument("prompt", help="Question to send")
    parser.add_argument("--url", default=None, help="Relay base URL (default: CLOUDAI_URL or config)")
    parser.add_argument("--model", default=None)
    parser.add_argument("--temperature", type=float, default=None)
    parser.add_argument(
        "--sophistication",
        choices=[s.value for s in Sophistication],
        default=None,
    )
    parser.add_argument("--log-level", default="WARNING")
    return parser


async def stream_to_terminal(consumer: StreamConsumer, args: argparse.Namespace) -> ConsumerState:
    loop = asyncio.get_running_loop()
    handler_installed = False
    try:
        loop.add_signal_handler(signal.SIGINT, consumer.cancel)
        handler_installed = True
    except (NotImplementedError, RuntimeError):
        logger.debug("SIGINT handler not supported here; Ctrl+C will abort without cancel")
    try:
        return await consumer.run(
            args.prompt,
            model=args.model,
            temperature=args.temperature,
            sophistication=args.sophistication,
        )
    finally:
        if handler_installed:
            loop.remove_signal_handler(signal.SIGINT)


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(level=args.log_level, use_json=False)
    config = get_config()
    printed = 0

    def on_update(text: str) -> None:
        nonlocal printed
        sys.stdout.write(text[printed:])
        sys.stdout.flush()
        printed = len(text)

    consumer = StreamConsumer(
        args.url or config.client.base_url,
        timeout=config.client.timeout,
        on_update=on_update,
    )
    state = asyncio.run(stream_to_terminal(consumer, args))
    sys.stdout.write("\n")
    if state is ConsumerState.ERROR:
        print(f"error: {consumer.error}", file=sys.stderr)
    elif state is ConsumerState.CANCELLED:
        print("cancelled", file=sys.stderr)
    return EXIT_CODES.get(state, 1)


if __name__ == "__main__":
    sys.exit(main())
