"""Outbound SSE emitter and the per-exchange relay loop."""

from __future__ import annotations

import logging
import time
import uuid
from typing import Iterable, Iterator, Optional

import httpx

from cloudai.core.errors import (
    ConfigError,
    ExchangeTimeoutError,
    IncompleteStreamError,
    UpstreamError,
)
from cloudai.core.events import (
    Delta,
    DoneEvent,
    ErrorEvent,
    MessageEvent,
    OutboundEvent,
    ParsedEvent,
    RawFallback,
    Sentinel,
    StreamRequest,
)
from cloudai.relay.connector import UpstreamConnector
from cloudai.relay.framer import parse_stream

logger = logging.getLogger(__name__)

CONNECTED_COMMENT = ": connected\n\n"


class EventEmitter:
    """Serializes outbound events. Latches after the first Done or Error; later writes return None."""

    def __init__(self) -> None:
        self._closed = False
        self.messages = 0
        self.terminal: Optional[OutboundEvent] = None

    @property
    def closed(self) -> bool:
        return self._closed

    def _emit(self, event: OutboundEvent) -> Optional[str]:
        if self._closed:
            return None
        if event.terminal:
            self._closed = True
            self.terminal = event
        else:
            self.messages += 1
        return event.to_sse()

    def message(self, chunk: str) -> Optional[str]:
        return self._emit(MessageEvent(chunk=chunk))

    def done(self) -> Optional[str]:
        return self._emit(DoneEvent())

    def error(self, message: str, details: Optional[str] = None) -> Optional[str]:
        return self._emit(ErrorEvent(message=message, details=details))

    def dispatch(self, event: ParsedEvent) -> Optional[str]:
        if isinstance(event, (Delta, RawFallback)):
            return self.message(event.text)
        if isinstance(event, Sentinel):
            return self.done()
        raise TypeError(f"unknown parsed event: {event!r}")


def _bounded(chunks: Iterable[bytes], max_seconds: Optional[float]) -> Iterator[bytes]:
    """Pass chunks through, failing once the exchange has run past max_seconds."""
    if not max_seconds:
        yield from chunks
        return
    deadline = time.monotonic() + max_seconds
    for chunk in chunks:
        if time.monotonic() > deadline:
            raise ExchangeTimeoutError(max_seconds)
        yield chunk


def relay(
    request: StreamRequest,
    connector: UpstreamConnector,
    *,
    max_seconds: Optional[float] = None,
) -> Iterator[str]:
    """Run one exchange and yield outbound SSE frames.

    Exactly one terminal frame (done or error) is yielded, always last.
    Closing this generator early (client went away) closes the upstream
    response as well.
    """
    exchange_id = uuid.uuid4().hex[:8]
    log_extra = {"exchange_id": exchange_id, "model": request.model}
    logger.info(
        "exchange started",
        extra={
            **log_extra,
            "prompt_length": len(request.prompt),
            "sophistication": request.sophistication.value,
        },
    )
    emitter = EventEmitter()
    started = time.monotonic()
    yield CONNECTED_COMMENT
    try:
        with connector.open(request) as chunks:
            for event in parse_stream(_bounded(chunks, max_seconds)):
                frame = emitter.dispatch(event)
                if frame:
                    yield frame
                if emitter.closed:
                    break
        if not emitter.closed:
            raise IncompleteStreamError()
    except UpstreamError as e:
        logger.warning("exchange failed: %s", e, extra={**log_extra, "status": e.status})
        frame = emitter.error(str(e), details=e.body if e.status is not None else None)
        if frame:
            yield frame
    except (ConfigError, httpx.HTTPError) as e:
        logger.warning("exchange failed: %s", e, extra=log_extra)
        frame = emitter.error(str(e) or type(e).__name__)
        if frame:
            yield frame
    except Exception:
        logger.exception("relay failed unexpectedly", extra=log_extra)
        frame = emitter.error("Internal relay error")
        if frame:
            yield frame
    finally:
        logger.info(
            "exchange finished",
            extra={
                **log_extra,
                "messages": emitter.messages,
                "outcome": emitter.terminal.kind if emitter.terminal else "aborted",
                "duration": round(time.monotonic() - started, 3),
            },
        )
