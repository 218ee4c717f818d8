"""Client side of the relay: consume one exchange's SSE stream with explicit cancel.

StreamConsumer is an owned handle for exactly one exchange. It never
reconnects. State changes go to on_state, accumulated text to on_update
(always the full text so far, so a UI can replace its in-progress entry).
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable, Optional

import httpx

from cloudai.core.events import (
    ConsumerState,
    DoneEvent,
    ErrorEvent,
    MessageEvent,
    OutboundEvent,
)
from cloudai.relay.framer import LineFramer

logger = logging.getLogger(__name__)

STREAM_PATH = "/api/cloud-ai-stream"
ASSISTANT_LABEL = "CloudAi"

StateCallback = Callable[[ConsumerState], None]
UpdateCallback = Callable[[str], None]


class FrameDecoder:
    """Relay SSE bytes -> OutboundEvent. A frame is dispatched on the blank line that ends it."""

    def __init__(self) -> None:
        self._framer = LineFramer()
        self._event_name: Optional[str] = None
        self._data: list[str] = []

    def feed(self, chunk: bytes) -> list[OutboundEvent]:
        events = []
        for line in self._framer.feed(chunk):
            event = self._line(line)
            if event is not None:
                events.append(event)
        return events

    def _line(self, line: str) -> Optional[OutboundEvent]:
        if not line:
            return self._dispatch()
        if line.startswith(":"):
            return None
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            self._event_name = value
        elif field == "data":
            self._data.append(value)
        return None

    def _dispatch(self) -> Optional[OutboundEvent]:
        name, data = self._event_name, "\n".join(self._data)
        self._event_name, self._data = None, []
        if name == "done":
            return DoneEvent()
        if not data:
            return None
        try:
            payload = json.loads(data)
        except ValueError:
            logger.debug("ignoring non-JSON frame")
            return None
        if not isinstance(payload, dict):
            return None
        if "error" in payload:
            details = payload.get("details")
            return ErrorEvent(
                message=str(payload["error"]),
                details=details if isinstance(details, str) else None,
            )
        if payload.get("done"):
            return DoneEvent()
        chunk = payload.get("chunk")
        if isinstance(chunk, str) and chunk:
            return MessageEvent(chunk=chunk)
        return None


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return f"HTTP {resp.status_code}"


class StreamConsumer:
    """Idle -> Connecting -> Streaming -> Done | Error | Cancelled. One instance per exchange.

    cancel() must be called from the event loop thread. It is idempotent and
    does not wait for the server: the state flips to CANCELLED immediately
    and the transport is closed as the running task unwinds.
    """

    def __init__(
        self,
        base_url: str,
        *,
        path: str = STREAM_PATH,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_update: Optional[UpdateCallback] = None,
        on_state: Optional[StateCallback] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._path = path
        self._timeout = timeout
        self._transport = transport
        self._on_update = on_update
        self._on_state = on_state
        self._state = ConsumerState.IDLE
        self._text = ""
        self._task: Optional[asyncio.Task] = None
        self.error: Optional[str] = None

    @property
    def state(self) -> ConsumerState:
        return self._state

    @property
    def text(self) -> str:
        return self._text

    def _set_state(self, state: ConsumerState) -> None:
        if state is self._state:
            return
        self._state = state
        logger.debug("consumer state changed", extra={"state": state.value})
        if self._on_state:
            self._on_state(state)

    def _finish(self, state: ConsumerState, error: Optional[str] = None) -> bool:
        if self._state.terminated:
            return False
        self.error = error
        self._set_state(state)
        return True

    def cancel(self) -> bool:
        """Stop the exchange. Returns False when it had already terminated."""
        if not self._finish(ConsumerState.CANCELLED):
            return False
        task = self._task
        # From inside our own callbacks the read loop notices the state and exits itself.
        if task is not None and task is not asyncio.current_task():
            task.cancel()
        return True

    async def run(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        sophistication: Optional[str] = None,
    ) -> ConsumerState:
        """Send one prompt and consume the stream until a terminal state. Returns that state."""
        if self._state is not ConsumerState.IDLE:
            raise RuntimeError("StreamConsumer handles a single exchange; create a new one")
        body: dict[str, Any] = {"prompt": prompt}
        if model:
            body["model"] = model
        if temperature is not None:
            body["temperature"] = temperature
        if sophistication:
            body["sophistication"] = sophistication

        self._task = asyncio.current_task()
        self._set_state(ConsumerState.CONNECTING)
        try:
            await self._consume(body)
        except asyncio.CancelledError:
            if self._state is not ConsumerState.CANCELLED:
                raise
            if self._task is not None and hasattr(self._task, "uncancel"):
                self._task.uncancel()
        except httpx.HTTPError as e:
            self._finish(ConsumerState.ERROR, str(e) or type(e).__name__)
        finally:
            self._task = None
        return self._state

    async def _consume(self, body: dict[str, Any]) -> None:
        decoder = FrameDecoder()
        async with httpx.AsyncClient(
            base_url=self._base_url, timeout=self._timeout, transport=self._transport
        ) as client:
            async with client.stream(
                "POST", self._path, json=body, headers={"Accept": "text/event-stream"}
            ) as resp:
                if not resp.is_success:
                    await resp.aread()
                    self._finish(ConsumerState.ERROR, _error_message(resp))
                    return
                async for chunk in resp.aiter_bytes():
                    if self._state is ConsumerState.CONNECTING:
                        self._set_state(ConsumerState.STREAMING)
                    for event in decoder.feed(chunk):
                        if self._state.terminated:
                            break
                        self._handle(event)
                    if self._state.terminated:
                        return
        self._finish(ConsumerState.ERROR, "stream ended without a terminal event")

    def _handle(self, event: OutboundEvent) -> None:
        if isinstance(event, MessageEvent):
            self._text += event.chunk
            if self._on_update:
                self._on_update(self._text)
        elif isinstance(event, DoneEvent):
            self._finish(ConsumerState.DONE)
        elif isinstance(event, ErrorEvent):
            self._finish(ConsumerState.ERROR, event.message)


class ChatSession:
    """Displayed chat history. Each send() starts a fresh consumer with an empty accumulator."""

    def __init__(
        self,
        base_url: str,
        *,
        label: str = ASSISTANT_LABEL,
        timeout: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        on_change: Optional[Callable[[list[str]], None]] = None,
    ) -> None:
        self._base_url = base_url
        self._label = label
        self._timeout = timeout
        self._transport = transport
        self._on_change = on_change
        self.entries: list[str] = []
        self.current: Optional[StreamConsumer] = None

    def _set_entry(self, index: int, text: str) -> None:
        self.entries[index] = text
        if self._on_change:
            self._on_change(self.entries)

    async def send(self, prompt: str, **options: Any) -> ConsumerState:
        prompt = prompt.strip()
        if not prompt:
            raise ValueError("prompt is empty")
        if self.current is not None and not self.current.state.terminated:
            raise RuntimeError("an exchange is already in progress")
        self.entries.extend([f"You: {prompt}", f"{self._label}: "])
        index = len(self.entries) - 1
        consumer = StreamConsumer(
            self._base_url,
            timeout=self._timeout,
            transport=self._transport,
            on_update=lambda text: self._set_entry(index, f"{self._label}: {text}"),
        )
        self.current = consumer
        state = await consumer.run(prompt, **options)
        if state is ConsumerState.ERROR:
            reason = f": {consumer.error}" if consumer.error else ""
            self._set_entry(index, f"{self._label}: (stream error{reason})")
        return state

    def cancel(self) -> bool:
        if self.current is None:
            return False
        return self.current.cancel()
