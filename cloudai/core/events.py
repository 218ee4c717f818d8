"""Relay payloads: inbound StreamRequest, parsed upstream events, outbound wire events. All are Pydantic models."""

from __future__ import annotations

import json
from enum import Enum
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class Sophistication(str, Enum):
    """Answer depth requested by the UI. Carried with the request, not interpreted by the relay."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very-high"


class StreamRequest(BaseModel):
    """One validated exchange request. Built once by the validator, never mutated."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    prompt: str = Field(min_length=1)
    model: str = Field(min_length=1)
    temperature: float = Field(ge=0.0, le=2.0)
    sophistication: Sophistication = Sophistication.VERY_HIGH


# ----- Parsed upstream events (one per completed line) -----


class Delta(BaseModel):
    """Incremental fragment of generated text."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["delta"] = "delta"
    text: str


class Sentinel(BaseModel):
    """Provider signalled end of stream."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["sentinel"] = "sentinel"


class RawFallback(BaseModel):
    """Line that is not a provider event; forwarded as-is so content is not lost."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["raw"] = "raw"
    text: str


ParsedEvent = Union[Delta, Sentinel, RawFallback]


# ----- Outbound wire events -----


def _data_line(payload: dict) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


class MessageEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["message"] = "message"
    chunk: str

    @property
    def terminal(self) -> bool:
        return False

    def to_sse(self) -> str:
        return _data_line({"chunk": self.chunk})


class DoneEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["done"] = "done"

    @property
    def terminal(self) -> bool:
        return True

    def to_sse(self) -> str:
        return "event: done\n" + _data_line({"done": True})


class ErrorEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["error"] = "error"
    message: str
    details: Optional[str] = Field(default=None, description="Upstream response body, if any")

    @property
    def terminal(self) -> bool:
        return True

    def to_sse(self) -> str:
        payload: dict = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return _data_line(payload)


OutboundEvent = Union[MessageEvent, DoneEvent, ErrorEvent]


class ConsumerState(str, Enum):
    """Client-side exchange state. DONE, ERROR and CANCELLED are terminal."""

    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    DONE = "done"
    ERROR = "error"
    CANCELLED = "cancelled"

    @property
    def terminated(self) -> bool:
        return self in (ConsumerState.DONE, ConsumerState.ERROR, ConsumerState.CANCELLED)
