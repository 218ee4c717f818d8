"""Incremental SSE framing for the upstream Chat Completions stream.

Upstream bytes arrive in chunks whose boundaries the provider controls: a
chunk can end in the middle of a UTF-8 sequence, a line or a JSON token.
The stages here are plain generators so the result does not depend on
where those boundaries fall:

    bytes chunks --iter_lines--> complete lines --iter_events--> ParsedEvent

LineFramer owns the per-exchange decode buffer. The trailing fragment
after the last line break is kept until more bytes arrive and is never
parsed on its own.
"""

from __future__ import annotations

import codecs
import json
import logging
import re
from typing import Iterable, Iterator, Optional

from cloudai.core.errors import ParseError
from cloudai.core.events import Delta, ParsedEvent, RawFallback, Sentinel

logger = logging.getLogger(__name__)

SENTINEL = "[DONE]"

_LINE_BREAK = re.compile(r"\r?\n")
_DATA_PREFIX = re.compile(r"^data:\s*")


class LineFramer:
    """Bytes in, complete text lines out. One instance per exchange."""

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""

    @property
    def pending(self) -> str:
        """Unterminated tail seen so far."""
        return self._buffer

    def feed(self, chunk: bytes) -> list[str]:
        self._buffer += self._decoder.decode(chunk)
        *lines, self._buffer = _LINE_BREAK.split(self._buffer)
        return lines

    def close(self) -> str:
        """Flush the decoder and return the unterminated tail. The framer is empty afterwards."""
        tail = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        return tail


def iter_lines(chunks: Iterable[bytes], encoding: str = "utf-8") -> Iterator[str]:
    framer = LineFramer(encoding)
    for chunk in chunks:
        yield from framer.feed(chunk)
    tail = framer.close()
    if tail.strip():
        logger.debug("discarding unterminated trailing line", extra={"tail_length": len(tail)})


def _extract_delta(content: str) -> Optional[str]:
    """Delta text of one provider event, or None for a non-content event.

    Raises ParseError when content is not a JSON object at all.
    """
    try:
        payload = json.loads(content)
    except ValueError as e:
        raise ParseError(f"not JSON: {e}") from e
    if not isinstance(payload, dict):
        raise ParseError(f"expected an event object, got {type(payload).__name__}")
    if "error" in payload:
        logger.warning("provider sent an in-stream error event")
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    choice = choices[0]
    delta = choice.get("delta")
    text = delta.get("content") if isinstance(delta, dict) else None
    if not text:
        text = choice.get("text")
    if isinstance(text, str) and text:
        return text
    return None


def parse_line(line: str) -> Optional[ParsedEvent]:
    """Classify one complete upstream line. None means the line carries nothing to forward."""
    content = _DATA_PREFIX.sub("", line, count=1)
    if not content.strip():
        return None
    if content.strip() == SENTINEL:
        return Sentinel()
    try:
        text = _extract_delta(content)
    except ParseError as e:
        logger.debug("forwarding unparsed upstream line: %s", e)
        return RawFallback(text=content)
    if text is None:
        return None
    return Delta(text=text)


def iter_events(lines: Iterable[str]) -> Iterator[ParsedEvent]:
    """ParsedEvents in line order. Stops right after the sentinel; later lines are never read."""
    skipped = 0
    for line in lines:
        event = parse_line(line)
        if event is None:
            if line.strip():
                skipped += 1
            continue
        yield event
        if isinstance(event, Sentinel):
            break
    if skipped:
        logger.debug("skipped non-content upstream lines", extra={"skipped": skipped})


def parse_stream(chunks: Iterable[bytes], encoding: str = "utf-8") -> Iterator[ParsedEvent]:
    return iter_events(iter_lines(chunks, encoding))
