"""Relay error taxonomy. Exchange-level errors are user-visible; ParseError never leaves the framer."""

from __future__ import annotations

from typing import Optional


class RelayError(Exception):
    """Base for every error raised by the relay."""


class ValidationError(RelayError):
    """Bad, missing or policy-violating request. Raised before any upstream connection."""


class ConfigError(RelayError):
    """Relay is not configured to reach the provider (e.g. no API key)."""


class UpstreamError(RelayError):
    """Provider answered with a non-success status or the transport failed."""

    def __init__(self, status: Optional[int], body: str = "", message: Optional[str] = None) -> None:
        self.status = status
        self.body = body
        if message is None:
            message = f"Upstream error ({status})" if status is not None else f"Upstream error: {body}"
        super().__init__(message)


class IncompleteStreamError(UpstreamError):
    """Provider closed the stream without sending the end-of-stream sentinel."""

    def __init__(self) -> None:
        super().__init__(None, message="Upstream closed the stream before completion")


class ExchangeTimeoutError(UpstreamError):
    """Exchange ran longer than the configured bound."""

    def __init__(self, seconds: float) -> None:
        super().__init__(None, message=f"Exchange exceeded {seconds:g}s")
        self.seconds = seconds


class ParseError(RelayError):
    """A single upstream line is not a provider event. Recovered by forwarding the raw line."""
