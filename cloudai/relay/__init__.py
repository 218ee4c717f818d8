"""Server side of the relay: validate, connect upstream, frame, emit."""

from cloudai.relay.connector import UpstreamConnector
from cloudai.relay.emitter import EventEmitter, relay
from cloudai.relay.framer import LineFramer, parse_stream
from cloudai.relay.validator import ContentPolicy, validate_request

__all__ = [
    "ContentPolicy",
    "EventEmitter",
    "LineFramer",
    "UpstreamConnector",
    "parse_stream",
    "relay",
    "validate_request",
]
