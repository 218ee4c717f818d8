"""CloudAi streaming chat relay: provider SSE proxy and client stream consumer."""

__version__ = "0.1.0"
