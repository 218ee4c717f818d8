"""Upstream connector: one streaming Chat Completions POST per exchange. No retries."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator, Optional

import httpx

from cloudai.core.errors import ConfigError, UpstreamError
from cloudai.core.events import StreamRequest

if TYPE_CHECKING:
    from cloudai.config.loader import Config

logger = logging.getLogger(__name__)

MAX_ERROR_BODY = 2000


class UpstreamConnector:
    """OpenAI-compatible streaming endpoint. open() yields raw body chunks."""

    def __init__(
        self,
        api_url: str,
        api_key: str,
        *,
        system_prompt: str = "",
        connect_timeout: float = 10.0,
        read_timeout: float = 60.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._api_url = api_url
        self._api_key = api_key
        self._system_prompt = system_prompt
        self._timeout = httpx.Timeout(read_timeout, connect=connect_timeout)
        self._transport = transport

    @classmethod
    def from_config(cls, config: Config, transport: Optional[httpx.BaseTransport] = None) -> "UpstreamConnector":
        p = config.provider
        return cls(
            p.api_url,
            p.api_key,
            system_prompt=p.system_prompt,
            connect_timeout=p.connect_timeout,
            read_timeout=p.read_timeout,
            transport=transport,
        )

    def ensure_configured(self) -> None:
        if not self._api_key:
            raise ConfigError("No LLM API key configured.")

    def build_payload(self, request: StreamRequest) -> dict[str, Any]:
        messages = []
        if self._system_prompt:
            messages.append({"role": "system", "content": self._system_prompt})
        messages.append({"role": "user", "content": request.prompt})
        return {
            "model": request.model,
            "messages": messages,
            "temperature": request.temperature,
            "stream": True,
        }

    @contextmanager
    def open(self, request: StreamRequest) -> Iterator[Iterator[bytes]]:
        """Open the upstream stream; the response is closed when the block exits.

        Raises ConfigError without touching the network when no key is set,
        and UpstreamError for connection failures or a non-2xx status (the
        error body is read in full first).
        """
        self.ensure_configured()
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }
        payload = self.build_payload(request)
        logger.debug("opening upstream stream", extra={"endpoint": self._api_url, "model": request.model})
        with httpx.Client(timeout=self._timeout, transport=self._transport) as client:
            try:
                with client.stream("POST", self._api_url, json=payload, headers=headers) as resp:
                    logger.debug("upstream response", extra={"status": resp.status_code})
                    if not resp.is_success:
                        body = resp.read().decode("utf-8", errors="replace")
                        logger.warning(
                            "upstream rejected request",
                            extra={"status": resp.status_code, "body_length": len(body)},
                        )
                        raise UpstreamError(resp.status_code, body[:MAX_ERROR_BODY])
                    yield resp.iter_bytes()
            except httpx.TransportError as e:
                raise UpstreamError(None, str(e) or type(e).__name__) from e
