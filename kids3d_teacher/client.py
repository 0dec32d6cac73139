"""Async client for the gateway's generate endpoint."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_REPLY = "I'm here for you!"


class ChatClientError(RuntimeError):
    """Gateway unreachable or answered with an error envelope."""


class ChatClient:
    """Tiny wrapper around POST /api/generate."""

    def __init__(self, base_url: str, timeout: float = 30.0,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def generate(self, prompt: str, temperature: Optional[float] = None,
                       max_tokens: Optional[int] = None) -> str:
        """Send a prompt and return the reply text.

        Raises:
            ChatClientError: On transport failure, non-2xx status or ``ok: false``
        """
        payload: Dict[str, Any] = {"prompt": prompt}
        if temperature is not None:
            payload["temperature"] = temperature
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        try:
            async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout,
                                         transport=self._transport) as client:
                r = await client.post("/api/generate", json=payload)
        except httpx.HTTPError as e:
            raise ChatClientError(f"Backend unreachable: {e}") from e

        if not r.is_success:
            raise ChatClientError(f"Backend error: {r.status_code}")
        try:
            data = r.json()
        except ValueError as e:
            raise ChatClientError(f"Backend sent an undecodable body: {e}") from e
        if not isinstance(data, dict) or data.get("ok") is False:
            raise ChatClientError(f"Backend error: {data}")

        reply = data.get("reply")
        if not isinstance(reply, str) or not reply.strip():
            return DEFAULT_REPLY
        return reply
