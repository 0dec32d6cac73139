"""Abstract base class for LLM providers."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from kids3d_teacher.errors import UpstreamError, UpstreamUnreachable
from kids3d_teacher.schema import extract_reply

logger = logging.getLogger(__name__)


class BaseProvider(ABC):
    """One external LLM HTTP API. Subclasses describe the request; this class runs it."""

    name: str = ""
    label: str = ""
    upstream_error: str = "API error"

    def __init__(self, api_key: str, model: str, base_url: str):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")

    @property
    @abstractmethod
    def endpoint(self) -> str:
        """Full URL the request is posted to."""

    @abstractmethod
    def headers(self) -> Dict[str, str]:
        pass

    @abstractmethod
    def build_body(self, prompt: str, temperature: Optional[float] = None,
                   max_tokens: Optional[int] = None) -> Dict[str, Any]:
        """Provider-specific request body for a single user prompt."""

    async def generate(self, client: httpx.AsyncClient, prompt: str,
                       temperature: Optional[float] = None,
                       max_tokens: Optional[int] = None) -> str:
        """Send the prompt and return the normalized reply text.

        Args:
            client: Shared async HTTP client (carries the request timeout)
            prompt: Full prompt text
            temperature: Optional sampling temperature
            max_tokens: Optional reply length cap

        Returns:
            Reply text extracted from whatever shape the provider answered with

        Raises:
            UpstreamError: Provider answered with a non-success status
            UpstreamUnreachable: Network failure or undecodable body
        """
        body = self.build_body(prompt, temperature=temperature, max_tokens=max_tokens)
        logger.info("Calling %s model=%s", self.label, self.model)

        try:
            r = await client.post(self.endpoint, json=body, headers=self.headers())
        except httpx.HTTPError as e:
            logger.error("Error calling %s: %s", self.label, e)
            raise UpstreamUnreachable(f"Server error calling {self.label}",
                                      details=str(e) or type(e).__name__) from e

        if not r.is_success:
            error_body = self._error_body(r)
            logger.error("%s API error %s: %s", self.label, r.status_code, error_body)
            raise UpstreamError(f"{self.label} {self.upstream_error}",
                                status=r.status_code, body=error_body)

        try:
            data = r.json()
        except ValueError as e:
            logger.error("%s returned an undecodable body: %s", self.label, e)
            raise UpstreamUnreachable(f"Server error calling {self.label}", details=str(e)) from e

        reply = extract_reply(data)
        logger.debug("%s reply len=%d", self.label, len(reply))
        return reply

    @staticmethod
    def _error_body(r: httpx.Response) -> Any:
        try:
            return r.json()
        except ValueError:
            return r.text
