"""
LLM gateway: validates a chat request, runs it against exactly one provider
and returns the normalized reply. Errors are raised as GatewayError subclasses.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from kids3d_teacher.config import Config
from kids3d_teacher.errors import InvalidInput, NotImplementedYet
from kids3d_teacher.models import ChatRequest, TtsRequest
from kids3d_teacher.providers import select_provider

logger = logging.getLogger(__name__)

MISSING_PROMPT = "Missing 'prompt' in request body."
MISSING_TEXT = "Missing 'text' in request body."


def parse_chat_request(body: Any) -> ChatRequest:
    """Validate a decoded JSON body. Anything but a non-empty string prompt is a 400."""
    if not isinstance(body, dict):
        raise InvalidInput(MISSING_PROMPT)
    try:
        request = ChatRequest.model_validate(body)
    except ValidationError as e:
        logger.info("Rejected chat request: %s", e.errors())
        raise InvalidInput(MISSING_PROMPT) from e
    if not request.resolved_prompt:
        raise InvalidInput(MISSING_PROMPT)
    return request


async def generate_reply(body: Any, config: Config, client: httpx.AsyncClient) -> str:
    """
    Async gateway runner.

    Order matters: input is validated before the provider is chosen, so a bad
    request is a 400 even when nothing is configured.
    """
    request = parse_chat_request(body)
    provider = select_provider(config)
    return await provider.generate(
        client,
        request.resolved_prompt,
        temperature=request.temperature,
        max_tokens=request.max_tokens,
    )


def synthesize_speech(body: Any, config: Config) -> None:
    """Server-side speech synthesis is declared but not wired to any provider."""
    text = None
    if isinstance(body, dict):
        text = TtsRequest.model_validate(body).text
    if not text:
        raise InvalidInput(MISSING_TEXT)

    if not config.tts_provider:
        raise NotImplementedYet(
            "TTS provider not configured on backend.",
            suggestion="Use client-side speech synthesis for MVP, or set TTS_PROVIDER.",
        )
    raise NotImplementedYet("TTS not implemented yet.")
