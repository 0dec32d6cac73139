"""Provider factory for the LLM gateway."""

from typing import Dict

from kids3d_teacher.config import Config
from kids3d_teacher.errors import Unconfigured
from kids3d_teacher.providers.base import BaseProvider
from kids3d_teacher.providers.gemini import GeminiProvider
from kids3d_teacher.providers.openai import OpenAIProvider

UNCONFIGURED_MESSAGE = "No LLM provider configured. Set GEMINI_API_KEY or OPENAI_API_KEY in .env"


def select_provider(config: Config) -> BaseProvider:
    """Pick exactly one provider for a request.

    Args:
        config: Current configuration snapshot

    Returns:
        Gemini when its key is set, otherwise OpenAI

    Raises:
        Unconfigured: If neither provider has a key
    """
    if config.gemini_configured:
        return GeminiProvider(
            api_key=config.gemini_api_key,
            model=config.gemini_model,
            base_url=config.gemini_api_url,
        )
    if config.openai_configured:
        return OpenAIProvider(
            api_key=config.openai_api_key,
            model=config.openai_model,
            base_url=config.openai_api_url,
        )
    raise Unconfigured(UNCONFIGURED_MESSAGE)


def configured_providers(config: Config) -> Dict[str, bool]:
    return {
        "gemini": config.gemini_configured,
        "openai": config.openai_configured,
    }


__all__ = [
    "BaseProvider",
    "GeminiProvider",
    "OpenAIProvider",
    "select_provider",
    "configured_providers",
    "UNCONFIGURED_MESSAGE",
]
