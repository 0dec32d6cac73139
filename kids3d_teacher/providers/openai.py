from __future__ import annotations

from typing import Any, Dict, Optional

from kids3d_teacher.providers.base import BaseProvider

DEFAULT_OPENAI_BASE = "https://api.openai.com/v1"
DEFAULT_OPENAI_MODEL = "gpt-3.5-turbo"
DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 800


class OpenAIProvider(BaseProvider):
    """OpenAI chat completions with bearer auth. Used only when Gemini is not configured."""

    name = "openai"
    label = "OpenAI"
    upstream_error = "API returned an error"

    def __init__(self, api_key: str, model: str = DEFAULT_OPENAI_MODEL,
                 base_url: str = DEFAULT_OPENAI_BASE):
        super().__init__(api_key, model, base_url)

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/chat/completions"

    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

    def build_body(self, prompt: str, temperature: Optional[float] = None,
                   max_tokens: Optional[int] = None) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": DEFAULT_TEMPERATURE if temperature is None else temperature,
            "max_tokens": DEFAULT_MAX_TOKENS if max_tokens is None else max_tokens,
        }
