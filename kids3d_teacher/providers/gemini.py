from __future__ import annotations

from typing import Any, Dict, Optional
from urllib.parse import quote

from kids3d_teacher.providers.base import BaseProvider

# Gemini Developer API (AI Studio) REST base, already including the API version
DEFAULT_GEMINI_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"


class GeminiProvider(BaseProvider):
    """Gemini generateContent endpoint with header-based API key."""

    name = "gemini"
    label = "Gemini"
    upstream_error = "API error"

    def __init__(self, api_key: str, model: str = DEFAULT_GEMINI_MODEL,
                 base_url: str = DEFAULT_GEMINI_BASE):
        super().__init__(api_key, model, base_url)

    @property
    def endpoint(self) -> str:
        # POST {base}/models/{model}:generateContent
        return f"{self.base_url}/models/{quote(self.model, safe='')}:generateContent"

    def headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-goog-api-key": self.api_key,
        }

    def build_body(self, prompt: str, temperature: Optional[float] = None,
                   max_tokens: Optional[int] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "contents": [
                {"parts": [{"text": prompt}], "role": "user"}
            ]
        }
        generation_config: Dict[str, Any] = {}
        if temperature is not None:
            generation_config["temperature"] = temperature
        if max_tokens is not None:
            generation_config["maxOutputTokens"] = max_tokens
        if generation_config:
            body["generationConfig"] = generation_config
        return body
