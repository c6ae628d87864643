"""OpenRouter provider (OpenAI-compatible chat completions).

Auth: bearer key read from OPENROUTER_API_KEY, or the variable named
by ``api_key_env``.
"""
from __future__ import annotations

import logging

from ..errors import GenerationError
from .base import TextGenerator

logger = logging.getLogger(__name__)

DEFAULT_OPENROUTER_URL = "https://openrouter.ai/api/v1"


class OpenRouterGenerator(TextGenerator):

    def __init__(
        self,
        model: str,
        base_url: str | None = None,
        timeout: float = 60.0,
        api_key_env: str | None = None,
    ) -> None:
        super().__init__(
            model,
            base_url or DEFAULT_OPENROUTER_URL,
            timeout,
            api_key_env or "OPENROUTER_API_KEY",
        )

    @property
    def name(self) -> str:
        return "openrouter"

    def is_available(self) -> bool:
        return self.api_key() is not None

    async def generate(self, prompt: str) -> str:
        key = self.api_key()
        if key is None:
            raise GenerationError(self.name, f"{self.api_key_env} is not set")
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
        }
        headers = {"Authorization": f"Bearer {key}"}
        data = await self._post_json("/chat/completions", payload, headers)
        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise GenerationError(self.name, "unexpected completion payload")
        if not isinstance(text, str):
            raise GenerationError(self.name, "completion content is not text")
        return text
