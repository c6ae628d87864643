"""Ollama provider (local models over HTTP).

Uses the non-streaming ``/api/generate`` endpoint with ``format: json``
so the model is constrained to emit a JSON document.
"""
from __future__ import annotations

import logging

from ..errors import GenerationError
from .base import TextGenerator

logger = logging.getLogger(__name__)

DEFAULT_OLLAMA_URL = "http://localhost:11434"


class OllamaGenerator(TextGenerator):

    def __init__(
        self,
        model: str = "llama3.1",
        base_url: str | None = None,
        timeout: float = 60.0,
        json_mode: bool = True,
    ) -> None:
        super().__init__(model, base_url or DEFAULT_OLLAMA_URL, timeout)
        self.json_mode = json_mode

    @property
    def name(self) -> str:
        return "ollama"

    async def generate(self, prompt: str) -> str:
        payload: dict = {"model": self.model, "prompt": prompt, "stream": False}
        if self.json_mode:
            payload["format"] = "json"
        data = await self._post_json("/api/generate", payload)
        text = data.get("response")
        if not isinstance(text, str):
            raise GenerationError(self.name, "missing 'response' field")
        return text
