"""Abstract base for text-generation providers.

The plan synthesizer only needs "prompt in, text out". Each provider
wraps one HTTP API and raises GenerationError for every failure mode
(transport, HTTP status, unexpected payload) so callers have a single
exception to catch.
"""
from __future__ import annotations

import abc
import asyncio
import logging
import os

import aiohttp

from ..errors import GenerationError

logger = logging.getLogger(__name__)


class TextGenerator(abc.ABC):
    """Abstract text-generation interface."""

    def __init__(
        self,
        model: str,
        base_url: str,
        timeout: float = 60.0,
        api_key_env: str | None = None,
    ) -> None:
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.api_key_env = api_key_env

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Short provider name (e.g. 'ollama')."""

    def api_key(self) -> str | None:
        if not self.api_key_env:
            return None
        return os.environ.get(self.api_key_env) or None

    def is_available(self) -> bool:
        """Whether the provider has what it needs to make a request."""
        return True

    @abc.abstractmethod
    async def generate(self, prompt: str) -> str:
        """Return generated text for ``prompt``. Raises GenerationError."""

    async def _post_json(
        self,
        path: str,
        payload: dict,
        headers: dict[str, str] | None = None,
    ) -> dict:
        url = f"{self.base_url}{path}"
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, json=payload, headers=headers) as resp:
                    if resp.status >= 400:
                        body = await resp.text()
                        raise GenerationError(
                            self.name, f"HTTP {resp.status}: {body[:200]}",
                        )
                    data = await resp.json(content_type=None)
        except GenerationError:
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as exc:
            raise GenerationError(self.name, str(exc) or type(exc).__name__) from exc
        if not isinstance(data, dict):
            raise GenerationError(self.name, "response is not a JSON object")
        logger.debug("%s POST %s ok", self.name, url)
        return data
