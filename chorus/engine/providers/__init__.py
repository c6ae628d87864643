"""Text-generation providers used by the plan synthesizer."""
from __future__ import annotations

import logging

from ..yaml_config import GenerationConfig
from .base import TextGenerator
from .ollama_provider import OllamaGenerator
from .openrouter_provider import OpenRouterGenerator

logger = logging.getLogger(__name__)


def build_generator(config: GenerationConfig) -> TextGenerator:
    """Create the provider named by ``config.provider``.

    Unknown provider names fall back to Ollama with a warning.
    """
    provider = config.provider.lower()
    if provider == "openrouter":
        return OpenRouterGenerator(
            model=config.model,
            base_url=config.base_url,
            timeout=config.timeout,
            api_key_env=config.api_key_env,
        )
    if provider != "ollama":
        logger.warning("Unknown generation provider %r; using ollama", config.provider)
    return OllamaGenerator(
        model=config.model,
        base_url=config.base_url,
        timeout=config.timeout,
    )


__all__ = [
    "TextGenerator",
    "OllamaGenerator",
    "OpenRouterGenerator",
    "build_generator",
]
