"""Configuration loaded from environment variables.

All settings have sensible defaults. Override via CHORUS_* env vars.
"""
from __future__ import annotations

import logging
import os
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from .errors import UnknownAgentError
from .models import AgentKind

logger = logging.getLogger(__name__)


# Optional async callback for real-time event observation.
# Signature: async def callback(event: dict[str, Any]) -> None
EventCallback = Callable[[dict[str, Any]], Awaitable[None]]

_TRUTHY = {"1", "true", "yes", "on"}


async def fire_event(
    callback: EventCallback | None,
    event: dict[str, Any],
) -> None:
    """Fire an event callback if set, logging and swallowing errors."""
    if callback is None:
        return
    try:
        await callback(event)
    except Exception:
        # Observers never break routing
        logger.debug("Event callback failed for %s", event.get("event"), exc_info=True)


def _parse_agent_list(raw: str) -> list[AgentKind]:
    kinds: list[AgentKind] = []
    for name in raw.split(","):
        name = name.strip()
        if not name:
            continue
        try:
            kind = AgentKind.parse(name)
        except UnknownAgentError:
            logger.warning("Ignoring unknown agent in CHORUS_ENABLED_AGENTS: %s", name)
            continue
        if kind not in kinds:
            kinds.append(kind)
    return kinds


@dataclass
class EngineConfig:
    """Multiplexer configuration."""

    # Agents offered by the /agent command panel and capability catalog.
    enabled_agents: list[AgentKind] = field(default_factory=lambda: [
        AgentKind.CLAUDE, AgentKind.CODEX, AgentKind.GEMINI,
    ])
    file_mentions_enabled: bool = True
    # Enforced by the process collaborator, not by the registry.
    max_concurrent_sessions: int = 10
    # Sessions idle longer than this are reaped by cleanup_inactive().
    session_timeout_seconds: float = 1800.0

    # Plan synthesis
    generation_provider: str = "ollama"
    generation_model: str = "llama3.1"
    generation_base_url: str | None = None
    generation_timeout_seconds: float = 60.0

    # Mention lookups
    file_search_limit: int = 10
    file_max_depth: int = 4

    # Logging
    log_level: str = "INFO"

    # Receives dicts like {"event": "transcript_finished", "session_id": ...}
    event_callback: EventCallback | None = field(default=None, repr=False)

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Load configuration from CHORUS_* environment variables."""
        chorus_vars = {
            k: v for k, v in os.environ.items() if k.startswith("CHORUS_")
        }
        if chorus_vars:
            logger.info(
                "EngineConfig.from_env: CHORUS_* env overrides: %s",
                ", ".join(f"{k}={v}" for k, v in sorted(chorus_vars.items())),
            )
        else:
            logger.debug("EngineConfig.from_env: no CHORUS_* env vars set, using defaults")

        config = cls()
        agents_raw = os.getenv("CHORUS_ENABLED_AGENTS")
        if agents_raw is not None:
            config.enabled_agents = _parse_agent_list(agents_raw)
        mentions_raw = os.getenv("CHORUS_FILE_MENTIONS")
        if mentions_raw is not None:
            config.file_mentions_enabled = mentions_raw.strip().lower() in _TRUTHY
        config.max_concurrent_sessions = int(os.getenv(
            "CHORUS_MAX_SESSIONS", str(cls.max_concurrent_sessions)
        ))
        config.session_timeout_seconds = float(os.getenv(
            "CHORUS_SESSION_TIMEOUT", str(cls.session_timeout_seconds)
        ))
        config.generation_provider = os.getenv(
            "CHORUS_GENERATION_PROVIDER", cls.generation_provider
        )
        config.generation_model = os.getenv(
            "CHORUS_GENERATION_MODEL", cls.generation_model
        )
        config.generation_base_url = os.getenv("CHORUS_GENERATION_URL") or None
        config.generation_timeout_seconds = float(os.getenv(
            "CHORUS_GENERATION_TIMEOUT", str(cls.generation_timeout_seconds)
        ))
        config.log_level = os.getenv("CHORUS_LOG_LEVEL", cls.log_level)
        logger.info(
            "EngineConfig.from_env: agents=%s file_mentions=%s generation=%s/%s",
            ",".join(k.value for k in config.enabled_agents),
            config.file_mentions_enabled,
            config.generation_provider,
            config.generation_model,
        )
        return config
