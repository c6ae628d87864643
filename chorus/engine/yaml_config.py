"""YAML configuration loader.

Loads a single YAML file layered over the CHORUS_* environment
configuration. When no file is given, env vars work exactly as before.

Example YAML:
    engine:
      file_mentions_enabled: true
      session_timeout_seconds: 1800
      max_concurrent_sessions: 10

    agents:
      claude:
        enabled: true
        model: claude-sonnet-4-5
      codex:
        enabled: true
        command: codex
      gemini:
        enabled: false

    generation:
      provider: ollama
      model: llama3.1
      base_url: http://localhost:11434
      timeout: 60
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .config import EngineConfig
from .errors import UnknownAgentError
from .models import AgentKind

logger = logging.getLogger(__name__)

_ENGINE_KEYS = {
    "file_mentions_enabled": bool,
    "max_concurrent_sessions": int,
    "session_timeout_seconds": float,
    "file_search_limit": int,
    "file_max_depth": int,
    "log_level": str,
}


@dataclass
class AgentConfig:
    """Per-agent settings."""
    enabled: bool = True
    model: str | None = None
    command: str | None = None  # path to CLI binary, for the process collaborator


@dataclass
class GenerationConfig:
    """Text-generation service used by the plan synthesizer."""
    provider: str = "ollama"  # "ollama" or "openrouter"
    model: str = "llama3.1"
    base_url: str | None = None
    api_key_env: str | None = None
    timeout: float = 60.0


@dataclass
class ChorusConfig:
    """Complete parsed configuration."""
    engine: EngineConfig
    agents: dict[AgentKind, AgentConfig] = field(default_factory=dict)
    generation: GenerationConfig = field(default_factory=GenerationConfig)


def _parse_agents(raw: object) -> dict[AgentKind, AgentConfig]:
    agents: dict[AgentKind, AgentConfig] = {}
    if not isinstance(raw, dict):
        return agents
    for name, data in raw.items():
        try:
            kind = AgentKind.parse(str(name))
        except UnknownAgentError:
            logger.warning("Skipping unknown agent in config: %s", name)
            continue
        data = data if isinstance(data, dict) else {}
        agents[kind] = AgentConfig(
            enabled=bool(data.get("enabled", True)),
            model=data.get("model"),
            command=data.get("command"),
        )
    return agents


def _parse_generation(raw: object, engine: EngineConfig) -> GenerationConfig:
    data = raw if isinstance(raw, dict) else {}
    return GenerationConfig(
        provider=str(data.get("provider", engine.generation_provider)),
        model=str(data.get("model", engine.generation_model)),
        base_url=data.get("base_url", engine.generation_base_url),
        api_key_env=data.get("api_key_env"),
        timeout=float(data.get("timeout", engine.generation_timeout_seconds)),
    )


def load_yaml_config(path: str | Path | None = None) -> ChorusConfig:
    """Load configuration, layering a YAML file over env defaults.

    Missing or unreadable files fall back to env/default values.
    """
    engine = EngineConfig.from_env()
    raw: dict = {}
    if path is not None:
        config_path = Path(path)
        if config_path.exists():
            try:
                loaded = yaml.safe_load(config_path.read_text(encoding="utf-8"))
            except (OSError, yaml.YAMLError):
                logger.warning("Failed to read config %s; using defaults", config_path, exc_info=True)
                loaded = None
            if isinstance(loaded, dict):
                raw = loaded
        else:
            logger.debug("Config file not found at %s; using defaults", config_path)

    engine_raw = raw.get("engine")
    if isinstance(engine_raw, dict):
        for key, caster in _ENGINE_KEYS.items():
            if key in engine_raw:
                setattr(engine, key, caster(engine_raw[key]))

    agents = _parse_agents(raw.get("agents"))
    if agents:
        enabled = [kind for kind in engine.enabled_agents if agents.get(kind, AgentConfig()).enabled]
        for kind, agent in agents.items():
            if agent.enabled and kind not in enabled:
                enabled.append(kind)
        engine.enabled_agents = enabled

    generation = _parse_generation(raw.get("generation"), engine)
    engine.generation_provider = generation.provider
    engine.generation_model = generation.model
    engine.generation_base_url = generation.base_url
    engine.generation_timeout_seconds = generation.timeout

    logger.info(
        "Loaded config: agents=%s generation=%s/%s",
        ",".join(k.value for k in engine.enabled_agents),
        generation.provider,
        generation.model,
    )
    return ChorusConfig(engine=engine, agents=agents, generation=generation)
