from __future__ import annotations

from pathlib import Path

import pytest

from chorus.engine.config import EngineConfig, fire_event
from chorus.engine.models import AgentKind
from chorus.engine.yaml_config import load_yaml_config

_ENV_VARS = (
    "CHORUS_ENABLED_AGENTS",
    "CHORUS_FILE_MENTIONS",
    "CHORUS_MAX_SESSIONS",
    "CHORUS_SESSION_TIMEOUT",
    "CHORUS_GENERATION_PROVIDER",
    "CHORUS_GENERATION_MODEL",
    "CHORUS_GENERATION_URL",
    "CHORUS_GENERATION_TIMEOUT",
    "CHORUS_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    config = EngineConfig.from_env()
    assert config.enabled_agents == [AgentKind.CLAUDE, AgentKind.CODEX, AgentKind.GEMINI]
    assert config.file_mentions_enabled is True
    assert config.session_timeout_seconds == 1800.0
    assert config.generation_provider == "ollama"


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHORUS_ENABLED_AGENTS", "codex, bogus, Codex")
    monkeypatch.setenv("CHORUS_FILE_MENTIONS", "off")
    monkeypatch.setenv("CHORUS_MAX_SESSIONS", "3")
    monkeypatch.setenv("CHORUS_GENERATION_PROVIDER", "openrouter")
    monkeypatch.setenv("CHORUS_GENERATION_URL", "")

    config = EngineConfig.from_env()
    assert config.enabled_agents == [AgentKind.CODEX]
    assert config.file_mentions_enabled is False
    assert config.max_concurrent_sessions == 3
    assert config.generation_provider == "openrouter"
    assert config.generation_base_url is None


def test_yaml_layered_over_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHORUS_GENERATION_MODEL", "from-env")
    path = tmp_path / "chorus.yaml"
    path.write_text(
        "engine:\n"
        "  file_search_limit: 5\n"
        "  session_timeout_seconds: 60\n"
        "agents:\n"
        "  claude:\n"
        "    enabled: false\n"
        "  codex:\n"
        "    command: /usr/local/bin/codex\n"
        "  cursor:\n"
        "    enabled: true\n"
        "generation:\n"
        "  provider: openrouter\n"
        "  api_key_env: MY_KEY\n",
        encoding="utf-8",
    )

    config = load_yaml_config(path)
    assert config.engine.file_search_limit == 5
    assert config.engine.session_timeout_seconds == 60.0
    assert config.engine.enabled_agents == [AgentKind.CODEX, AgentKind.GEMINI]
    assert config.agents[AgentKind.CODEX].command == "/usr/local/bin/codex"
    assert AgentKind.CLAUDE in config.agents
    assert config.generation.provider == "openrouter"
    assert config.generation.model == "from-env"
    assert config.generation.api_key_env == "MY_KEY"
    assert config.engine.generation_provider == "openrouter"


def test_missing_or_broken_yaml_uses_defaults(tmp_path: Path) -> None:
    assert load_yaml_config(tmp_path / "missing.yaml").generation.provider == "ollama"

    broken = tmp_path / "broken.yaml"
    broken.write_text("engine: [unclosed\n", encoding="utf-8")
    config = load_yaml_config(broken)
    assert config.engine.file_search_limit == 10
    assert config.agents == {}


@pytest.mark.asyncio
async def test_fire_event_swallows_callback_errors() -> None:
    seen = []

    async def ok(event):
        seen.append(event)

    async def broken(event):
        raise RuntimeError("observer down")

    await fire_event(ok, {"event": "x"})
    await fire_event(broken, {"event": "y"})
    await fire_event(None, {"event": "z"})
    assert seen == [{"event": "x"}]
