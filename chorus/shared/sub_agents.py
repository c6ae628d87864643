"""Sub-agent profiles read from each CLI's agents directory.

A sub-agent is a markdown file with YAML front matter:

    ---
    name: code-reviewer
    description: Reviews diffs for bugs
    color: blue
    model: sonnet
    ---
    You are a meticulous reviewer...

Files are looked up in ``~/.<cli>/agents/*.md`` and ``~/<cli>/agents/*.md``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

from chorus.engine.models import AgentKind

logger = logging.getLogger(__name__)

SUB_AGENT_KINDS = (AgentKind.CLAUDE, AgentKind.CODEX, AgentKind.GEMINI)


@dataclass
class SubAgent:
    """A named capability profile owned by one agent CLI."""

    name: str
    description: str
    agent: AgentKind
    color: str | None = None
    model: str | None = None
    content: str = ""
    file_path: str | None = None


def parse_front_matter(text: str) -> tuple[dict, str] | None:
    """Split ``---`` delimited front matter from the body.

    Returns None when the file has no well-formed front matter block.
    """
    lines = text.splitlines()
    fences = [i for i, line in enumerate(lines) if line.strip() == "---"]
    if len(fences) < 2:
        return None
    start, end = fences[0], fences[1]
    if any(line.strip() for line in lines[:start]):
        return None
    try:
        meta = yaml.safe_load("\n".join(lines[start + 1:end]))
    except yaml.YAMLError:
        return None
    if not isinstance(meta, dict):
        return None
    body = "\n".join(lines[end + 1:]).strip()
    return meta, body


class SubAgentRegistry:
    """Loads sub-agent profiles from disk on every call."""

    def __init__(self, home: Path | None = None) -> None:
        self._home = home or Path.home()

    def directories(self, kind: AgentKind) -> list[Path]:
        return [
            self._home / f".{kind.value}" / "agents",
            self._home / kind.value / "agents",
        ]

    def load_for(self, kind: AgentKind) -> list[SubAgent]:
        agents: list[SubAgent] = []
        for directory in self.directories(kind):
            if not directory.is_dir():
                continue
            for path in sorted(directory.glob("*.md")):
                agent = self._load_file(path, kind)
                if agent is not None:
                    agents.append(agent)
        return agents

    def load_all(self) -> dict[AgentKind, list[SubAgent]]:
        """Sub-agents grouped by owning agent. Agents with none are omitted."""
        grouped: dict[AgentKind, list[SubAgent]] = {}
        for kind in SUB_AGENT_KINDS:
            agents = self.load_for(kind)
            if agents:
                grouped[kind] = agents
        return grouped

    def _load_file(self, path: Path, kind: AgentKind) -> SubAgent | None:
        try:
            text = path.read_text(encoding="utf-8")
        except OSError:
            logger.debug("Cannot read sub-agent file %s", path, exc_info=True)
            return None
        parsed = parse_front_matter(text)
        if parsed is None:
            logger.debug("Skipping %s: no front matter", path)
            return None
        meta, body = parsed
        return SubAgent(
            name=str(meta.get("name") or path.stem),
            description=str(meta.get("description") or ""),
            agent=kind,
            color=str(meta["color"]) if meta.get("color") else None,
            model=str(meta["model"]) if meta.get("model") else None,
            content=body,
            file_path=str(path),
        )
