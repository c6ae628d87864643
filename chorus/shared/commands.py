"""Slash command parser and agent addressing."""

from __future__ import annotations

from dataclasses import dataclass

from chorus.engine.models import AgentKind


@dataclass
class ParsedCommand:
    """A parsed slash command."""

    name: str
    args: list[str]
    raw: str


def parse_command(text: str) -> ParsedCommand | None:
    """Parse a /command from input text.

    Returns None if text does not start with '/'.
    """
    stripped = text.strip()
    if not stripped.startswith("/"):
        return None
    parts = stripped[1:].split()
    name = parts[0] if parts else ""
    return ParsedCommand(name=name, args=parts[1:], raw=stripped)


def split_agent_command(default_agent: str, message: str) -> tuple[str, str]:
    """Work out which agent a message is addressed to.

    ``/claude fix it`` -> ("claude", "fix it")
    ``/claude``        -> ("claude", "")       start an interactive turn
    ``/help``          -> (default, "/help")   subcommand for the current agent
    ``/``              -> (default, "help")
    ``fix it``         -> (default, "fix it")
    """
    parsed = parse_command(message) if message.startswith("/") else None
    if parsed is None:
        return default_agent, message
    if not parsed.name:
        return default_agent, "help"
    agent_ids = {kind.value for kind in AgentKind}
    if parsed.name in agent_ids:
        return parsed.name, " ".join(parsed.args)
    return default_agent, message
