"""Core data models for the session multiplexer.

All dataclasses, enums, and type aliases shared by the engine,
adapters and shared layers. Single source of truth to avoid
circular imports.
"""
from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from .errors import UnknownAgentError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _make_id() -> str:
    return str(uuid.uuid4())


class AgentKind(str, Enum):
    """Supported command-line agents. Each is bound to one transcript format."""
    CLAUDE = "claude"
    CODEX = "codex"
    GEMINI = "gemini"
    TEST = "test"

    @property
    def display_name(self) -> str:
        return AGENT_DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, name: str) -> AgentKind:
        """Resolve an agent id or display name, case-insensitively."""
        normalized = (name or "").strip().lower().lstrip("/")
        for kind in cls:
            if normalized in (kind.value, kind.display_name.lower()):
                return kind
        raise UnknownAgentError(name, [k.value for k in cls])


AGENT_DISPLAY_NAMES: dict[AgentKind, str] = {
    AgentKind.CLAUDE: "Claude Code",
    AgentKind.CODEX: "Codex",
    AgentKind.GEMINI: "Gemini",
    AgentKind.TEST: "Test",
}

AGENT_DESCRIPTIONS: dict[AgentKind, str] = {
    AgentKind.CLAUDE: "Anthropic's agentic coding CLI",
    AgentKind.CODEX: "OpenAI's coding agent CLI",
    AgentKind.GEMINI: "Google's Gemini CLI",
    AgentKind.TEST: "Local echo agent for checking the stream pipeline",
}


@dataclass
class Session:
    """One logical turn bound to one running agent process.

    ``implicit`` sessions were created by the router from a chunk that
    arrived before the creation call; they carry no agent kind until
    adopted by ``SessionRegistry.create``.
    """
    session_id: str
    agent_kind: AgentKind | None = None
    working_dir: str | None = None
    is_active: bool = True
    implicit: bool = False
    created_at: datetime = field(default_factory=_utcnow)
    last_activity: datetime = field(default_factory=_utcnow)


@dataclass
class SessionStatus:
    """Snapshot of the registry for status displays."""
    active_sessions: list[Session]
    total_sessions: int


@dataclass(frozen=True)
class StreamChunk:
    """An incremental fragment of one session's output."""
    session_id: str
    content: str = ""
    finished: bool = False


class StepStatus(str, Enum):
    """Plan step lifecycle. See lifecycle.py for transition rules."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass
class PlanStep:
    id: str
    title: str
    description: str
    status: StepStatus = StepStatus.PENDING
    estimated_time: str | None = None
    dependencies: list[str] = field(default_factory=list)
    details: str | None = None


@dataclass
class Plan:
    """Ordered decomposition of a user intent into executable steps."""
    title: str
    description: str
    steps: list[PlanStep] = field(default_factory=list)
    id: str = field(default_factory=_make_id)
    is_generating: bool = False

    @property
    def progress(self) -> float:
        """Fraction of steps completed, 0.0 for an empty plan."""
        if not self.steps:
            return 0.0
        done = sum(1 for s in self.steps if s.status == StepStatus.COMPLETED)
        return done / len(self.steps)

    def get_step(self, step_id: str) -> PlanStep | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None


class OptionCategory(str, Enum):
    """Autocomplete candidate groups, in display order."""
    FILES = "Files"
    SUB_AGENTS = "Sub-agents"
    AGENTS = "Agents"
    CAPABILITIES = "Capabilities"


@dataclass
class AutocompleteOption:
    """One candidate in the mention/command panel. Never persisted."""
    id: str
    label: str
    description: str
    category: str | None = None
    file_path: str | None = None

    @property
    def insert_text(self) -> str:
        """Token spliced into the input when this option is selected."""
        return self.file_path or self.label
