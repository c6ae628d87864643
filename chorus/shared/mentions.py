"""Command and mention autocomplete.

``resolve`` is a pure function of the input text and cursor: it finds
the token being typed, decides whether it is an ``/agent`` or an
``@target`` token, and returns ranked candidates. Nothing is carried
over between keystrokes except the file listing cache inside the
file lister.

Trigger rule: the token is the run of non-whitespace characters ending
at the cursor. If it contains ``@`` the last ``@`` is the trigger;
otherwise a leading ``/`` is. A ``/`` inside a path never opens the
agent panel.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path

from chorus.engine.config import EngineConfig
from chorus.engine.models import (
    AGENT_DESCRIPTIONS,
    AgentKind,
    AutocompleteOption,
    OptionCategory,
)
from chorus.engine.sequencing import RequestSequencer

from .file_utils import FileLister
from .sub_agents import SubAgentRegistry

logger = logging.getLogger(__name__)

# Fixed per-agent capabilities offered in the @ panel
CAPABILITY_CATALOG: dict[AgentKind, list[tuple[str, str]]] = {
    AgentKind.CLAUDE: [
        ("analyze", "Analyze code structure and behavior"),
        ("refactor", "Restructure code without changing behavior"),
        ("review", "Review changes for bugs and style issues"),
    ],
    AgentKind.CODEX: [
        ("debug", "Track down and fix failing behavior"),
        ("implement", "Write new code from a description"),
        ("test", "Write or repair tests"),
    ],
    AgentKind.GEMINI: [
        ("explain", "Explain code or concepts"),
        ("research", "Search the web and summarize findings"),
        ("summarize", "Summarize files or conversations"),
    ],
}


@dataclass
class MentionResult:
    """Outcome of one resolve call.

    ``start`` is the offset of the trigger character and ``end`` the
    offset of the first whitespace at or after the cursor.
    """

    trigger: str | None
    query: str = ""
    start: int = 0
    end: int = 0
    options: list[AutocompleteOption] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.trigger is not None and bool(self.options)


NO_TRIGGER = MentionResult(trigger=None)


def find_trigger(text: str, cursor: int) -> tuple[str, int, str, int] | None:
    """Return (trigger, trigger_offset, query, token_end) or None.

    ``@`` is the nearest trigger anywhere in the token under the cursor,
    but ``/`` only counts as the first character of the token. A slash
    inside a token is a path separator, so ``src/co`` opens nothing.
    """
    cursor = max(0, min(cursor, len(text)))
    start = cursor
    while start > 0 and not text[start - 1].isspace():
        start -= 1
    end = cursor
    while end < len(text) and not text[end].isspace():
        end += 1
    token = text[start:cursor]
    at = token.rfind("@")
    if at >= 0:
        return "@", start + at, token[at + 1:], end
    if token.startswith("/"):
        return "/", start, token[1:], end
    return None


def _matches(query: str, *fields: str | None) -> bool:
    if not query:
        return True
    q = query.lower()
    return any(f and q in f.lower() for f in fields)


class MentionResolver:
    """Resolves ``/`` and ``@`` tokens to autocomplete candidates."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        file_lister: FileLister | None = None,
        sub_agents: SubAgentRegistry | None = None,
        working_dir: str | Path | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self._file_lister = file_lister
        self._sub_agents = sub_agents
        self.working_dir = working_dir
        self._sequencer = RequestSequencer()

    def resolve(self, text: str, cursor: int) -> MentionResult:
        found = find_trigger(text, cursor)
        if found is None:
            return NO_TRIGGER
        trigger, start, query, end = found
        if trigger == "/":
            options = self._agent_options(query)
        else:
            options = self._mention_options(query)
        return MentionResult(
            trigger=trigger, query=query, start=start, end=end, options=options,
        )

    async def resolve_async(
        self, text: str, cursor: int, key: str = "input",
    ) -> MentionResult | None:
        """Resolve off the event loop.

        Returns None when a newer request for ``key`` was issued while
        this one was running.
        """
        token = self._sequencer.issue(key)
        result = await asyncio.to_thread(self.resolve, text, cursor)
        if not self._sequencer.is_current(key, token):
            logger.debug("Discarding stale autocomplete result for %s", key)
            return None
        return result

    # -- candidate sources ---------------------------------------------------

    def _agent_options(self, query: str) -> list[AutocompleteOption]:
        options = [
            AutocompleteOption(
                id=f"agent:{kind.value}",
                label=kind.value,
                description=AGENT_DESCRIPTIONS[kind],
                category=OptionCategory.AGENTS.value,
            )
            for kind in self.config.enabled_agents
            if _matches(query, kind.value, kind.display_name)
        ]
        return sorted(options, key=lambda o: o.label.lower())

    def _mention_options(self, query: str) -> list[AutocompleteOption]:
        files = self._file_options(query)
        sub_agents = sorted(
            self._sub_agent_options(query), key=lambda o: o.label.lower(),
        )
        capabilities = sorted(
            self._capability_options(query), key=lambda o: o.label.lower(),
        )
        return files + sub_agents + capabilities

    def _file_options(self, query: str) -> list[AutocompleteOption]:
        if not self.config.file_mentions_enabled:
            return []
        if self._file_lister is None or self.working_dir is None:
            return []
        try:
            entries = self._file_lister.list_files(
                self.working_dir, None, self.config.file_max_depth,
            )
        except Exception:
            logger.warning("File listing failed for %s", self.working_dir, exc_info=True)
            return []
        options = []
        for entry in entries:
            if entry.is_dir or not _matches(query, entry.name, entry.path):
                continue
            options.append(AutocompleteOption(
                id=f"file:{entry.path}",
                label=entry.name,
                description=entry.path,
                category=OptionCategory.FILES.value,
                file_path=entry.path,
            ))
            if len(options) >= self.config.file_search_limit:
                break
        return options

    def _sub_agent_options(self, query: str) -> list[AutocompleteOption]:
        if self._sub_agents is None:
            return []
        try:
            grouped = self._sub_agents.load_all()
        except Exception:
            logger.warning("Sub-agent lookup failed", exc_info=True)
            return []
        options = []
        for kind in self.config.enabled_agents:
            for agent in grouped.get(kind, []):
                if not _matches(query, agent.name, agent.description):
                    continue
                options.append(AutocompleteOption(
                    id=f"subagent:{kind.value}:{agent.name}",
                    label=agent.name,
                    description=agent.description,
                    category=OptionCategory.SUB_AGENTS.value,
                ))
        return options

    def _capability_options(self, query: str) -> list[AutocompleteOption]:
        options = []
        for kind in self.config.enabled_agents:
            for name, description in CAPABILITY_CATALOG.get(kind, []):
                label = f"{kind.value}:{name}"
                if not _matches(query, label, description):
                    continue
                options.append(AutocompleteOption(
                    id=f"capability:{label}",
                    label=label,
                    description=description,
                    category=OptionCategory.CAPABILITIES.value,
                ))
        return options


def apply_selection(
    text: str, result: MentionResult, option: AutocompleteOption,
) -> tuple[str, int]:
    """Splice ``option`` into ``text`` at the trigger.

    Replaces the partial token up to the next whitespace and leaves
    exactly one space after the inserted token. Returns
    (new_text, new_cursor).
    """
    if result.trigger is None:
        return text, len(text)
    prefix = text[:result.start + 1]  # keep the trigger character
    rest = text[result.end:]
    if rest.startswith(" "):
        rest = rest[1:]
    inserted = option.insert_text + " "
    return prefix + inserted + rest, len(prefix) + len(inserted)
