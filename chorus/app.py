"""Chorus CLI — developer entry point for exercising the core.

    chorus parse --agent claude transcript.jsonl
    chorus parse --agent codex --codex-events < codex.jsonl
    chorus plan "add a dark mode toggle"
    chorus complete --cursor 8 "look at @ap"
"""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from chorus.engine.chunk_router import TranscriptView
from chorus.engine.models import AgentKind, Plan, StreamChunk
from chorus.engine.multiplexer import SessionMultiplexer
from chorus.engine.plan_synthesizer import PlanSynthesizer
from chorus.engine.providers import build_generator
from chorus.engine.yaml_config import load_yaml_config
from chorus.shared.file_utils import FileIndex
from chorus.shared.mentions import MentionResolver, apply_selection
from chorus.shared.sub_agents import SubAgentRegistry
from chorus.shared.transcript.codex_events import (
    CodexEventRenderer,
    CodexLineAccumulator,
    sanitize_output_line,
)

logger = logging.getLogger(__name__)

DEFAULT_LOG_FILE = Path.home() / ".chorus" / "logs" / "chorus.log"
DEFAULT_CONFIG_FILE = Path.home() / ".chorus" / "chorus.yaml"


def _configure_logging(level_name: str, log_file: Path, verbose: bool) -> None:
    """Rotating file log plus warnings (or everything, with -v) on stderr."""
    level = getattr(logging, level_name.upper(), logging.INFO)
    if verbose:
        level = logging.DEBUG
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    formatter = logging.Formatter(
        "%(asctime)s %(levelname)s %(name)s [pid=%(process)d] %(message)s"
    )
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=2_000_000, backupCount=5, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)
    except OSError:
        print(f"chorus: cannot write log file {log_file}", file=sys.stderr)
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    stream_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root.addHandler(stream_handler)


def _read_input(path: str | None) -> str:
    if path is None or path == "-":
        return sys.stdin.read()
    return Path(path).read_text(encoding="utf-8")


def render_codex_events(raw: str) -> str:
    """Turn raw Codex ``--json`` output into the markdown-block transcript."""
    accumulator = CodexLineAccumulator()
    renderer = CodexEventRenderer()
    lines = accumulator.push(raw)
    tail = accumulator.flush()
    if tail is not None:
        lines.append(tail)
    rendered = ""
    for line in lines:
        clean = sanitize_output_line("codex", line)
        if clean is None:
            continue
        out = renderer.feed(clean)
        if out is not None:
            rendered = out
    return rendered


# ── Rendering ────────────────────────────────────────────────

def _render_transcript(console: Console, view: TranscriptView) -> None:
    if view.parsed is None:
        console.print(Text(view.raw))
        for error in view.errors:
            console.print(Text(f"error: {error}", style="red"))
        return
    p = view.parsed
    if p.header is not None:
        console.print(Text(f"Agent: {p.header.agent} | Command: {p.header.command}", style="bold"))
    if p.metadata:
        meta = Table(show_header=False, box=None, padding=(0, 1))
        for key, value in p.metadata.items():
            meta.add_row(Text(key, style="dim"), Text(value))
        console.print(meta)
    if p.user_instructions:
        console.print(Panel(Text(p.user_instructions), title="User instructions"))
    if p.working:
        console.print(Text("Working", style="bold"))
        for line in p.working:
            console.print(Text(f"• {line}"))
    if p.thinking:
        console.print(Panel(Text(p.thinking, style="dim italic"), title="Thinking"))
    if p.answer:
        console.print(Panel(Text(p.answer), title="Answer"))
    footer = []
    if p.tokens is not None:
        footer.append(f"tokens: {p.tokens}")
    if p.success is True:
        footer.append("✓ success")
    elif p.success is False:
        footer.append("✗ failed")
    if footer:
        console.print(Text("  ".join(footer), style="dim"))
    for error in view.errors:
        console.print(Text(f"error: {error}", style="red"))


def _render_plan(console: Console, plan: Plan) -> None:
    table = Table(title=plan.title, caption=plan.description or None)
    table.add_column("id")
    table.add_column("step")
    table.add_column("time")
    table.add_column("after")
    for step in plan.steps:
        table.add_row(
            step.id,
            Text(f"{step.title}\n{step.description}" if step.description else step.title),
            step.estimated_time or "",
            ", ".join(step.dependencies),
        )
    console.print(table)


# ── Commands ─────────────────────────────────────────────────

def _cmd_parse(args, console: Console) -> int:
    kind = AgentKind.parse(args.agent)
    raw = _read_input(args.file)
    if args.codex_events:
        raw = render_codex_events(raw)

    mux = SessionMultiplexer()
    mux.open_session("cli", kind, working_dir=os.getcwd())

    async def _feed() -> None:
        await mux.route(StreamChunk(session_id="cli", content=raw))
        await mux.route(StreamChunk(session_id="cli", finished=True))

    asyncio.run(_feed())
    view = mux.transcript("cli")
    if args.raw or view is None:
        console.print(Text(raw))
        return 0
    _render_transcript(console, view)
    return 0


def _cmd_plan(args, console: Console) -> int:
    config = load_yaml_config(args.config)
    intent = " ".join(args.intent)
    generator = None if args.offline else build_generator(config.generation)
    synthesizer = PlanSynthesizer(generator, timeout=config.generation.timeout)
    plan = asyncio.run(synthesizer.synthesize(intent))
    if plan is None:
        return 1
    _render_plan(console, plan)
    return 0


def _cmd_complete(args, console: Console) -> int:
    config = load_yaml_config(args.config)
    cursor = len(args.text) if args.cursor is None else args.cursor
    resolver = MentionResolver(
        config=config.engine,
        file_lister=FileIndex(),
        sub_agents=SubAgentRegistry(),
        working_dir=args.cwd or os.getcwd(),
    )
    result = resolver.resolve(args.text, cursor)
    if not result.is_open:
        console.print(Text("no candidates", style="dim"))
        return 0
    if args.select is not None:
        if not 0 <= args.select < len(result.options):
            console.print(Text(f"--select out of range (0-{len(result.options) - 1})", style="red"))
            return 2
        new_text, new_cursor = apply_selection(args.text, result, result.options[args.select])
        console.print(Text(new_text))
        console.print(Text(f"cursor: {new_cursor}", style="dim"))
        return 0
    table = Table(title=f"{result.trigger}{result.query}")
    table.add_column("#")
    table.add_column("label")
    table.add_column("category")
    table.add_column("description")
    for i, option in enumerate(result.options):
        table.add_row(str(i), option.label, option.category or "", option.description)
    console.print(table)
    return 0


def main(argv: list[str] | None = None) -> int:
    import argparse

    parser = argparse.ArgumentParser(
        prog="chorus",
        description="Chorus — streaming session multiplexer for command-line AI agents",
    )
    parser.add_argument(
        "--config", metavar="PATH", default=str(DEFAULT_CONFIG_FILE),
        help="YAML config file (default: ~/.chorus/chorus.yaml)",
    )
    parser.add_argument(
        "--log-file", metavar="PATH", default=str(DEFAULT_LOG_FILE),
        help="Log file (default: ~/.chorus/logs/chorus.log)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Log everything to stderr",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p_parse = sub.add_parser("parse", help="Parse a captured agent transcript")
    p_parse.add_argument(
        "--agent", required=True, choices=[k.value for k in AgentKind],
        help="Agent that produced the output",
    )
    p_parse.add_argument("file", nargs="?", help="Transcript file (default: stdin)")
    p_parse.add_argument(
        "--codex-events", action="store_true",
        help="Input is raw Codex --json output; render it first",
    )
    p_parse.add_argument(
        "--raw", action="store_true",
        help="Print the accumulated buffer instead of the parsed view",
    )

    p_plan = sub.add_parser("plan", help="Break an intent into plan steps")
    p_plan.add_argument("intent", nargs="+", help="What you want done")
    p_plan.add_argument(
        "--offline", action="store_true",
        help="Skip the generation service and use the built-in decomposition",
    )

    p_complete = sub.add_parser("complete", help="Show /agent and @mention candidates")
    p_complete.add_argument("text", help="Input text")
    p_complete.add_argument(
        "--cursor", type=int, default=None,
        help="Cursor offset (default: end of text)",
    )
    p_complete.add_argument("--cwd", metavar="DIR", help="Directory for file mentions")
    p_complete.add_argument(
        "--select", type=int, metavar="N",
        help="Apply candidate N and print the rewritten text",
    )

    args = parser.parse_args(argv)
    _configure_logging(
        os.getenv("CHORUS_LOG_LEVEL", "INFO"), Path(args.log_file), args.verbose,
    )
    logger.info("chorus %s (cwd=%s)", args.command, Path.cwd())

    console = Console()
    if args.command == "parse":
        return _cmd_parse(args, console)
    if args.command == "plan":
        return _cmd_plan(args, console)
    return _cmd_complete(args, console)


if __name__ == "__main__":
    sys.exit(main())
