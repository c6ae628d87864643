"""Turn a free-form user intent into a multi-step Plan.

Asks a text-generation provider for a JSON plan. Any failure (no
provider, transport error, timeout, text that is not a plan) falls back
to a deterministic decomposition, so ``synthesize`` always produces a
plan for the current request.
"""
from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

from chorus.shared.transcript.stream_json import extract_first_object

from .errors import GenerationError, PlanFormatError
from .models import Plan, PlanStep, StepStatus
from .providers.base import TextGenerator
from .sequencing import RequestSequencer

logger = logging.getLogger(__name__)

PLAN_PROMPT = (
    "Break the following software task into a short ordered plan. "
    "Respond with ONLY a JSON object of this shape, no prose:\n"
    '{{"title": "...", "description": "...", "steps": [\n'
    '  {{"id": "step-1", "title": "...", "description": "...", '
    '"estimatedTime": "10 min", "dependencies": [], "details": "..."}}\n'
    "]}}\n"
    "Use 2-8 steps. Each dependency must be the id of an earlier step.\n\n"
    "Task: {intent}"
)

# Intents longer than this many words get the three-step fallback
FALLBACK_WORD_THRESHOLD = 10

_FENCE_RE = re.compile(r"^```(?:json|JSON)?\s*\n(?P<body>[\s\S]*?)\n```$")


def _strip_code_fence(text: str) -> str:
    """Extract fenced content when models wrap JSON in Markdown blocks."""
    fence = _FENCE_RE.match(text)
    if fence:
        return fence.group("body").strip()
    return text


def _short_title(intent: str, limit: int = 60) -> str:
    title = " ".join(intent.split())
    if len(title) > limit:
        title = title[:limit - 3].rstrip() + "..."
    return title or "Untitled plan"


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _parse_step(raw: Any, index: int) -> PlanStep:
    if not isinstance(raw, dict):
        raise PlanFormatError(f"step {index} is not an object")
    title = _optional_str(raw.get("title"))
    if title is None:
        raise PlanFormatError(f"step {index} has no title")
    deps = raw.get("dependencies") or []
    if not isinstance(deps, list):
        deps = [deps]
    estimated = raw.get("estimatedTime", raw.get("estimated_time"))
    return PlanStep(
        id=_optional_str(raw.get("id")) or f"step-{index}",
        title=title,
        description=str(raw.get("description") or ""),
        status=StepStatus.PENDING,
        estimated_time=_optional_str(estimated),
        dependencies=[str(d) for d in deps if d is not None],
        details=_optional_str(raw.get("details")),
    )


def plan_from_text(text: str) -> Plan:
    """Build a Plan from generated text. Raises PlanFormatError."""
    data = extract_first_object(_strip_code_fence(text.strip()))
    if data is None:
        raise PlanFormatError("no JSON object in generated text")
    title = _optional_str(data.get("title"))
    if title is None:
        raise PlanFormatError("plan has no title")
    raw_steps = data.get("steps")
    if not isinstance(raw_steps, list) or not raw_steps:
        raise PlanFormatError("plan has no steps")
    steps = [_parse_step(raw, i) for i, raw in enumerate(raw_steps, start=1)]
    return Plan(
        title=title,
        description=str(data.get("description") or ""),
        steps=steps,
    )


def fallback_plan(intent: str) -> Plan:
    """Deterministic plan used whenever generation fails. Never raises."""
    if len(intent.split()) > FALLBACK_WORD_THRESHOLD:
        steps = [
            PlanStep(
                id="step-1",
                title="Analyze Requirements",
                description="Review the request and the affected code to pin down what must change.",
                estimated_time="10 min",
            ),
            PlanStep(
                id="step-2",
                title="Design Solution",
                description="Decide on the approach and the files to modify.",
                estimated_time="15 min",
                dependencies=["step-1"],
            ),
            PlanStep(
                id="step-3",
                title="Implement Changes",
                description="Make the changes and verify them.",
                estimated_time="30 min",
                dependencies=["step-2"],
                details=intent,
            ),
        ]
    else:
        steps = [
            PlanStep(
                id="step-1",
                title=_short_title(intent),
                description=intent,
            ),
        ]
    return Plan(title=_short_title(intent), description=intent, steps=steps)


class PlanSynthesizer:
    """Generates plans, superseding in-flight requests per key."""

    def __init__(
        self,
        generator: TextGenerator | None = None,
        timeout: float = 60.0,
    ) -> None:
        self._generator = generator
        self._timeout = timeout
        self._sequencer = RequestSequencer()

    def placeholder(self, intent: str) -> Plan:
        """Plan shown while generation is in flight."""
        return Plan(title=_short_title(intent), description=intent, is_generating=True)

    async def synthesize(self, intent: str, key: str = "default") -> Plan | None:
        """Return a plan for ``intent``.

        Returns None only when a newer ``synthesize`` call for the same
        key was issued while this one was in flight.
        """
        token = self._sequencer.issue(key)
        plan = await self._generate(intent)
        if not self._sequencer.is_current(key, token):
            logger.debug("Discarding superseded plan for %s", key)
            return None
        return plan

    async def _generate(self, intent: str) -> Plan:
        if self._generator is None:
            return fallback_plan(intent)
        prompt = PLAN_PROMPT.format(intent=intent)
        try:
            text = await asyncio.wait_for(
                self._generator.generate(prompt), timeout=self._timeout,
            )
            plan = plan_from_text(text)
        except asyncio.TimeoutError:
            logger.warning("Plan generation timed out after %.0fs; using fallback", self._timeout)
            return fallback_plan(intent)
        except (GenerationError, PlanFormatError) as exc:
            logger.warning("Plan generation failed (%s); using fallback", exc)
            return fallback_plan(intent)
        except Exception:
            logger.warning("Plan generation crashed; using fallback", exc_info=True)
            return fallback_plan(intent)
        logger.info(
            "Plan generated by %s: %r (%d steps)",
            self._generator.name, plan.title, len(plan.steps),
        )
        return plan
