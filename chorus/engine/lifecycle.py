"""Plan step lifecycle state machine.

Defines valid transitions and enforces them. Invalid transitions
raise ValueError rather than silently proceeding.

State Diagram:

    PENDING ──> IN_PROGRESS ──> COMPLETED
                    │
                    └──> PENDING  (reset on execution failure)
"""
from __future__ import annotations

import logging

from .models import Plan, PlanStep, StepStatus

logger = logging.getLogger(__name__)

VALID_TRANSITIONS: dict[StepStatus, set[StepStatus]] = {
    StepStatus.PENDING: {
        StepStatus.IN_PROGRESS,
    },
    StepStatus.IN_PROGRESS: {
        StepStatus.COMPLETED,
        StepStatus.PENDING,  # execution failed, retry later
    },
    StepStatus.COMPLETED: set(),
}


def validate_transition(current: StepStatus, target: StepStatus) -> None:
    """Validate a step transition. Raises ValueError if invalid."""
    allowed = VALID_TRANSITIONS.get(current, set())
    if target not in allowed:
        allowed_str = ", ".join(s.value for s in allowed) or "none (terminal)"
        raise ValueError(
            f"Invalid step transition: {current.value} -> {target.value}. "
            f"Allowed from {current.value}: {allowed_str}"
        )


def set_step_status(plan: Plan, step_id: str, status: StepStatus) -> PlanStep:
    """Move one step of ``plan`` to ``status``.

    Raises KeyError for an unknown step id and ValueError for an
    invalid transition. Setting the current status again is a no-op.
    """
    step = plan.get_step(step_id)
    if step is None:
        raise KeyError(step_id)
    if step.status == status:
        return step
    validate_transition(step.status, status)
    logger.debug(
        "Plan %s step %s: %s -> %s",
        plan.id, step_id, step.status.value, status.value,
    )
    step.status = status
    return step


def next_runnable_steps(plan: Plan) -> list[PlanStep]:
    """Pending steps whose dependencies have all completed, in plan order.

    A dependency id that names no step in the plan is treated as
    satisfied.
    """
    status_by_id = {s.id: s.status for s in plan.steps}
    runnable = []
    for step in plan.steps:
        if step.status != StepStatus.PENDING:
            continue
        if all(
            status_by_id.get(dep, StepStatus.COMPLETED) == StepStatus.COMPLETED
            for dep in step.dependencies
        ):
            runnable.append(step)
    return runnable
