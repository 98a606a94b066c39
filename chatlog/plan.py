"""Plan/progress side state derived from ``plan_update`` events."""

from __future__ import annotations

import json
import logging
import re
from typing import Any

from ._types import PlanState, PlanStep

logger = logging.getLogger(__name__)

_SEPARATORS_RE = re.compile(r"[\s_-]")


def normalize_plan_status(status: Any) -> str:
    """Map a raw step status onto ``pending``, ``inProgress`` or ``completed``.

    Matching ignores case, whitespace, underscores and hyphens, so
    ``"In Progress"``, ``"in_progress"`` and ``"IN-PROGRESS"`` all qualify.
    """
    if not status:
        return "pending"
    compact = _SEPARATORS_RE.sub("", str(status).lower())
    if compact == "inprogress":
        return "inProgress"
    if compact in ("completed", "done"):
        return "completed"
    return "pending"


def normalize_plan_payload(payload: Any) -> PlanState:
    """Build a fresh ``PlanState`` from a plan payload.

    Steps with empty text are dropped. Anything that is not a mapping yields
    an empty plan.
    """
    if not isinstance(payload, dict):
        return PlanState()
    explanation = str(payload.get("explanation") or "").strip() or None
    raw_steps = payload.get("plan")
    steps = []
    for raw in raw_steps if isinstance(raw_steps, list) else []:
        if not isinstance(raw, dict):
            continue
        text = str(raw.get("step") or "").strip()
        if text:
            steps.append(PlanStep(text=text, status=normalize_plan_status(raw.get("status"))))
    return PlanState(explanation=explanation, steps=steps)


def plan_from_event(event: dict) -> PlanState:
    """Plan carried by a ``plan_update`` record or delta.

    A string ``content`` is decoded as the payload; when it is not valid JSON
    the event itself is used.
    """
    payload: Any = event
    content = event.get("content")
    if isinstance(content, str):
        try:
            payload = json.loads(content)
        except json.JSONDecodeError:
            logger.debug("plan_update content is not JSON, using event fields")
            payload = event
    return normalize_plan_payload(payload)


def progress(plan: PlanState) -> tuple[int, int, PlanStep | None]:
    """``(completed, total, current_step)`` for the progress badge."""
    return plan.completed, plan.total, plan.current_step()
