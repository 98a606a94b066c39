"""
Permission request normalization.

Producers describe the action behind a permission prompt in several
incompatible shapes (a bare command string, ``{"command": ...}``, a nested
``toolCall`` wrapper, a mode switch). ``normalize`` maps all of them onto one
description: action label, command, reason and amendment. ``build_actions``
decides how the response options are laid out.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import re
from typing import Any

from ._types import PermissionOption, PermissionRequest
from .extract import try_parse_json
from .utils.text import truncate_text

_COMMAND_RE = re.compile(
    r"^(git|npm|pnpm|yarn|bun|cargo|python|node|rg|ls|cat|sed|awk|grep|find|mkdir|rm|mv|cp|chmod|chown)\b",
    re.IGNORECASE,
)

# First keyword hit on the lowercased tool name decides the label.
_ACTION_LABELS = (
    (("switch_mode", "switch mode"), "Exit Plan Mode"),
    (("command", "exec", "shell"), "Run Command"),
    (("write", "edit", "patch"), "Edit File"),
    (("read",), "Read File"),
    (("open", "browse"), "Open Resource"),
    (("deploy", "publish"), "Publish Changes"),
)

_HINT_LIMIT = 48
_SWITCH_MODE_REASON_LIMIT = 400

# Options beyond this count always collapse into dropdown groups.
_MAX_FLAT_OPTIONS = 3


@dataclass
class Normalized:
    """Canonical description of the action a permission prompt guards."""

    action_label: str
    command: str
    reason: str
    amendment: str
    raw: str


@dataclass
class PermissionActions:
    """Layout of the response options on a permission card.

    ``layout`` is ``"buttons"`` (one flat button per option) or ``"dropdown"``
    (a primary button plus menu for each of the allow and deny groups).
    """

    layout: str
    options: list[PermissionOption] = field(default_factory=list)
    allow: list[PermissionOption] = field(default_factory=list)
    deny: list[PermissionOption] = field(default_factory=list)
    allow_default: PermissionOption | None = None
    deny_default: PermissionOption | None = None


def looks_like_command(value: Any) -> bool:
    return isinstance(value, str) and bool(_COMMAND_RE.match(value.strip()))


def action_label(tool_name: str | None, hint: str | None = None) -> str:
    """Classify a tool name into a short action label."""
    raw = (tool_name or "").lower()
    for keywords, label in _ACTION_LABELS:
        if any(keyword in raw for keyword in keywords):
            return label
    if hint and len(hint) < _HINT_LIMIT:
        return "Run " + hint
    return "Review Request"


def _field(data: Any, *path: str) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def _first(*values: Any) -> str:
    for value in values:
        if value:
            return str(value)
    return ""


def _content_text(content: Any) -> str:
    if not content:
        return ""
    if isinstance(content, str):
        return content.strip()
    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, str):
                parts.append(item)
            elif isinstance(item, dict):
                parts.append(_first(item.get("text"), item.get("content")))
        return "\n".join(p for p in parts if p).strip()
    if isinstance(content, dict):
        return _first(content.get("text"), content.get("content")).strip()
    return ""


def _raw_text(raw_input: Any) -> str:
    if raw_input is None:
        return ""
    if isinstance(raw_input, str):
        return raw_input.strip()
    try:
        return json.dumps(raw_input, indent=2).strip()
    except (TypeError, ValueError):
        return str(raw_input).strip()


def normalize(tool_name: str | None, description: str | None, raw_input: Any) -> Normalized:
    """Derive the canonical action description for a permission prompt.

    Args:
        tool_name: Tool the agent wants to run (drives the action label)
        description: Producer-supplied description, used as a reason fallback
        raw_input: Tool input as a string, JSON text or decoded mapping

    Returns:
        Normalized action description; unparseable input degrades to text
    """
    description = description or ""
    raw = _raw_text(raw_input)

    parsed = raw_input if isinstance(raw_input, (dict, list)) else try_parse_json(raw)
    payload: dict = parsed if isinstance(parsed, dict) else {}

    tool_call = payload.get("toolCall") or payload.get("tool_call") or (
        payload if payload.get("kind") else None
    )
    call: dict = tool_call if isinstance(tool_call, dict) else payload

    kind = str(call.get("kind") or "")
    title = _first(call.get("title"), payload.get("title"), description)
    content_text = _content_text(call.get("content"))

    command = _first(
        call.get("cmd"),
        call.get("command"),
        payload.get("cmd"),
        payload.get("command"),
        payload.get("shell"),
        _field(payload, "args", "cmd"),
        _field(payload, "parameters", "cmd"),
        _field(payload, "input", "cmd"),
        _field(payload, "input", "command"),
    )
    reason = _first(
        payload.get("justification"),
        payload.get("reason"),
        payload.get("description"),
        title,
        description,
    )
    amendment = _first(
        payload.get("proposed_amendment"),
        payload.get("proposedAmendment"),
        payload.get("amendment"),
        payload.get("proposal"),
    )
    summary = _first(payload.get("summary"), payload.get("message"))

    display_command = command
    if not display_command and looks_like_command(raw):
        display_command = raw
    if not display_command and looks_like_command(summary):
        display_command = summary

    label = action_label(tool_name, display_command or summary or raw)

    if kind == "switch_mode":
        label = "Exit Plan Mode"
        display_command = display_command or title or "Switch mode"

    if not amendment and display_command and reason:
        amendment = display_command

    if kind == "switch_mode" and content_text:
        reason = truncate_text(content_text, _SWITCH_MODE_REASON_LIMIT) or ""

    return Normalized(
        action_label=label,
        command=display_command or summary,
        reason=reason,
        amendment=amendment,
        raw=raw,
    )


def is_deny(option: PermissionOption) -> bool:
    """Heuristic: does choosing this option refuse the request?"""
    option_id = option.id.lower()
    label = option.label.lower()
    return (
        option.kind.lower().startswith("reject")
        or option.style.lower() == "danger"
        or "deny" in option_id
        or "reject" in option_id
        or label.startswith("no")
        or "deny" in label
        or "reject" in label
    )


def split_options(
    options: list[PermissionOption],
) -> tuple[list[PermissionOption], list[PermissionOption]]:
    allow: list[PermissionOption] = []
    deny: list[PermissionOption] = []
    for option in options:
        (deny if is_deny(option) else allow).append(option)
    return allow, deny


def option_label(option: PermissionOption | None) -> str:
    """Short button label for a response option."""
    if option is None:
        return "Confirm"
    kind = option.kind.lower()
    if kind == "allow_always":
        return "Always"
    if kind == "allow_once":
        return "Yes"
    if kind in ("reject_once", "reject_always"):
        return "No, provide feedback"
    option_id = option.id.lower()
    if option_id == "auto_accept":
        return "Always"
    if option_id == "manual":
        return "Yes"
    if option_id == "deny":
        return "No, provide feedback"
    return option.label or "Confirm"


def build_actions(options: list[PermissionOption]) -> PermissionActions:
    """Lay out response options as flat buttons or allow/deny dropdown groups."""
    allow, deny = split_options(options)
    use_dropdown = len(allow) > 1 or len(deny) > 1 or len(options) > _MAX_FLAT_OPTIONS
    if not use_dropdown:
        return PermissionActions(layout="buttons", options=list(options), allow=allow, deny=deny)
    return PermissionActions(
        layout="dropdown",
        options=list(options),
        allow=allow,
        deny=deny,
        allow_default=allow[0] if allow else (options[0] if options else None),
        deny_default=deny[0] if deny else None,
    )


def parse_options(raw: Any) -> list[PermissionOption]:
    """Decode producer option lists, skipping entries that are not mappings."""
    if not isinstance(raw, list):
        return []
    return [PermissionOption.from_dict(item) for item in raw if isinstance(item, dict)]


def build_request(
    request_id: str,
    tool_name: str | None,
    description: str | None,
    raw_input: Any,
    options: Any = None,
) -> PermissionRequest:
    """Build a waiting ``PermissionRequest`` from a raw inbound prompt."""
    normalized = normalize(tool_name, description, raw_input)
    return PermissionRequest(
        request_id=request_id,
        tool_name=tool_name or "",
        action_label=normalized.action_label,
        command=normalized.command,
        reason=normalized.reason,
        amendment=normalized.amendment,
        raw_details=normalized.raw,
        options=parse_options(options),
    )
