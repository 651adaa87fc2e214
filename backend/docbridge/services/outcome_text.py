"""Render a ToolCallOutcome as the markdown the agent reads back from the tool."""

from __future__ import annotations

import json
from typing import Any

from docbridge.schemas.bridge import ToolCallOutcome


def _dump(data: Any) -> str:
    try:
        return json.dumps(data, ensure_ascii=False, indent=2, default=str)
    except (TypeError, ValueError):
        return str(data)


def render_outcome_text(outcome: ToolCallOutcome) -> str:
    if outcome.status == "completed":
        return _render_success(outcome)
    if outcome.status == "blocked":
        return outcome.remediation or outcome.message or "Script was blocked before execution."
    if outcome.status == "timeout":
        return _render_timeout(outcome)
    return _render_failure(outcome)


def _render_success(outcome: ToolCallOutcome) -> str:
    lines = ["Script executed successfully."]
    if outcome.data is not None:
        lines += ["", "Returned data:", "```json", _dump(outcome.data), "```"]
    if outcome.advisories:
        lines += ["", "Optimisation suggestions:"]
        lines += [f"- {item}" for item in outcome.advisories]
    for hint in outcome.hints:
        lines += ["", f"Note: {hint}"]
    return "\n".join(lines)


def _render_timeout(outcome: ToolCallOutcome) -> str:
    lines = [f"Execution timed out. {outcome.message or ''}".rstrip()]
    lines += [
        "",
        "Possible causes:",
        "- No document client is connected to the bridge.",
        "- The script is waiting on a long-running operation.",
    ]
    if outcome.advisories:
        lines += ["", "Suggestions:"]
        lines += [f"- {item}" for item in outcome.advisories]
    return "\n".join(lines)


def _render_failure(outcome: ToolCallOutcome) -> str:
    if outcome.remediation:
        return outcome.remediation
    kind = outcome.kind.value if outcome.kind else "Unknown"
    lines = [f"Execution failed ({kind})."]
    if outcome.message:
        lines += ["", outcome.message]
    if outcome.code:
        lines.append(f"Error code: {outcome.code}")
    if outcome.terminal:
        lines += ["", "Do not retry this script automatically."]
    return "\n".join(lines)
