"""Job trace windowing and formatting."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .exceptions import InvalidArgumentError

DEFAULT_LINES_LIMIT = 1000

_RULE = "━" * 60


@dataclass(frozen=True)
class TraceWindow:
    """A head or tail slice of a job log."""

    text: str
    total_lines: int
    shown_lines: int
    truncated: bool
    tail: bool


def check_lines_limit(lines_limit: int) -> None:
    if lines_limit < 1:
        msg = f"lines_limit must be a positive integer, got {lines_limit}"
        raise InvalidArgumentError(msg)


def window_lines(
    raw_text: str, lines_limit: int = DEFAULT_LINES_LIMIT, tail: bool = False
) -> TraceWindow:
    """Keep the first (or, with *tail*, the last) *lines_limit* lines of *raw_text*."""
    check_lines_limit(lines_limit)
    lines = raw_text.split("\n")
    window = lines[-lines_limit:] if tail else lines[:lines_limit]
    return TraceWindow(
        text="\n".join(window),
        total_lines=len(lines),
        shown_lines=len(window),
        truncated=len(lines) > lines_limit,
        tail=tail,
    )


def format_trace(window: TraceWindow, project_id: str | int, job_id: int) -> str:
    """Render *window* with a summary header and, if truncated, a footer hint."""
    parts = [
        "📋 Job Trace Summary",
        _RULE,
        f"📊 Total lines: {window.total_lines}",
        f"📄 Showing: {window.shown_lines} lines {'(last)' if window.tail else '(first)'}",
        f"🔗 Project: {project_id}",
        f"🚀 Job ID: {job_id}",
        "",
        "📝 Log Content:",
        _RULE,
        window.text,
    ]
    if window.truncated:
        parts += [
            "",
            f"⚠️  Log truncated. Total lines: {window.total_lines}, "
            f"Showing: {window.shown_lines}",
        ]
        if window.tail:
            parts.append("💡 Use tail:false to see the beginning of the log")
        else:
            parts.append("💡 Use tail:true to see the end of the log")
    return "\n".join(parts)


def render_trace(
    raw_text: Any,
    project_id: str | int,
    job_id: int,
    *,
    lines_limit: int = DEFAULT_LINES_LIMIT,
    tail: bool = False,
    raw: bool = False,
) -> str:
    """Produce the text returned by the job trace tool."""
    check_lines_limit(lines_limit)
    if not isinstance(raw_text, str) or not raw_text:
        return f"No log content available for job {job_id} in project {project_id}"

    window = window_lines(raw_text, lines_limit, tail)
    if raw:
        return window.text
    return format_trace(window, project_id, job_id)
