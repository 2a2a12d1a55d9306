"""Draft/ready classification of merge request titles.

A merge request is a draft when its title starts with one of DRAFT_PREFIXES.
The tools built on these helpers read the MR and then conditionally write a new
title without any locking, so two concurrent toggles of the same MR can lose
an update.
"""

from __future__ import annotations

DRAFT_PREFIXES = ("Draft: ", "WIP: ")


def draft_prefix(title: str) -> str | None:
    """Return the draft marker *title* starts with, if any."""
    return next((prefix for prefix in DRAFT_PREFIXES if title.startswith(prefix)), None)


def is_draft(title: str) -> bool:
    return draft_prefix(title) is not None


def draft_title(title: str) -> str | None:
    """Title marked as draft, or None when it already is one."""
    if is_draft(title):
        return None
    return f"Draft: {title}"


def ready_title(title: str) -> str | None:
    """Title with one leading draft marker removed, or None when already ready."""
    prefix = draft_prefix(title)
    if prefix is None:
        return None
    return title[len(prefix) :]
