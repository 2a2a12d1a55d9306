"""Merge request and discussion models."""

from __future__ import annotations

from pydantic import JsonValue

from .base import GitLabModel


class MergeRequest(GitLabModel):
    iid: int
    title: str = ""
    state: str | None = None
    source_branch: str | None = None
    draft: bool | None = None


class DiscussionNote(GitLabModel):
    id: int | None = None
    system: bool | None = None
    # Kept as sent so only the JSON booleans true/false count.
    resolvable: JsonValue = None
    resolved: JsonValue = None

    @property
    def is_unresolved(self) -> bool:
        return self.resolvable is True and self.resolved is False


class Discussion(GitLabModel):
    id: str | None = None
    individual_note: bool | None = None
    notes: list[DiscussionNote] | None = None

    @property
    def is_unresolved(self) -> bool:
        """A discussion stays open while any resolvable note is unresolved."""
        return any(note.is_unresolved for note in self.notes or [])
