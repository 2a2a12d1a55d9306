"""Base model for GitLab API responses."""

from __future__ import annotations

from pydantic import BaseModel


class GitLabModel(BaseModel):
    """Base model for the GitLab API payloads the server inspects.

    Unknown fields are ignored. Tools return GitLab's JSON as received, not these models.
    """

    model_config = {"extra": "ignore", "populate_by_name": True}
