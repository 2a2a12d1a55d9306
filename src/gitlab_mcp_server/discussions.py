"""Collect the unresolved discussions of a merge request across all pages."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from .client import GitLabClient
from .models.merge_requests import Discussion

logger = logging.getLogger(__name__)

MAX_DISCUSSION_PAGES = 100
DISCUSSION_PAGE_SIZE = 100


@dataclass
class UnresolvedDiscussions:
    discussions: list[dict[str, Any]] = field(default_factory=list)
    total_fetched: int = 0

    @property
    def unresolved_count(self) -> int:
        return len(self.discussions)

    def to_dict(self) -> dict[str, Any]:
        return {
            "discussions": self.discussions,
            "metadata": {
                "total_fetched": self.total_fetched,
                "unresolved_count": self.unresolved_count,
                "filtered": True,
            },
        }


async def fetch_all_discussions(
    client: GitLabClient,
    project_id: str | int,
    mr_iid: int,
    page_size: int = DISCUSSION_PAGE_SIZE,
) -> list[dict[str, Any]]:
    """Fetch every discussion page, following ``x-next-page`` up to the page cap."""
    discussions: list[dict[str, Any]] = []
    page = 1
    while page <= MAX_DISCUSSION_PAGES:
        data, headers = await client.list_mr_discussions_page(project_id, mr_iid, page, page_size)
        discussions.extend(data or [])
        if not headers.get("x-next-page"):
            break
        page += 1
    else:
        logger.warning(
            "Stopped fetching discussions for MR !%s after %d pages; results may be incomplete",
            mr_iid,
            MAX_DISCUSSION_PAGES,
        )
    return discussions


async def list_unresolved_discussions(
    client: GitLabClient,
    project_id: str | int,
    mr_iid: int,
    page_size: int = DISCUSSION_PAGE_SIZE,
) -> UnresolvedDiscussions:
    """Return the discussions of MR *mr_iid* that still have an unresolved note.

    A discussion counts as unresolved when any of its notes is resolvable and
    not yet resolved. Discussions are returned as GitLab sent them, in order.
    """
    discussions = await fetch_all_discussions(client, project_id, mr_iid, page_size)
    unresolved = [d for d in discussions if Discussion.model_validate(d).is_unresolved]
    logger.debug(
        "MR !%s: %d of %d discussions unresolved", mr_iid, len(unresolved), len(discussions)
    )
    return UnresolvedDiscussions(discussions=unresolved, total_fetched=len(discussions))
