"""Resolve a merge request IID from either an explicit IID or its source branch."""

from __future__ import annotations

import logging

from .client import GitLabClient
from .exceptions import MissingReferenceError, ReferenceNotFoundError
from .models.merge_requests import MergeRequest

logger = logging.getLogger(__name__)


async def _first_mr_for_branch(
    client: GitLabClient, project_id: str | int, source_branch: str, state: str | None
) -> MergeRequest | None:
    params: dict[str, str | int] = {"source_branch": source_branch, "per_page": 1}
    if state:
        params["state"] = state
    mrs, _ = await client.list_merge_requests(project_id, params)
    if not mrs:
        return None
    return MergeRequest.model_validate(mrs[0])


async def resolve_mr_iid(
    client: GitLabClient,
    project_id: str | int,
    mr_iid: int | None = None,
    source_branch: str | None = None,
) -> int:
    """Return the IID of the merge request identified by *mr_iid* or *source_branch*.

    An explicit IID always wins and costs no request. Otherwise the open MR for
    the branch is looked up, falling back to a search across all states. When
    several MRs match, the first one returned by GitLab is used.
    """
    if mr_iid is not None:
        return mr_iid

    if not source_branch:
        raise MissingReferenceError

    mr = await _first_mr_for_branch(client, project_id, source_branch, "opened")
    if mr is None:
        logger.debug("No open MR for branch %r, searching all states", source_branch)
        mr = await _first_mr_for_branch(client, project_id, source_branch, None)
    if mr is None:
        raise ReferenceNotFoundError(source_branch)

    logger.debug("Resolved branch %r to MR !%s", source_branch, mr.iid)
    return mr.iid
