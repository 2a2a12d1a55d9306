"""GitLab MCP server: all tool registrations."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Annotated, Any

import httpx
from fastmcp import Context, FastMCP
from fastmcp.exceptions import ToolError
from pydantic import Field

from ..client import GitLabClient, Page
from ..config import GitLabConfig
from ..discussions import list_unresolved_discussions
from ..drafts import draft_title, ready_title
from ..exceptions import (
    GitLabApiError,
    GitLabAuthError,
    GitLabNotFoundError,
    GitLabWriteDisabledError,
    InvalidArgumentError,
)
from ..resolver import resolve_mr_iid
from ..traces import DEFAULT_LINES_LIMIT, check_lines_limit, render_trace

logger = logging.getLogger(__name__)

ProjectId = Annotated[
    str | None,
    Field(
        description=(
            "Project ID or URL-encoded path (e.g. 'my-group/my-project'). "
            "Defaults to GITLAB_DEFAULT_PROJECT when omitted"
        )
    ),
]
MrIid = Annotated[int, Field(description="Merge request IID")]
OptionalMrIid = Annotated[
    int | None, Field(description="Merge request IID (or use source_branch)")
]
SourceBranchRef = Annotated[
    str | None, Field(description="Source branch of the merge request (used when no IID is given)")
]
PerPage = Annotated[int | None, Field(description="Results per page (1-100)", ge=1, le=100)]


@asynccontextmanager
async def lifespan(server: FastMCP) -> AsyncIterator[dict[str, Any]]:
    config = GitLabConfig.from_env()
    config.validate()
    client = GitLabClient(config)
    logger.info("Using GitLab at %s (read_only=%s)", config.url, config.read_only)
    try:
        yield {"client": client, "config": config}
    finally:
        await client.close()


mcp = FastMCP(
    name="GitLab MCP Server",
    instructions=(
        "Provides tools for the GitLab REST API: projects, issues, merge requests,"
        " discussions, repository, pipelines and job logs. Merge request tools that"
        " take source_branch resolve it to the matching MR."
    ),
    lifespan=lifespan,
)


def _get_client(ctx: Context) -> GitLabClient:
    return ctx.request_context.lifespan_context["client"]


def _get_config(ctx: Context) -> GitLabConfig:
    return ctx.request_context.lifespan_context["config"]


def _check_write(ctx: Context) -> None:
    if _get_config(ctx).read_only:
        raise GitLabWriteDisabledError


def _project(ctx: Context, project_id: str | None) -> str:
    project = project_id or _get_config(ctx).default_project
    if not project:
        msg = "project_id is required (or set GITLAB_DEFAULT_PROJECT)"
        raise InvalidArgumentError(msg)
    return project


def _ok(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=False)


def _header_int(headers: httpx.Headers, name: str) -> int | None:
    value = headers.get(name, "").strip()
    return int(value) if value.isdigit() else None


def _paginated(page: Page) -> str:
    """Wrap a list response with the pagination headers GitLab sent along with it.

    GitLab omits X-Total on very large collections, so total may be null while
    has_more is still true.
    """
    items, headers = page
    next_page = _header_int(headers, "x-next-page")
    return _ok(
        {
            "items": items,
            "count": len(items),
            "total": _header_int(headers, "x-total"),
            "next_page": next_page,
            "has_more": next_page is not None,
        }
    )


def _deleted(**ids: Any) -> str:
    return _ok({"status": "deleted", **ids})


def _hint(error: Exception) -> str | None:
    if isinstance(error, GitLabWriteDisabledError):
        return "Server is in read-only mode. Set GITLAB_READ_ONLY=false to enable writes."
    if isinstance(error, GitLabNotFoundError):
        return "Verify the resource ID/path. Use gitlab_get_project to confirm it exists."
    if isinstance(error, GitLabAuthError):
        return "Check the GitLab token permissions. The token needs the 'api' scope."
    if isinstance(error, GitLabApiError):
        return {
            409: "Conflict: the resource may already exist or be locked.",
            422: "Validation failed: check required fields and formats.",
            429: "Rate limited. Wait before retrying.",
        }.get(error.status_code)
    return None


def _err(error: Exception) -> ToolError:
    """Turn any failure into a ToolError, which MCP reports with isError set."""
    message = str(error) or type(error).__name__
    if hint := _hint(error):
        message = f"{message}\nHint: {hint}"
    logger.warning("Tool call failed: %s", message)
    return ToolError(message)


# ════════════════════════════════════════════════════════════════════
# Projects
# ════════════════════════════════════════════════════════════════════


@mcp.tool(
    tags={"gitlab", "projects", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_list_projects(
    ctx: Context,
    search: Annotated[str | None, Field(description="Search projects by name")] = None,
    visibility: Annotated[
        str | None, Field(description="public, internal, or private")
    ] = None,
    owned: Annotated[
        bool | None,
        Field(description="Only projects owned by the current user (default: true)"),
    ] = None,
    simple: Annotated[bool, Field(description="Return minimal project info")] = True,
    per_page: PerPage = None,
) -> str:
    """List projects visible to the current user.

    Owned projects only unless owned=false or GITLAB_MCP_PROJECT_SCOPE=all.
    """
    try:
        config = _get_config(ctx)
        params: dict[str, Any] = {}
        if search:
            params["search"] = search
        if visibility:
            params["visibility"] = visibility
        if owned is not False and config.project_scope == "owned":
            params["owned"] = True
        if simple:
            params["simple"] = True
            params["statistics"] = False
        if per_page:
            params["per_page"] = per_page
        result = await _get_client(ctx).list_projects(params)
        return _paginated(result)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "projects", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_get_project(ctx: Context, project_id: ProjectId = None) -> str:
    """Get details of a GitLab project."""
    try:
        data = await _get_client(ctx).get_project(_project(ctx, project_id))
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


# ════════════════════════════════════════════════════════════════════
# Issues
# ════════════════════════════════════════════════════════════════════


@mcp.tool(
    tags={"gitlab", "issues", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_list_issues(
    ctx: Context,
    project_id: ProjectId = None,
    state: Annotated[str | None, Field(description="opened, closed, or all")] = None,
    labels: Annotated[str | None, Field(description="Comma-separated labels")] = None,
    assignee_id: Annotated[int | None, Field(description="Filter by assignee user ID")] = None,
    author_id: Annotated[int | None, Field(description="Filter by author user ID")] = None,
    search: Annotated[str | None, Field(description="Search in title/description")] = None,
    scope: Annotated[str | None, Field(description="created_by_me, assigned_to_me, or all")] = None,
    per_page: PerPage = None,
) -> str:
    """List issues in a project."""
    try:
        params: dict[str, Any] = {}
        if state:
            params["state"] = state
        if labels:
            params["labels"] = labels
        if assignee_id is not None:
            params["assignee_id"] = assignee_id
        if author_id is not None:
            params["author_id"] = author_id
        if search:
            params["search"] = search
        if scope:
            params["scope"] = scope
        if per_page:
            params["per_page"] = per_page
        result = await _get_client(ctx).list_issues(_project(ctx, project_id), params or None)
        return _paginated(result)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "issues", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_get_issue(
    ctx: Context,
    issue_iid: Annotated[int, Field(description="Issue IID")],
    project_id: ProjectId = None,
) -> str:
    """Get a single issue."""
    try:
        data = await _get_client(ctx).get_issue(_project(ctx, project_id), issue_iid)
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "issues", "write"},
    annotations={"readOnlyHint": False, "openWorldHint": True},
)
async def gitlab_create_issue(
    ctx: Context,
    title: Annotated[str, Field(description="Issue title", min_length=1)],
    project_id: ProjectId = None,
    description: Annotated[str | None, Field(description="Issue description")] = None,
    labels: Annotated[str | None, Field(description="Comma-separated labels")] = None,
    assignee_ids: Annotated[list[int] | None, Field(description="User IDs to assign")] = None,
    milestone_id: Annotated[int | None, Field(description="Milestone ID")] = None,
) -> str:
    """Create a new issue."""
    try:
        _check_write(ctx)
        params: dict[str, Any] = {"title": title}
        if description is not None:
            params["description"] = description
        if labels is not None:
            params["labels"] = labels
        if assignee_ids is not None:
            params["assignee_ids"] = assignee_ids
        if milestone_id is not None:
            params["milestone_id"] = milestone_id
        data = await _get_client(ctx).create_issue(_project(ctx, project_id), params)
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


# ════════════════════════════════════════════════════════════════════
# Merge Requests
# ════════════════════════════════════════════════════════════════════


@mcp.tool(
    tags={"gitlab", "merge_requests", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_list_mrs(
    ctx: Context,
    project_id: ProjectId = None,
    state: Annotated[str | None, Field(description="opened, closed, merged, or all")] = None,
    scope: Annotated[str | None, Field(description="created_by_me, assigned_to_me, or all")] = None,
    source_branch: Annotated[str | None, Field(description="Filter by source branch")] = None,
    target_branch: Annotated[str | None, Field(description="Filter by target branch")] = None,
    assignee_id: Annotated[int | None, Field(description="Filter by assignee user ID")] = None,
    author_id: Annotated[int | None, Field(description="Filter by author user ID")] = None,
    reviewer_id: Annotated[int | None, Field(description="Filter by reviewer user ID")] = None,
    reviewer_username: Annotated[
        str | None, Field(description="Filter by reviewer username")
    ] = None,
    search: Annotated[str | None, Field(description="Search in title/description")] = None,
    per_page: PerPage = None,
) -> str:
    """List merge requests for a project."""
    try:
        params: dict[str, Any] = {}
        if state:
            params["state"] = state
        if scope:
            params["scope"] = scope
        if source_branch:
            params["source_branch"] = source_branch
        if target_branch:
            params["target_branch"] = target_branch
        if assignee_id is not None:
            params["assignee_id"] = assignee_id
        if author_id is not None:
            params["author_id"] = author_id
        if reviewer_id is not None:
            params["reviewer_id"] = reviewer_id
        if reviewer_username:
            params["reviewer_username"] = reviewer_username
        if search:
            params["search"] = search
        if per_page:
            params["per_page"] = per_page
        result = await _get_client(ctx).list_merge_requests(
            _project(ctx, project_id), params or None
        )
        return _paginated(result)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "merge_requests", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_get_mr(
    ctx: Context,
    project_id: ProjectId = None,
    merge_request_iid: OptionalMrIid = None,
    source_branch: SourceBranchRef = None,
) -> str:
    """Get merge request details by IID or source branch.

    Returns title, state, source/target branches, author, diff_refs, and merge status.
    """
    try:
        client = _get_client(ctx)
        project = _project(ctx, project_id)
        iid = await resolve_mr_iid(client, project, merge_request_iid, source_branch)
        data = await client.get_merge_request(project, iid)
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "merge_requests", "write"},
    annotations={"readOnlyHint": False, "openWorldHint": True},
)
async def gitlab_create_mr(
    ctx: Context,
    source_branch: Annotated[str, Field(description="Source branch", min_length=1)],
    target_branch: Annotated[str, Field(description="Target branch", min_length=1)],
    title: Annotated[str, Field(description="MR title", min_length=1)],
    project_id: ProjectId = None,
    description: Annotated[str | None, Field(description="MR description")] = None,
    assignee_ids: Annotated[list[int] | None, Field(description="User IDs to assign")] = None,
    reviewer_ids: Annotated[list[int] | None, Field(description="User IDs to review")] = None,
    labels: Annotated[str | None, Field(description="Comma-separated labels")] = None,
    milestone_id: Annotated[int | None, Field(description="Milestone ID")] = None,
) -> str:
    """Create a new merge request."""
    try:
        _check_write(ctx)
        params: dict[str, Any] = {
            "source_branch": source_branch,
            "target_branch": target_branch,
            "title": title,
        }
        if description is not None:
            params["description"] = description
        if assignee_ids is not None:
            params["assignee_ids"] = assignee_ids
        if reviewer_ids is not None:
            params["reviewer_ids"] = reviewer_ids
        if labels is not None:
            params["labels"] = labels
        if milestone_id is not None:
            params["milestone_id"] = milestone_id
        data = await _get_client(ctx).create_merge_request(_project(ctx, project_id), params)
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "merge_requests", "write"},
    annotations={"readOnlyHint": False, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_update_mr(
    ctx: Context,
    project_id: ProjectId = None,
    merge_request_iid: OptionalMrIid = None,
    source_branch: SourceBranchRef = None,
    title: Annotated[str | None, Field(description="New title")] = None,
    description: Annotated[str | None, Field(description="New description")] = None,
    state_event: Annotated[str | None, Field(description="close or reopen")] = None,
    target_branch: Annotated[str | None, Field(description="New target branch")] = None,
    assignee_id: Annotated[
        int | None, Field(description="Assign a user (0 to unassign)")
    ] = None,
    assignee_ids: Annotated[list[int] | None, Field(description="User IDs to assign")] = None,
    reviewer_ids: Annotated[list[int] | None, Field(description="User IDs to review")] = None,
    milestone_id: Annotated[int | None, Field(description="Milestone ID (0 to remove)")] = None,
    labels: Annotated[str | None, Field(description="Comma-separated labels")] = None,
    remove_source_branch: Annotated[
        bool | None, Field(description="Delete source branch on merge")
    ] = None,
    squash: Annotated[bool | None, Field(description="Squash commits on merge")] = None,
    allow_collaboration: Annotated[
        bool | None, Field(description="Allow commits from members who can merge")
    ] = None,
    merge_when_pipeline_succeeds: Annotated[
        bool | None, Field(description="Merge when the pipeline succeeds")
    ] = None,
) -> str:
    """Update a merge request identified by IID or source branch."""
    try:
        _check_write(ctx)
        client = _get_client(ctx)
        project = _project(ctx, project_id)
        iid = await resolve_mr_iid(client, project, merge_request_iid, source_branch)
        fields = {
            "title": title,
            "description": description,
            "state_event": state_event,
            "target_branch": target_branch,
            "assignee_id": assignee_id,
            "assignee_ids": assignee_ids,
            "reviewer_ids": reviewer_ids,
            "milestone_id": milestone_id,
            "labels": labels,
            "remove_source_branch": remove_source_branch,
            "squash": squash,
            "allow_collaboration": allow_collaboration,
            "merge_when_pipeline_succeeds": merge_when_pipeline_succeeds,
        }
        params = {k: v for k, v in fields.items() if v is not None}
        data = await client.update_merge_request(project, iid, params)
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "merge_requests", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_mr_changes(
    ctx: Context,
    project_id: ProjectId = None,
    merge_request_iid: OptionalMrIid = None,
    source_branch: SourceBranchRef = None,
    view: Annotated[str | None, Field(description="Diff view: inline or parallel")] = None,
) -> str:
    """Get file changes of a merge request. Returns list of diffs with old/new paths and content."""
    try:
        client = _get_client(ctx)
        project = _project(ctx, project_id)
        iid = await resolve_mr_iid(client, project, merge_request_iid, source_branch)
        data = await client.get_merge_request_changes(project, iid, view)
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "merge_requests", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_list_mr_diffs(
    ctx: Context,
    project_id: ProjectId = None,
    merge_request_iid: OptionalMrIid = None,
    source_branch: SourceBranchRef = None,
    page: Annotated[int | None, Field(description="Page number", ge=1)] = None,
    per_page: PerPage = None,
    unidiff: Annotated[bool | None, Field(description="Return diffs in unified format")] = None,
) -> str:
    """List the per-file diffs of a merge request, one page at a time."""
    try:
        client = _get_client(ctx)
        project = _project(ctx, project_id)
        iid = await resolve_mr_iid(client, project, merge_request_iid, source_branch)
        params: dict[str, Any] = {}
        if page:
            params["page"] = page
        if per_page:
            params["per_page"] = per_page
        if unidiff is not None:
            params["unidiff"] = unidiff
        result = await client.list_merge_request_diffs(project, iid, params or None)
        return _paginated(result)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "merge_requests", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_get_branch_diffs(
    ctx: Context,
    from_ref: Annotated[str, Field(description="Base branch, tag or commit SHA", min_length=1)],
    to_ref: Annotated[str, Field(description="Target branch, tag or commit SHA", min_length=1)],
    project_id: ProjectId = None,
    straight: Annotated[
        bool | None, Field(description="Compare from..to directly instead of from the merge base")
    ] = None,
) -> str:
    """Compare two branches, tags or commits."""
    try:
        data = await _get_client(ctx).compare(_project(ctx, project_id), from_ref, to_ref, straight)
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "merge_requests", "write"},
    annotations={"readOnlyHint": False, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_mark_mr_as_draft(
    ctx: Context,
    project_id: ProjectId = None,
    merge_request_iid: OptionalMrIid = None,
    source_branch: SourceBranchRef = None,
) -> str:
    """Mark a merge request as draft by prefixing its title with 'Draft: '.

    Does nothing if the title already starts with 'Draft: ' or 'WIP: '.
    """
    try:
        _check_write(ctx)
        client = _get_client(ctx)
        project = _project(ctx, project_id)
        iid = await resolve_mr_iid(client, project, merge_request_iid, source_branch)
        mr = await client.get_merge_request(project, iid)
        title = draft_title(mr.get("title") or "")
        if title is None:
            return _ok({"message": "Merge request is already marked as draft", **mr})
        data = await client.update_merge_request(project, iid, {"title": title})
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "merge_requests", "write"},
    annotations={"readOnlyHint": False, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_mark_mr_as_ready(
    ctx: Context,
    project_id: ProjectId = None,
    merge_request_iid: OptionalMrIid = None,
    source_branch: SourceBranchRef = None,
) -> str:
    """Mark a merge request as ready by removing its 'Draft: ' or 'WIP: ' title prefix."""
    try:
        _check_write(ctx)
        client = _get_client(ctx)
        project = _project(ctx, project_id)
        iid = await resolve_mr_iid(client, project, merge_request_iid, source_branch)
        mr = await client.get_merge_request(project, iid)
        title = ready_title(mr.get("title") or "")
        if title is None:
            return _ok({"message": "Merge request is already marked as ready", **mr})
        data = await client.update_merge_request(project, iid, {"title": title})
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


# ════════════════════════════════════════════════════════════════════
# MR Templates
# ════════════════════════════════════════════════════════════════════


@mcp.tool(
    tags={"gitlab", "templates", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_list_mr_templates(ctx: Context, project_id: ProjectId = None) -> str:
    """List the merge request description templates of a project."""
    try:
        result = await _get_client(ctx).list_mr_templates(_project(ctx, project_id))
        return _paginated(result)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "templates", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_get_mr_template(
    ctx: Context,
    name: Annotated[str, Field(description="Template name", min_length=1)],
    project_id: ProjectId = None,
) -> str:
    """Get a merge request description template by name."""
    try:
        data = await _get_client(ctx).get_mr_template(_project(ctx, project_id), name)
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


# ════════════════════════════════════════════════════════════════════
# MR Notes
# ════════════════════════════════════════════════════════════════════


@mcp.tool(
    tags={"gitlab", "notes", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_list_mr_notes(
    ctx: Context,
    merge_request_iid: MrIid,
    project_id: ProjectId = None,
    sort: Annotated[str | None, Field(description="asc or desc")] = None,
    order_by: Annotated[str | None, Field(description="created_at or updated_at")] = None,
    page: Annotated[int | None, Field(description="Page number", ge=1)] = None,
    per_page: PerPage = None,
) -> str:
    """List notes (comments) on a merge request."""
    try:
        params: dict[str, Any] = {}
        if sort:
            params["sort"] = sort
        if order_by:
            params["order_by"] = order_by
        if page:
            params["page"] = page
        if per_page:
            params["per_page"] = per_page
        result = await _get_client(ctx).list_mr_notes(
            _project(ctx, project_id), merge_request_iid, params or None
        )
        return _paginated(result)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "notes", "write"},
    annotations={"readOnlyHint": False, "openWorldHint": True},
)
async def gitlab_create_mr_note(
    ctx: Context,
    merge_request_iid: MrIid,
    body: Annotated[str, Field(description="Comment body (markdown)", min_length=1)],
    project_id: ProjectId = None,
) -> str:
    """Add a top-level note (comment) to a merge request."""
    try:
        _check_write(ctx)
        data = await _get_client(ctx).add_mr_note(
            _project(ctx, project_id), merge_request_iid, body
        )
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


# ════════════════════════════════════════════════════════════════════
# MR Discussions
# ════════════════════════════════════════════════════════════════════


@mcp.tool(
    tags={"gitlab", "discussions", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_list_mr_discussions(
    ctx: Context,
    merge_request_iid: MrIid,
    project_id: ProjectId = None,
    unresolved_only: Annotated[
        bool,
        Field(description="Fetch every page and return only discussions with unresolved notes"),
    ] = False,
    page: Annotated[int | None, Field(description="Page number", ge=1)] = None,
    per_page: PerPage = None,
) -> str:
    """List discussion threads on a merge request, including inline code comments.

    With unresolved_only, all pages are fetched and the result carries
    total_fetched and unresolved_count metadata.
    """
    try:
        client = _get_client(ctx)
        project = _project(ctx, project_id)
        if unresolved_only:
            unresolved = await list_unresolved_discussions(client, project, merge_request_iid)
            return _ok(unresolved.to_dict())
        params: dict[str, Any] = {}
        if page:
            params["page"] = page
        if per_page:
            params["per_page"] = per_page
        result = await client.list_mr_discussions(project, merge_request_iid, params or None)
        return _paginated(result)
    except Exception as e:
        raise _err(e) from e


def _diff_position(
    base_sha: str,
    start_sha: str,
    head_sha: str,
    new_path: str,
    old_path: str | None,
    new_line: int | None,
    old_line: int | None,
) -> dict[str, Any]:
    position: dict[str, Any] = {
        "position_type": "text",
        "base_sha": base_sha,
        "start_sha": start_sha,
        "head_sha": head_sha,
        "new_path": new_path,
        "old_path": old_path or new_path,
    }
    if new_line is not None:
        position["new_line"] = new_line
    if old_line is not None:
        position["old_line"] = old_line
    return position


@mcp.tool(
    tags={"gitlab", "discussions", "write"},
    annotations={"readOnlyHint": False, "openWorldHint": True},
)
async def gitlab_create_mr_discussion(
    ctx: Context,
    merge_request_iid: MrIid,
    body: Annotated[str, Field(description="Discussion body (markdown)", min_length=1)],
    project_id: ProjectId = None,
    base_sha: Annotated[str | None, Field(description="Base commit SHA (from diff_refs)")] = None,
    start_sha: Annotated[str | None, Field(description="Start commit SHA (from diff_refs)")] = None,
    head_sha: Annotated[str | None, Field(description="Head commit SHA (from diff_refs)")] = None,
    new_path: Annotated[str | None, Field(description="File path for inline comment")] = None,
    old_path: Annotated[str | None, Field(description="Old file path (for renames)")] = None,
    new_line: Annotated[
        int | None, Field(description="Line in the new file (added or context lines)")
    ] = None,
    old_line: Annotated[
        int | None, Field(description="Line in the old file (removed or context lines)")
    ] = None,
) -> str:
    """Start a discussion on a merge request.

    For an inline diff comment, pass base_sha, start_sha, head_sha and new_path
    (see diff_refs from gitlab_get_mr) plus new_line and/or old_line.
    """
    try:
        _check_write(ctx)
        params: dict[str, Any] = {"body": body}
        if base_sha and start_sha and head_sha and new_path:
            params["position"] = _diff_position(
                base_sha, start_sha, head_sha, new_path, old_path, new_line, old_line
            )
        data = await _get_client(ctx).create_mr_discussion(
            _project(ctx, project_id), merge_request_iid, params
        )
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "discussions", "write"},
    annotations={"readOnlyHint": False, "openWorldHint": True},
)
async def gitlab_reply_to_discussion(
    ctx: Context,
    merge_request_iid: MrIid,
    discussion_id: Annotated[str, Field(description="Discussion ID", min_length=1)],
    body: Annotated[str, Field(description="Reply body (markdown)", min_length=1)],
    project_id: ProjectId = None,
) -> str:
    """Reply to an existing discussion thread."""
    try:
        _check_write(ctx)
        data = await _get_client(ctx).add_discussion_note(
            _project(ctx, project_id), merge_request_iid, discussion_id, body
        )
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "discussions", "write"},
    annotations={"readOnlyHint": False, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_resolve_discussion(
    ctx: Context,
    merge_request_iid: MrIid,
    discussion_id: Annotated[str, Field(description="Discussion ID", min_length=1)],
    project_id: ProjectId = None,
) -> str:
    """Mark a discussion thread as resolved."""
    try:
        _check_write(ctx)
        data = await _get_client(ctx).resolve_discussion(
            _project(ctx, project_id), merge_request_iid, discussion_id, True
        )
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "discussions", "write"},
    annotations={"readOnlyHint": False, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_unresolve_discussion(
    ctx: Context,
    merge_request_iid: MrIid,
    discussion_id: Annotated[str, Field(description="Discussion ID", min_length=1)],
    project_id: ProjectId = None,
) -> str:
    """Reopen a resolved discussion thread."""
    try:
        _check_write(ctx)
        data = await _get_client(ctx).resolve_discussion(
            _project(ctx, project_id), merge_request_iid, discussion_id, False
        )
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "discussions", "write"},
    annotations={"readOnlyHint": False, "openWorldHint": True},
)
async def gitlab_create_discussion_note(
    ctx: Context,
    merge_request_iid: MrIid,
    discussion_id: Annotated[str, Field(description="Discussion ID", min_length=1)],
    body: Annotated[str, Field(description="Note body (markdown)", min_length=1)],
    project_id: ProjectId = None,
) -> str:
    """Add a note to a discussion thread."""
    try:
        _check_write(ctx)
        data = await _get_client(ctx).add_discussion_note(
            _project(ctx, project_id), merge_request_iid, discussion_id, body
        )
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "discussions", "write"},
    annotations={"readOnlyHint": False, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_update_discussion_note(
    ctx: Context,
    merge_request_iid: MrIid,
    discussion_id: Annotated[str, Field(description="Discussion ID", min_length=1)],
    note_id: Annotated[int, Field(description="Note ID")],
    body: Annotated[str, Field(description="New note body (markdown)", min_length=1)],
    project_id: ProjectId = None,
) -> str:
    """Edit a note in a discussion thread."""
    try:
        _check_write(ctx)
        data = await _get_client(ctx).update_discussion_note(
            _project(ctx, project_id), merge_request_iid, discussion_id, note_id, body
        )
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "discussions", "write"},
    annotations={"destructiveHint": True, "readOnlyHint": False, "openWorldHint": True},
)
async def gitlab_delete_discussion_note(
    ctx: Context,
    merge_request_iid: MrIid,
    discussion_id: Annotated[str, Field(description="Discussion ID", min_length=1)],
    note_id: Annotated[int, Field(description="Note ID")],
    project_id: ProjectId = None,
) -> str:
    """Delete a note from a discussion thread."""
    try:
        _check_write(ctx)
        await _get_client(ctx).delete_discussion_note(
            _project(ctx, project_id), merge_request_iid, discussion_id, note_id
        )
        return _deleted(discussion_id=discussion_id, note_id=note_id)
    except Exception as e:
        raise _err(e) from e


# ════════════════════════════════════════════════════════════════════
# User
# ════════════════════════════════════════════════════════════════════


@mcp.tool(
    tags={"gitlab", "users", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_get_user(ctx: Context) -> str:
    """Get the user the configured token belongs to."""
    try:
        data = await _get_client(ctx).get_current_user()
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


# ════════════════════════════════════════════════════════════════════
# Branches
# ════════════════════════════════════════════════════════════════════


@mcp.tool(
    tags={"gitlab", "branches", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_list_branches(
    ctx: Context,
    project_id: ProjectId = None,
    search: Annotated[str | None, Field(description="Filter by branch name")] = None,
    per_page: PerPage = None,
) -> str:
    """List repository branches."""
    try:
        params: dict[str, Any] = {}
        if search:
            params["search"] = search
        if per_page:
            params["per_page"] = per_page
        result = await _get_client(ctx).list_branches(_project(ctx, project_id), params or None)
        return _paginated(result)
    except Exception as e:
        raise _err(e) from e


# ════════════════════════════════════════════════════════════════════
# Commits
# ════════════════════════════════════════════════════════════════════


@mcp.tool(
    tags={"gitlab", "commits", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_list_commits(
    ctx: Context,
    project_id: ProjectId = None,
    ref_name: Annotated[str | None, Field(description="Branch or tag name")] = None,
    since: Annotated[str | None, Field(description="ISO 8601 date, commits after")] = None,
    until: Annotated[str | None, Field(description="ISO 8601 date, commits before")] = None,
    author: Annotated[str | None, Field(description="Filter by commit author")] = None,
    path: Annotated[str | None, Field(description="File path filter")] = None,
    all_branches: Annotated[bool | None, Field(description="Commits from every branch")] = None,
    with_stats: Annotated[bool | None, Field(description="Include line stats")] = None,
    first_parent: Annotated[bool | None, Field(description="Follow only first parents")] = None,
    order: Annotated[str | None, Field(description="default or topo")] = None,
    page: Annotated[int | None, Field(description="Page number", ge=1)] = None,
    per_page: PerPage = None,
) -> str:
    """List repository commits."""
    try:
        filters = {
            "ref_name": ref_name,
            "since": since,
            "until": until,
            "author": author,
            "path": path,
            "all": all_branches,
            "with_stats": with_stats,
            "first_parent": first_parent,
            "order": order,
            "page": page,
            "per_page": per_page,
        }
        params = {k: v for k, v in filters.items() if v is not None}
        result = await _get_client(ctx).list_commits(_project(ctx, project_id), params or None)
        return _paginated(result)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "commits", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_get_commit(
    ctx: Context,
    sha: Annotated[str, Field(description="Commit SHA, branch or tag", min_length=1)],
    project_id: ProjectId = None,
    stats: Annotated[bool | None, Field(description="Include line stats")] = None,
) -> str:
    """Get a specific commit."""
    try:
        params = {"stats": stats} if stats is not None else None
        data = await _get_client(ctx).get_commit(_project(ctx, project_id), sha, params)
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "commits", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_get_commit_diff(
    ctx: Context,
    sha: Annotated[str, Field(description="Commit SHA", min_length=1)],
    project_id: ProjectId = None,
) -> str:
    """Get the file diffs introduced by a commit."""
    try:
        result = await _get_client(ctx).get_commit_diff(_project(ctx, project_id), sha)
        return _paginated(result)
    except Exception as e:
        raise _err(e) from e


# ════════════════════════════════════════════════════════════════════
# Pipelines
# ════════════════════════════════════════════════════════════════════


@mcp.tool(
    tags={"gitlab", "pipelines", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_list_pipelines(
    ctx: Context,
    project_id: ProjectId = None,
    status: Annotated[
        str | None,
        Field(description="Filter by status (running, pending, success, failed, etc.)"),
    ] = None,
    ref: Annotated[str | None, Field(description="Filter by branch/tag")] = None,
    sha: Annotated[str | None, Field(description="Filter by commit SHA")] = None,
    username: Annotated[str | None, Field(description="Filter by triggering user")] = None,
    updated_after: Annotated[str | None, Field(description="ISO 8601 date")] = None,
    updated_before: Annotated[str | None, Field(description="ISO 8601 date")] = None,
    order_by: Annotated[
        str | None, Field(description="id, status, ref, updated_at, or user_id")
    ] = None,
    sort: Annotated[str | None, Field(description="asc or desc")] = None,
    per_page: PerPage = None,
) -> str:
    """List pipelines for a project. Returns id, status, ref, source, created_at."""
    try:
        filters = {
            "status": status,
            "ref": ref,
            "sha": sha,
            "username": username,
            "updated_after": updated_after,
            "updated_before": updated_before,
            "order_by": order_by,
            "sort": sort,
            "per_page": per_page,
        }
        params = {k: v for k, v in filters.items() if v is not None}
        result = await _get_client(ctx).list_pipelines(_project(ctx, project_id), params or None)
        return _paginated(result)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "pipelines", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_get_pipeline(
    ctx: Context,
    pipeline_id: Annotated[int, Field(description="Pipeline ID")],
    project_id: ProjectId = None,
) -> str:
    """Get pipeline details."""
    try:
        data = await _get_client(ctx).get_pipeline(_project(ctx, project_id), pipeline_id)
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "pipelines", "write"},
    annotations={"readOnlyHint": False, "openWorldHint": True},
)
async def gitlab_create_pipeline(
    ctx: Context,
    ref: Annotated[str, Field(description="Branch or tag to run the pipeline for", min_length=1)],
    project_id: ProjectId = None,
    variables: Annotated[
        list[dict[str, str]] | None,
        Field(description="Pipeline variables as [{key, value, variable_type?}]"),
    ] = None,
) -> str:
    """Trigger a new pipeline."""
    try:
        _check_write(ctx)
        data = await _get_client(ctx).create_pipeline(_project(ctx, project_id), ref, variables)
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "pipelines", "write"},
    annotations={"readOnlyHint": False, "openWorldHint": True},
)
async def gitlab_retry_pipeline(
    ctx: Context,
    pipeline_id: Annotated[int, Field(description="Pipeline ID")],
    project_id: ProjectId = None,
) -> str:
    """Retry the failed jobs of a pipeline."""
    try:
        _check_write(ctx)
        data = await _get_client(ctx).retry_pipeline(_project(ctx, project_id), pipeline_id)
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "pipelines", "write"},
    annotations={"readOnlyHint": False, "openWorldHint": True},
)
async def gitlab_cancel_pipeline(
    ctx: Context,
    pipeline_id: Annotated[int, Field(description="Pipeline ID")],
    project_id: ProjectId = None,
) -> str:
    """Cancel a running pipeline."""
    try:
        _check_write(ctx)
        data = await _get_client(ctx).cancel_pipeline(_project(ctx, project_id), pipeline_id)
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "pipelines", "write"},
    annotations={"destructiveHint": True, "readOnlyHint": False, "openWorldHint": True},
)
async def gitlab_delete_pipeline(
    ctx: Context,
    pipeline_id: Annotated[int, Field(description="Pipeline ID")],
    project_id: ProjectId = None,
) -> str:
    """Delete a pipeline and its jobs. This action is irreversible."""
    try:
        _check_write(ctx)
        data = await _get_client(ctx).delete_pipeline(_project(ctx, project_id), pipeline_id)
        if data is None:
            return _deleted(pipeline_id=pipeline_id)
        return _ok(data)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "pipelines", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_get_pipeline_variables(
    ctx: Context,
    pipeline_id: Annotated[int, Field(description="Pipeline ID")],
    project_id: ProjectId = None,
) -> str:
    """Get the variables a pipeline was run with."""
    try:
        result = await _get_client(ctx).get_pipeline_variables(
            _project(ctx, project_id), pipeline_id
        )
        return _paginated(result)
    except Exception as e:
        raise _err(e) from e


# ════════════════════════════════════════════════════════════════════
# Jobs
# ════════════════════════════════════════════════════════════════════


@mcp.tool(
    tags={"gitlab", "jobs", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_list_pipeline_jobs(
    ctx: Context,
    pipeline_id: Annotated[int, Field(description="Pipeline ID")],
    project_id: ProjectId = None,
    scope: Annotated[
        list[str] | None,
        Field(description="Job statuses to include (e.g. ['failed', 'running'])"),
    ] = None,
    include_retried: Annotated[bool | None, Field(description="Include retried jobs")] = None,
) -> str:
    """List the jobs of a pipeline."""
    try:
        result = await _get_client(ctx).list_pipeline_jobs(
            _project(ctx, project_id), pipeline_id, scope, include_retried
        )
        return _paginated(result)
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "jobs", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_get_job_logs(
    ctx: Context,
    job_id: Annotated[int, Field(description="Job ID")],
    project_id: ProjectId = None,
) -> str:
    """Get the complete raw log of a job. Prefer gitlab_get_job_trace for long logs."""
    try:
        log_text = await _get_client(ctx).get_job_log(_project(ctx, project_id), job_id)
        return log_text or ""
    except Exception as e:
        raise _err(e) from e


@mcp.tool(
    tags={"gitlab", "jobs", "read"},
    annotations={"readOnlyHint": True, "idempotentHint": True, "openWorldHint": True},
)
async def gitlab_get_job_trace(
    ctx: Context,
    job_id: Annotated[int, Field(description="Job ID")],
    project_id: ProjectId = None,
    lines_limit: Annotated[
        int, Field(description="Maximum number of log lines to return")
    ] = DEFAULT_LINES_LIMIT,
    tail: Annotated[
        bool, Field(description="Return the last lines instead of the first")
    ] = False,
    raw: Annotated[
        bool, Field(description="Return only the log lines, without summary header")
    ] = False,
) -> str:
    """Get a job log limited to its first (or last) lines_limit lines.

    The default view adds a summary header and a hint when the log was truncated.
    """
    try:
        project = _project(ctx, project_id)
        check_lines_limit(lines_limit)
        log_text = await _get_client(ctx).get_job_log(project, job_id)
        return render_trace(
            log_text, project, job_id, lines_limit=lines_limit, tail=tail, raw=raw
        )
    except Exception as e:
        logger.warning("Job trace for %s failed: %s", job_id, e)
        raise ToolError(f"Failed to retrieve job trace: {e}") from e
