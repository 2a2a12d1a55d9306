"""GitLab API client using httpx."""

from __future__ import annotations

import json
import logging
from typing import Any
from urllib.parse import quote

import httpx

from .config import GitLabConfig
from .exceptions import GitLabApiError, GitLabAuthError, GitLabNotFoundError

logger = logging.getLogger(__name__)

# A list response together with its headers, which carry the pagination links.
Page = tuple[list[dict], httpx.Headers]


class GitLabClient:
    """Async HTTP client for the GitLab REST API v4."""

    def __init__(self, config: GitLabConfig | None = None) -> None:
        self.config = config or GitLabConfig.from_env()
        self.config.validate()
        self._client = httpx.AsyncClient(
            base_url=self.config.api_url,
            headers={
                "Authorization": f"Bearer {self.config.token}",
                "Content-Type": "application/json",
            },
            timeout=self.config.timeout,
            verify=self.config.ssl_verify,
        )

    async def close(self) -> None:
        await self._client.aclose()

    # ── HTTP helpers ──────────────────────────────────────────────

    @staticmethod
    def _encode_id(project_id: str | int) -> str:
        """Encode a project ID. Numeric IDs pass through; paths are URL-encoded."""
        if isinstance(project_id, int):
            return str(project_id)
        try:
            return str(int(project_id))
        except ValueError:
            return quote(project_id, safe="")

    async def _send(
        self,
        method: str,
        path: str,
        *,
        json_data: Any = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send a request and raise on any non-success status."""
        kwargs: dict[str, Any] = {"params": params}
        if json_data is not None:
            kwargs["json"] = json_data

        logger.debug("%s %s params=%s", method, path, params)
        resp = await self._client.request(method, path, **kwargs)

        if resp.status_code in (401, 403):
            raise GitLabAuthError(resp.status_code, resp.text)
        if resp.status_code == 404:
            raise GitLabNotFoundError(resp.text)
        if not resp.is_success:
            raise GitLabApiError(resp.status_code, resp.reason_phrase or "", resp.text)
        return resp

    @staticmethod
    def _decode(resp: httpx.Response, *, raw: bool = False) -> Any:
        """Parse a successful response as JSON (or text if raw=True)."""
        if resp.status_code == 204 or not resp.content:
            return None

        if raw:
            return resp.text

        content_type = resp.headers.get("content-type", "")
        if "text/html" in content_type:
            msg = "Unexpected HTML response, check URL and authentication"
            raise GitLabApiError(resp.status_code, msg, resp.text[:500])

        try:
            return resp.json()
        except json.JSONDecodeError as e:
            raise GitLabApiError(
                resp.status_code,
                f"JSON parse error: {e}",
                resp.text[:500],
            ) from e

    async def get(
        self, path: str, params: dict[str, Any] | None = None, *, raw: bool = False
    ) -> Any:
        resp = await self._send("GET", path, params=params)
        return self._decode(resp, raw=raw)

    async def get_with_headers(
        self, path: str, params: dict[str, Any] | None = None
    ) -> tuple[Any, httpx.Headers]:
        """GET that also returns response headers, for reading pagination links."""
        resp = await self._send("GET", path, params=params)
        return self._decode(resp), resp.headers

    async def post(self, path: str, json_data: Any = None) -> Any:
        resp = await self._send("POST", path, json_data=json_data)
        return self._decode(resp)

    async def put(self, path: str, json_data: Any = None) -> Any:
        resp = await self._send("PUT", path, json_data=json_data)
        return self._decode(resp)

    async def delete(self, path: str) -> Any:
        resp = await self._send("DELETE", path)
        return self._decode(resp)

    # ── Projects ──────────────────────────────────────────────────

    async def list_projects(self, params: dict[str, Any] | None = None) -> Page:
        p = {"per_page": self.config.per_page, **(params or {})}
        return await self.get_with_headers("/projects", params=p)

    async def get_project(self, project_id: str | int) -> dict:
        enc = self._encode_id(project_id)
        return await self.get(f"/projects/{enc}")

    # ── User ──────────────────────────────────────────────────────

    async def get_current_user(self) -> dict:
        return await self.get("/user")

    # ── Branches ──────────────────────────────────────────────────

    async def list_branches(
        self, project_id: str | int, params: dict[str, Any] | None = None
    ) -> Page:
        enc = self._encode_id(project_id)
        p = {"per_page": self.config.per_page, **(params or {})}
        return await self.get_with_headers(f"/projects/{enc}/repository/branches", params=p)


    # ── Commits ───────────────────────────────────────────────────

    async def list_commits(
        self, project_id: str | int, params: dict[str, Any] | None = None
    ) -> Page:
        enc = self._encode_id(project_id)
        p = {"per_page": self.config.per_page, **(params or {})}
        return await self.get_with_headers(f"/projects/{enc}/repository/commits", params=p)


    async def get_commit(
        self, project_id: str | int, sha: str, params: dict[str, Any] | None = None
    ) -> dict:
        enc = self._encode_id(project_id)
        return await self.get(
            f"/projects/{enc}/repository/commits/{quote(sha, safe='')}", params=params
        )

    async def get_commit_diff(self, project_id: str | int, sha: str) -> Page:
        enc = self._encode_id(project_id)
        return await self.get_with_headers(
            f"/projects/{enc}/repository/commits/{quote(sha, safe='')}/diff"
        )

    async def compare(
        self, project_id: str | int, from_ref: str, to_ref: str, straight: bool | None = None
    ) -> dict:
        enc = self._encode_id(project_id)
        params: dict[str, Any] = {"from": from_ref, "to": to_ref}
        if straight is not None:
            params["straight"] = straight
        return await self.get(f"/projects/{enc}/repository/compare", params=params)

    # ── Merge Requests ────────────────────────────────────────────

    async def list_merge_requests(
        self, project_id: str | int, params: dict[str, Any] | None = None
    ) -> Page:
        enc = self._encode_id(project_id)
        p = {"per_page": self.config.per_page, **(params or {})}
        return await self.get_with_headers(f"/projects/{enc}/merge_requests", params=p)


    async def get_merge_request(self, project_id: str | int, mr_iid: int) -> dict:
        enc = self._encode_id(project_id)
        return await self.get(f"/projects/{enc}/merge_requests/{mr_iid}")

    async def create_merge_request(self, project_id: str | int, params: dict[str, Any]) -> dict:
        enc = self._encode_id(project_id)
        return await self.post(f"/projects/{enc}/merge_requests", params)

    async def update_merge_request(
        self, project_id: str | int, mr_iid: int, params: dict[str, Any]
    ) -> dict:
        enc = self._encode_id(project_id)
        return await self.put(f"/projects/{enc}/merge_requests/{mr_iid}", params)

    async def get_merge_request_changes(
        self, project_id: str | int, mr_iid: int, view: str | None = None
    ) -> dict:
        enc = self._encode_id(project_id)
        params = {"view": view} if view else None
        return await self.get(f"/projects/{enc}/merge_requests/{mr_iid}/changes", params=params)

    async def list_merge_request_diffs(
        self, project_id: str | int, mr_iid: int, params: dict[str, Any] | None = None
    ) -> Page:
        enc = self._encode_id(project_id)
        return await self.get_with_headers(
            f"/projects/{enc}/merge_requests/{mr_iid}/diffs", params=params
        )

    # ── MR Templates ──────────────────────────────────────────────

    async def list_mr_templates(self, project_id: str | int) -> Page:
        enc = self._encode_id(project_id)
        return await self.get_with_headers(f"/projects/{enc}/templates/merge_requests")


    async def get_mr_template(self, project_id: str | int, name: str) -> dict:
        enc = self._encode_id(project_id)
        return await self.get(f"/projects/{enc}/templates/merge_requests/{quote(name, safe='')}")

    # ── MR Notes ──────────────────────────────────────────────────

    async def list_mr_notes(
        self, project_id: str | int, mr_iid: int, params: dict[str, Any] | None = None
    ) -> Page:
        enc = self._encode_id(project_id)
        p = {"per_page": self.config.per_page, **(params or {})}
        return await self.get_with_headers(
            f"/projects/{enc}/merge_requests/{mr_iid}/notes", params=p
        )

    async def add_mr_note(self, project_id: str | int, mr_iid: int, body: str) -> dict:
        enc = self._encode_id(project_id)
        return await self.post(f"/projects/{enc}/merge_requests/{mr_iid}/notes", {"body": body})

    # ── MR Discussions ────────────────────────────────────────────

    def _discussions_path(self, project_id: str | int, mr_iid: int) -> str:
        return f"/projects/{self._encode_id(project_id)}/merge_requests/{mr_iid}/discussions"

    async def list_mr_discussions(
        self, project_id: str | int, mr_iid: int, params: dict[str, Any] | None = None
    ) -> Page:
        p = {"per_page": self.config.per_page, **(params or {})}
        return await self.get_with_headers(self._discussions_path(project_id, mr_iid), params=p)

    async def list_mr_discussions_page(
        self, project_id: str | int, mr_iid: int, page: int, per_page: int
    ) -> Page:
        return await self.get_with_headers(
            self._discussions_path(project_id, mr_iid),
            params={"per_page": per_page, "page": page},
        )

    async def create_mr_discussion(
        self, project_id: str | int, mr_iid: int, params: dict[str, Any]
    ) -> dict:
        return await self.post(self._discussions_path(project_id, mr_iid), params)

    async def add_discussion_note(
        self, project_id: str | int, mr_iid: int, discussion_id: str, body: str
    ) -> dict:
        path = self._discussions_path(project_id, mr_iid)
        return await self.post(f"{path}/{discussion_id}/notes", {"body": body})

    async def resolve_discussion(
        self, project_id: str | int, mr_iid: int, discussion_id: str, resolved: bool
    ) -> dict:
        path = self._discussions_path(project_id, mr_iid)
        return await self.put(f"{path}/{discussion_id}", {"resolved": resolved})

    async def update_discussion_note(
        self, project_id: str | int, mr_iid: int, discussion_id: str, note_id: int, body: str
    ) -> dict:
        path = self._discussions_path(project_id, mr_iid)
        return await self.put(f"{path}/{discussion_id}/notes/{note_id}", {"body": body})

    async def delete_discussion_note(
        self, project_id: str | int, mr_iid: int, discussion_id: str, note_id: int
    ) -> None:
        path = self._discussions_path(project_id, mr_iid)
        await self.delete(f"{path}/{discussion_id}/notes/{note_id}")

    # ── Pipelines ─────────────────────────────────────────────────

    async def list_pipelines(
        self, project_id: str | int, params: dict[str, Any] | None = None
    ) -> Page:
        enc = self._encode_id(project_id)
        p = {"per_page": self.config.per_page, **(params or {})}
        return await self.get_with_headers(f"/projects/{enc}/pipelines", params=p)


    async def get_pipeline(self, project_id: str | int, pipeline_id: int) -> dict:
        enc = self._encode_id(project_id)
        return await self.get(f"/projects/{enc}/pipelines/{pipeline_id}")

    async def create_pipeline(
        self,
        project_id: str | int,
        ref: str,
        variables: list[dict[str, str]] | None = None,
    ) -> dict:
        enc = self._encode_id(project_id)
        data: dict[str, Any] = {"ref": ref}
        if variables:
            data["variables"] = variables
        return await self.post(f"/projects/{enc}/pipeline", data)

    async def retry_pipeline(self, project_id: str | int, pipeline_id: int) -> dict:
        enc = self._encode_id(project_id)
        return await self.post(f"/projects/{enc}/pipelines/{pipeline_id}/retry")

    async def cancel_pipeline(self, project_id: str | int, pipeline_id: int) -> dict:
        enc = self._encode_id(project_id)
        return await self.post(f"/projects/{enc}/pipelines/{pipeline_id}/cancel")

    async def delete_pipeline(self, project_id: str | int, pipeline_id: int) -> Any:
        enc = self._encode_id(project_id)
        return await self.delete(f"/projects/{enc}/pipelines/{pipeline_id}")

    async def get_pipeline_variables(self, project_id: str | int, pipeline_id: int) -> Page:
        enc = self._encode_id(project_id)
        return await self.get_with_headers(f"/projects/{enc}/pipelines/{pipeline_id}/variables")


    # ── Jobs ──────────────────────────────────────────────────────

    async def list_pipeline_jobs(
        self,
        project_id: str | int,
        pipeline_id: int,
        scope: list[str] | None = None,
        include_retried: bool | None = None,
    ) -> Page:
        enc = self._encode_id(project_id)
        params: dict[str, Any] = {}
        if scope:
            params["scope[]"] = scope
        if include_retried is not None:
            params["include_retried"] = include_retried
        return await self.get_with_headers(
            f"/projects/{enc}/pipelines/{pipeline_id}/jobs", params=params
        )

    async def get_job_log(self, project_id: str | int, job_id: int) -> str | None:
        enc = self._encode_id(project_id)
        return await self.get(f"/projects/{enc}/jobs/{job_id}/trace", raw=True)

    # ── Issues ────────────────────────────────────────────────────

    async def list_issues(
        self, project_id: str | int, params: dict[str, Any] | None = None
    ) -> Page:
        enc = self._encode_id(project_id)
        p = {"per_page": self.config.per_page, **(params or {})}
        return await self.get_with_headers(f"/projects/{enc}/issues", params=p)


    async def get_issue(self, project_id: str | int, issue_iid: int) -> dict:
        enc = self._encode_id(project_id)
        return await self.get(f"/projects/{enc}/issues/{issue_iid}")

    async def create_issue(self, project_id: str | int, params: dict[str, Any]) -> dict:
        enc = self._encode_id(project_id)
        return await self.post(f"/projects/{enc}/issues", params)
