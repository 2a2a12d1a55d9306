"""Tests for merge request IID resolution."""

from __future__ import annotations

import httpx
import pytest

from gitlab_mcp_server.exceptions import MissingReferenceError, ReferenceNotFoundError
from gitlab_mcp_server.resolver import resolve_mr_iid

MRS = "/projects/123/merge_requests"


def _by_state(opened: list[dict], any_state: list[dict]):
    """Answer the opened-only search and the all-states search differently."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params.get("state") == "opened":
            return httpx.Response(200, json=opened)
        return httpx.Response(200, json=any_state)

    return handler


class TestExplicitIid:
    async def test_returned_without_request(self, client, mock_api):
        route = mock_api.get(MRS)
        assert await resolve_mr_iid(client, 123, 42, "feature-x") == 42
        assert not route.called

    async def test_zero_is_an_explicit_iid(self, client, mock_api):
        route = mock_api.get(MRS)
        assert await resolve_mr_iid(client, 123, 0) == 0
        assert not route.called


class TestSourceBranch:
    async def test_open_mr_found(self, client, mock_api):
        route = mock_api.get(MRS).mock(side_effect=_by_state([{"iid": 7}], []))
        assert await resolve_mr_iid(client, 123, source_branch="feature-x") == 7
        assert route.call_count == 1
        params = route.calls.last.request.url.params
        assert params["source_branch"] == "feature-x"
        assert params["state"] == "opened"
        assert params["per_page"] == "1"

    async def test_falls_back_to_all_states(self, client, mock_api):
        route = mock_api.get(MRS).mock(side_effect=_by_state([], [{"iid": 9}]))
        assert await resolve_mr_iid(client, 123, source_branch="feature-x") == 9
        assert route.call_count == 2
        first, second = (call.request.url.params for call in route.calls)
        assert first["state"] == "opened"
        assert "state" not in second
        assert second["source_branch"] == "feature-x"

    async def test_first_match_wins(self, client, mock_api):
        mock_api.get(MRS).mock(side_effect=_by_state([], [{"iid": 3}, {"iid": 2}]))
        assert await resolve_mr_iid(client, 123, source_branch="feature-x") == 3

    async def test_no_match_anywhere(self, client, mock_api):
        route = mock_api.get(MRS).mock(side_effect=_by_state([], []))
        with pytest.raises(ReferenceNotFoundError, match="feature-x"):
            await resolve_mr_iid(client, 123, source_branch="feature-x")
        assert route.call_count == 2

    async def test_path_project_id(self, client, mock_api):
        route = mock_api.get("/projects/group%2Fapp/merge_requests").mock(
            return_value=httpx.Response(200, json=[{"iid": 5}])
        )
        assert await resolve_mr_iid(client, "group/app", source_branch="fix") == 5
        assert route.called


class TestMissingReference:
    @pytest.mark.parametrize("branch", [None, ""])
    async def test_neither_given(self, client, mock_api, branch):
        with pytest.raises(MissingReferenceError, match="merge_request_iid or source_branch"):
            await resolve_mr_iid(client, 123, None, branch)
