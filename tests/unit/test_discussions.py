"""Tests for the unresolved discussion aggregator."""

from __future__ import annotations

import httpx

from gitlab_mcp_server.discussions import MAX_DISCUSSION_PAGES, list_unresolved_discussions

DISCUSSIONS = "/projects/123/merge_requests/5/discussions"


def _discussion(did: str, *notes: dict) -> dict:
    return {"id": did, "individual_note": False, "notes": list(notes)}


OPEN = {"resolvable": True, "resolved": False}
DONE = {"resolvable": True, "resolved": True}
PLAIN = {"resolvable": False, "resolved": False}


class TestFilter:
    async def test_keeps_only_unresolved(self, client, mock_api):
        mock_api.get(DISCUSSIONS).mock(
            return_value=httpx.Response(
                200,
                json=[
                    _discussion("a", OPEN),
                    _discussion("b", DONE),
                    _discussion("c", PLAIN),
                    _discussion("d", DONE, OPEN),
                    {"id": "e", "notes": None},
                    {"id": "f"},
                ],
            )
        )
        result = await list_unresolved_discussions(client, 123, 5)
        assert [d["id"] for d in result.discussions] == ["a", "d"]
        assert result.total_fetched == 6
        assert result.unresolved_count == 2

    async def test_only_json_booleans_count(self, client, mock_api):
        mock_api.get(DISCUSSIONS).mock(
            return_value=httpx.Response(
                200,
                json=[
                    _discussion("a", {"resolvable": "true", "resolved": False}),
                    _discussion("b", {"resolvable": True, "resolved": 0}),
                    _discussion("c", {"resolvable": 1, "resolved": "false"}),
                    _discussion("d", {"resolvable": True, "resolved": None}),
                    _discussion("e", OPEN),
                ],
            )
        )
        result = await list_unresolved_discussions(client, 123, 5)
        assert [d["id"] for d in result.discussions] == ["e"]
        assert result.total_fetched == 5

    async def test_discussions_returned_unchanged(self, client, mock_api):
        raw = _discussion("a", {**OPEN, "body": "fix this", "author": {"username": "x"}})
        mock_api.get(DISCUSSIONS).mock(return_value=httpx.Response(200, json=[raw]))
        result = await list_unresolved_discussions(client, 123, 5)
        assert result.discussions == [raw]

    async def test_to_dict(self, client, mock_api):
        mock_api.get(DISCUSSIONS).mock(
            return_value=httpx.Response(200, json=[_discussion("a", OPEN), _discussion("b")])
        )
        result = (await list_unresolved_discussions(client, 123, 5)).to_dict()
        assert result["metadata"] == {"total_fetched": 2, "unresolved_count": 1, "filtered": True}


class TestPagination:
    async def test_follows_next_page_header(self, client, mock_api):
        def handler(request: httpx.Request) -> httpx.Response:
            page = int(request.url.params["page"])
            headers = {"X-Next-Page": str(page + 1) if page < 3 else ""}
            return httpx.Response(200, json=[_discussion(f"p{page}", OPEN)], headers=headers)

        route = mock_api.get(DISCUSSIONS).mock(side_effect=handler)
        result = await list_unresolved_discussions(client, 123, 5)
        assert route.call_count == 3
        assert [d["id"] for d in result.discussions] == ["p1", "p2", "p3"]
        assert [c.request.url.params["per_page"] for c in route.calls] == ["100"] * 3

    async def test_missing_header_stops(self, client, mock_api):
        route = mock_api.get(DISCUSSIONS).mock(return_value=httpx.Response(200, json=[]))
        result = await list_unresolved_discussions(client, 123, 5)
        assert route.call_count == 1
        assert result.total_fetched == 0

    async def test_page_cap(self, client, mock_api, caplog):
        route = mock_api.get(DISCUSSIONS).mock(
            return_value=httpx.Response(
                200, json=[_discussion("x", OPEN)], headers={"X-Next-Page": "2"}
            )
        )
        result = await list_unresolved_discussions(client, 123, 5)
        assert route.call_count == MAX_DISCUSSION_PAGES == 100
        assert result.total_fetched == 100
        assert "Stopped fetching discussions" in caplog.text

    async def test_custom_page_size(self, client, mock_api):
        route = mock_api.get(DISCUSSIONS).mock(return_value=httpx.Response(200, json=[]))
        await list_unresolved_discussions(client, 123, 5, page_size=25)
        assert route.calls.last.request.url.params["per_page"] == "25"
