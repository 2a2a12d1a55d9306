"""Tests for draft title handling."""

import pytest

from gitlab_mcp_server.drafts import draft_prefix, draft_title, is_draft, ready_title


@pytest.mark.parametrize(
    ("title", "expected"),
    [
        ("Draft: Add login", True),
        ("WIP: Add login", True),
        ("Add login", False),
        ("draft: Add login", False),
        ("Draft:Add login", False),
        ("[Draft] Add login", False),
        ("", False),
    ],
)
def test_is_draft(title, expected):
    assert is_draft(title) is expected


def test_draft_prefix():
    assert draft_prefix("WIP: x") == "WIP: "
    assert draft_prefix("x") is None


def test_draft_title():
    assert draft_title("Add login") == "Draft: Add login"


@pytest.mark.parametrize("title", ["Draft: Add login", "WIP: Add login"])
def test_draft_title_already_draft(title):
    assert draft_title(title) is None


@pytest.mark.parametrize("title", ["Draft: Add login", "WIP: Add login"])
def test_ready_title(title):
    assert ready_title(title) == "Add login"


def test_ready_title_strips_one_prefix():
    assert ready_title("Draft: WIP: Add login") == "WIP: Add login"


def test_ready_title_already_ready():
    assert ready_title("Add login") is None


def test_round_trip():
    assert ready_title(draft_title("Add login")) == "Add login"
