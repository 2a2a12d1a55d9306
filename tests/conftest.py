"""Shared test fixtures for gitlab-mcp-server."""

from __future__ import annotations

import pytest
import respx

from gitlab_mcp_server.client import GitLabClient
from gitlab_mcp_server.config import GitLabConfig

TEST_URL = "https://gitlab.example.com"
TEST_TOKEN = "test-token"
API_URL = f"{TEST_URL}/api/v4"


@pytest.fixture
def config() -> GitLabConfig:
    return GitLabConfig(url=TEST_URL, token=TEST_TOKEN)


@pytest.fixture
async def client(config: GitLabConfig):
    gl = GitLabClient(config)
    yield gl
    await gl.close()


@pytest.fixture
def mock_api():
    with respx.mock(base_url=API_URL, assert_all_called=False) as router:
        yield router


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Run with no GitLab env vars, an empty cwd and an empty home directory."""
    for name in (
        "GITLAB_URL",
        "GITLAB_BASE_URL",
        "GITLAB_TOKEN",
        "GITLAB_PAT",
        "GITLAB_PERSONAL_ACCESS_TOKEN",
        "GITLAB_ACCESS_TOKEN",
        "GITLAB_API_TOKEN",
        "NPM_CONFIG_TOKEN",
        "GITLAB_DEFAULT_PROJECT",
        "GITLAB_READ_ONLY",
        "GITLAB_TIMEOUT",
        "GITLAB_SSL_VERIFY",
        "GITLAB_MCP_PER_PAGE",
        "GITLAB_MCP_PROJECT_SCOPE",
        "GITLAB_MCP_CONFIG",
    ):
        monkeypatch.delenv(name, raising=False)
    home = tmp_path / "home"
    work = tmp_path / "work"
    home.mkdir()
    work.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(work)
    return tmp_path
