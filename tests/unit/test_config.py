"""Tests for GitLab configuration."""

from __future__ import annotations

import json
import os
from unittest.mock import patch

import pytest

from gitlab_mcp_server.config import GitLabConfig, config_file_candidates, load_config_file

pytestmark = pytest.mark.usefixtures("clean_env")


def test_config_defaults():
    config = GitLabConfig.from_env()
    assert config.url == "https://gitlab.com"
    assert config.token == ""
    assert config.read_only is False
    assert config.timeout == 30
    assert config.per_page == 20
    assert config.project_scope == "owned"
    assert config.default_project is None


def test_config_from_env():
    env = {"GITLAB_URL": "https://gitlab.example.com", "GITLAB_TOKEN": "glpat-abc123"}
    with patch.dict(os.environ, env, clear=False):
        config = GitLabConfig.from_env()
    assert config.url == "https://gitlab.example.com"
    assert config.token == "glpat-abc123"


def test_config_base_url_alias():
    env = {"GITLAB_BASE_URL": "https://git.corp.example", "GITLAB_TOKEN": "x"}
    with patch.dict(os.environ, env, clear=False):
        config = GitLabConfig.from_env()
    assert config.url == "https://git.corp.example"


@pytest.mark.parametrize(
    "var",
    [
        "GITLAB_PAT",
        "GITLAB_PERSONAL_ACCESS_TOKEN",
        "GITLAB_ACCESS_TOKEN",
        "GITLAB_API_TOKEN",
        "NPM_CONFIG_TOKEN",
    ],
)
def test_config_token_aliases(var):
    with patch.dict(os.environ, {var: "glpat-alias"}, clear=False):
        config = GitLabConfig.from_env()
    assert config.token == "glpat-alias"


def test_config_token_priority():
    """GITLAB_TOKEN takes precedence over all other aliases."""
    env = {
        "GITLAB_TOKEN": "winner",
        "GITLAB_PAT": "loser1",
        "GITLAB_PERSONAL_ACCESS_TOKEN": "loser2",
        "NPM_CONFIG_TOKEN": "loser3",
    }
    with patch.dict(os.environ, env, clear=False):
        config = GitLabConfig.from_env()
    assert config.token == "winner"


def test_config_env_overrides():
    env = {
        "GITLAB_TOKEN": "x",
        "GITLAB_READ_ONLY": "true",
        "GITLAB_TIMEOUT": "5",
        "GITLAB_SSL_VERIFY": "false",
        "GITLAB_DEFAULT_PROJECT": "group/app",
        "GITLAB_MCP_PER_PAGE": "50",
        "GITLAB_MCP_PROJECT_SCOPE": "all",
    }
    with patch.dict(os.environ, env, clear=False):
        config = GitLabConfig.from_env()
    assert config.read_only is True
    assert config.timeout == 5
    assert config.ssl_verify is False
    assert config.default_project == "group/app"
    assert config.per_page == 50
    assert config.project_scope == "all"


def test_config_url_strips_trailing_slash():
    env = {"GITLAB_URL": "https://gitlab.example.com/", "GITLAB_TOKEN": "x"}
    with patch.dict(os.environ, env, clear=False):
        config = GitLabConfig.from_env()
    assert config.url == "https://gitlab.example.com"


def test_config_api_url():
    config = GitLabConfig(url="https://gitlab.example.com", token="x")
    assert config.api_url == "https://gitlab.example.com/api/v4"


# ── validate ──────────────────────────────────────────────────────


def test_validate_ok():
    GitLabConfig(url="https://gitlab.example.com", token="x").validate()


def test_validate_bad_url():
    config = GitLabConfig(url="gitlab.example.com", token="x")
    with pytest.raises(ValueError, match="Invalid GitLab base URL"):
        config.validate()


def test_validate_missing_token():
    config = GitLabConfig(url="https://gitlab.example.com", token="")
    with pytest.raises(ValueError, match="GITLAB_TOKEN"):
        config.validate()


@pytest.mark.parametrize("per_page", [0, 101])
def test_validate_per_page_range(per_page):
    config = GitLabConfig(url="https://gitlab.example.com", token="x", per_page=per_page)
    with pytest.raises(ValueError, match="per_page"):
        config.validate()


def test_validate_timeout():
    config = GitLabConfig(url="https://gitlab.example.com", token="x", timeout=0)
    with pytest.raises(ValueError, match="timeout"):
        config.validate()


def test_validate_project_scope():
    config = GitLabConfig(url="https://gitlab.example.com", token="x", project_scope="mine")
    with pytest.raises(ValueError, match="project_scope"):
        config.validate()


# ── config files ──────────────────────────────────────────────────


def test_candidates_order(tmp_path, monkeypatch):
    monkeypatch.setenv("GITLAB_MCP_CONFIG", str(tmp_path / "env.json"))
    paths = config_file_candidates(str(tmp_path / "explicit.json"))
    assert paths[0] == tmp_path / "explicit.json"
    assert paths[1] == tmp_path / "env.json"
    assert [p.name for p in paths[2:]] == [
        "gitlab-mcp.json",
        ".gitlab-mcp.json",
        ".gitlab-mcp.json",
        "config.json",
    ]


def test_native_config_file(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text(
        json.dumps(
            {
                "gitlab": {
                    "baseUrl": "https://file.example.com/",
                    "token": "file-token",
                    "defaultProject": "team/repo",
                },
                "server": {"timeout": 15000},
                "defaults": {"perPage": 40, "projectScope": "all"},
            }
        )
    )
    config = GitLabConfig.from_env(str(path))
    assert config.url == "https://file.example.com"
    assert config.token == "file-token"
    assert config.default_project == "team/repo"
    assert config.timeout == 15
    assert config.per_page == 40
    assert config.project_scope == "all"


def test_mcp_servers_config_file(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text(
        json.dumps(
            {
                "mcpServers": {
                    "gitlab": {
                        "env": {
                            "GITLAB_URL": "https://mcp.example.com",
                            "GITLAB_PAT": "mcp-token",
                        }
                    }
                }
            }
        )
    )
    config = GitLabConfig.from_env(str(path))
    assert config.url == "https://mcp.example.com"
    assert config.token == "mcp-token"


def test_env_beats_config_file(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text(json.dumps({"gitlab": {"token": "file-token"}}))
    with patch.dict(os.environ, {"GITLAB_TOKEN": "env-token"}, clear=False):
        config = GitLabConfig.from_env(str(path))
    assert config.token == "env-token"


def test_config_file_found_in_cwd():
    with open("gitlab-mcp.json", "w", encoding="utf-8") as f:
        json.dump({"gitlab": {"token": "cwd-token"}}, f)
    assert GitLabConfig.from_env().token == "cwd-token"


def test_unparseable_config_file_is_skipped(tmp_path, caplog):
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    with open(".gitlab-mcp.json", "w", encoding="utf-8") as f:
        json.dump({"gitlab": {"token": "fallback"}}, f)
    assert load_config_file(str(broken)) == {"token": "fallback"}
    assert "Failed to parse config file" in caplog.text


def test_no_config_file():
    assert load_config_file() == {}


def test_config_file_timeout_is_milliseconds(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text(json.dumps({"gitlab": {"token": "t"}, "server": {"timeout": 1000}}))
    assert GitLabConfig.from_env(str(path)).timeout == 1


@pytest.mark.parametrize("timeout", [500, 999, 0, "30000"])
def test_config_file_timeout_below_one_second_rejected(tmp_path, timeout):
    path = tmp_path / "cfg.json"
    path.write_text(json.dumps({"gitlab": {"token": "t"}, "server": {"timeout": timeout}}))
    with pytest.raises(ValueError, match="at least 1000ms"):
        GitLabConfig.from_env(str(path))


def test_null_sections_are_empty(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text(
        json.dumps({"gitlab": {"token": "file-token"}, "server": None, "defaults": None})
    )
    assert load_config_file(str(path)) == {"token": "file-token"}
    config = GitLabConfig.from_env(str(path))
    assert config.timeout == 30
    assert config.per_page == 20


def test_null_mcp_servers_entry(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text(json.dumps({"mcpServers": {"gitlab": None}}))
    assert load_config_file(str(path)) == {}
