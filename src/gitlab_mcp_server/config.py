"""GitLab MCP server configuration."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

DEFAULT_URL = "https://gitlab.com"

_TOKEN_VARS = (
    "GITLAB_TOKEN",
    "GITLAB_PAT",
    "GITLAB_PERSONAL_ACCESS_TOKEN",
    "GITLAB_ACCESS_TOKEN",
    "GITLAB_API_TOKEN",
    "NPM_CONFIG_TOKEN",
)

# Keys of the native config file, mapped onto GitLabConfig fields.
_FILE_KEYS = {
    ("gitlab", "baseUrl"): "url",
    ("gitlab", "token"): "token",
    ("gitlab", "defaultProject"): "default_project",
    ("gitlab", "readOnly"): "read_only",
    ("server", "timeout"): "timeout",
    ("defaults", "perPage"): "per_page",
    ("defaults", "projectScope"): "project_scope",
}


def _truthy(value: str) -> bool:
    return value.lower() in ("true", "1", "yes")


def _falsy(value: str) -> bool:
    return value.lower() in ("false", "0", "no")


def config_file_candidates(explicit: str | None = None) -> list[Path]:
    """Config file locations in lookup order. The first existing one wins."""
    paths: list[Path] = []
    if explicit:
        paths.append(Path(explicit).expanduser())
    if env_path := os.getenv("GITLAB_MCP_CONFIG"):
        paths.append(Path(env_path).expanduser())
    cwd = Path.cwd()
    home = Path.home()
    paths.extend(
        [
            cwd / "gitlab-mcp.json",
            cwd / ".gitlab-mcp.json",
            home / ".gitlab-mcp.json",
            home / ".config" / "gitlab-mcp" / "config.json",
        ]
    )
    return paths


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name)
    return value if isinstance(value, dict) else {}


def _parse_config_file(data: dict[str, Any]) -> dict[str, Any]:
    """Flatten either supported file shape into GitLabConfig field values."""
    values: dict[str, Any] = {}
    if any(section in data for section in ("gitlab", "server", "defaults")):
        for (section, key), field_name in _FILE_KEYS.items():
            value = _section(data, section).get(key)
            if value is not None:
                values[field_name] = value
        # Config files give the timeout in milliseconds.
        if "timeout" in values:
            timeout_ms = values["timeout"]
            if not isinstance(timeout_ms, int) or timeout_ms < 1000:
                msg = f"Server timeout must be at least 1000ms, got {timeout_ms!r}"
                raise ValueError(msg)
            values["timeout"] = timeout_ms // 1000
    elif env := _section(_section(_section(data, "mcpServers"), "gitlab"), "env"):
        url = env.get("GITLAB_URL") or env.get("GITLAB_BASE_URL")
        token = next((env[name] for name in _TOKEN_VARS if env.get(name)), None)
        if url:
            values["url"] = url
        if token:
            values["token"] = token
        if env.get("GITLAB_DEFAULT_PROJECT"):
            values["default_project"] = env["GITLAB_DEFAULT_PROJECT"]
    return values


def load_config_file(explicit: str | None = None) -> dict[str, Any]:
    """Load values from the first config file found, or an empty dict."""
    for path in config_file_candidates(explicit):
        if not path.is_file():
            continue
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Failed to parse config file %s: %s", path, e)
            continue
        logger.info("Loading config from %s", path)
        if not isinstance(data, dict):
            return {}
        return _parse_config_file(data)
    return {}


@dataclass
class GitLabConfig:
    """Configuration for the GitLab MCP server.

    Values come from defaults, then an optional JSON config file, then
    environment variables.
    """

    url: str = DEFAULT_URL
    token: str = ""
    read_only: bool = False
    timeout: int = 30
    ssl_verify: bool = True
    default_project: str | None = None
    per_page: int = 20
    project_scope: str = "owned"

    @classmethod
    def from_env(cls, config_path: str | None = None) -> GitLabConfig:
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in load_config_file(config_path).items() if k in known}

        url = os.getenv("GITLAB_URL") or os.getenv("GITLAB_BASE_URL")
        if url:
            values["url"] = url
        token = next((os.environ[name] for name in _TOKEN_VARS if os.getenv(name)), None)
        if token:
            values["token"] = token
        if project := os.getenv("GITLAB_DEFAULT_PROJECT"):
            values["default_project"] = project
        if read_only := os.getenv("GITLAB_READ_ONLY"):
            values["read_only"] = _truthy(read_only)
        if timeout := os.getenv("GITLAB_TIMEOUT"):
            values["timeout"] = int(timeout)
        if ssl_verify := os.getenv("GITLAB_SSL_VERIFY"):
            values["ssl_verify"] = not _falsy(ssl_verify)
        if per_page := os.getenv("GITLAB_MCP_PER_PAGE"):
            values["per_page"] = int(per_page)
        if scope := os.getenv("GITLAB_MCP_PROJECT_SCOPE"):
            values["project_scope"] = scope

        values["url"] = str(values.get("url") or DEFAULT_URL).rstrip("/")
        return cls(**values)

    @property
    def api_url(self) -> str:
        return f"{self.url}/api/v4"

    def validate(self) -> None:
        parsed = urlparse(self.url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            msg = f"Invalid GitLab base URL: {self.url}"
            raise ValueError(msg)
        if not self.token:
            msg = (
                "GitLab token is required. Set one of: GITLAB_TOKEN, GITLAB_PAT, "
                "GITLAB_PERSONAL_ACCESS_TOKEN, GITLAB_ACCESS_TOKEN, GITLAB_API_TOKEN, "
                "or NPM_CONFIG_TOKEN"
            )
            raise ValueError(msg)
        if not 1 <= self.per_page <= 100:
            msg = "per_page must be between 1 and 100"
            raise ValueError(msg)
        if self.timeout < 1:
            msg = "timeout must be at least 1 second"
            raise ValueError(msg)
        if self.project_scope not in ("owned", "all"):
            msg = f"project_scope must be 'owned' or 'all', got {self.project_scope!r}"
            raise ValueError(msg)
