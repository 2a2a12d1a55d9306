"""GitLab MCP server exceptions."""

from __future__ import annotations


class GitLabError(Exception):
    """Base exception for GitLab operations."""


class GitLabApiError(GitLabError):
    """Raised when the GitLab API returns a non-success response."""

    def __init__(self, status_code: int, status_text: str, body: str = "") -> None:
        self.status_code = status_code
        self.status_text = status_text
        self.body = body
        super().__init__(f"GitLab API Error {status_code} {status_text}: {body}")


class GitLabAuthError(GitLabApiError):
    """Raised on 401/403 authentication failures."""

    def __init__(self, status_code: int, body: str = "") -> None:
        status_text = "Unauthorized" if status_code == 401 else "Forbidden"
        super().__init__(status_code, status_text, body)


class GitLabNotFoundError(GitLabApiError):
    """Raised on 404 responses."""

    def __init__(self, body: str = "") -> None:
        super().__init__(404, "Not Found", body)


class MissingReferenceError(GitLabError):
    """Raised when neither an explicit IID nor a source branch was supplied."""

    def __init__(self) -> None:
        super().__init__("Either merge_request_iid or source_branch must be provided")


class ReferenceNotFoundError(GitLabError):
    """Raised when a source branch matches no merge request in any state."""

    def __init__(self, source_branch: str) -> None:
        self.source_branch = source_branch
        super().__init__(f"No merge request found for source branch: {source_branch}")


class InvalidArgumentError(GitLabError, ValueError):
    """Raised when a caller-supplied argument violates its constraints."""


class GitLabWriteDisabledError(GitLabError):
    """Raised when a write operation is attempted in read-only mode."""

    def __init__(self) -> None:
        super().__init__("Write operations are disabled (GITLAB_READ_ONLY=true)")
