from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlparse


@dataclass(frozen=True)
class GitHubRepo:
    owner: str
    repo: str

    @property
    def repository(self) -> str:
        """The "owner/repo" form used by the GitHub API."""
        return f"{self.owner}/{self.repo}"


def parse_github_repo_url(url: str) -> GitHubRepo:
    """
    Parse a repository URL such as https://github.com/etalab/sill-data.

    Only github.com is supported; anything else raises ValueError.
    """
    parsed = urlparse(url)
    if parsed.netloc != "github.com":
        raise ValueError(f"data_repo_url={url!r} is expected to be a GitHub url (until we support other forges)")

    parts = [p for p in parsed.path.split("/") if p]
    if len(parts) < 2:
        raise ValueError(f"Cannot extract owner and repository from {url!r}")

    owner, repo = parts[0], parts[1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    return GitHubRepo(owner=owner, repo=repo)
