"""GitHub integration for the submission reviewer."""

from .fetcher import (
    GitHubFetcher,
    GitHubTarget,
    PullRequestData,
    RepositoryData,
    parse_github_url,
)

__all__ = [
    "GitHubFetcher",
    "GitHubTarget",
    "PullRequestData",
    "RepositoryData",
    "parse_github_url",
]
