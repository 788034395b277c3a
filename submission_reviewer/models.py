"""Input types for a review: the bounty and the fetched code snapshot."""

from dataclasses import dataclass, field
from typing import Literal

Importance = Literal["critical", "high", "medium", "low"]

# Lower rank is packed first when chunking.
IMPORTANCE_ORDER: dict[str, int] = {"critical": 0, "high": 1, "medium": 2, "low": 3}


@dataclass(frozen=True)
class BountyContext:
    """The requirements a submission is judged against."""

    title: str
    description: str
    requirements: list[str] = field(default_factory=list)
    tech_stack: list[str] = field(default_factory=list)


@dataclass
class FileTreeNode:
    """A node in a repository file tree."""

    name: str
    path: str
    type: Literal["file", "directory"]
    children: list["FileTreeNode"] | None = None


@dataclass(frozen=True)
class KeyFile:
    """A source file selected for review."""

    path: str
    language: str
    content: str
    importance: Importance = "medium"


@dataclass(frozen=True)
class PRCommit:
    """A commit in a pull request."""

    sha: str
    message: str
    author: str = "Unknown"


@dataclass
class RepositoryContext:
    """Snapshot of a full repository submission."""

    file_tree: list[FileTreeNode] = field(default_factory=list)
    key_files: list[KeyFile] = field(default_factory=list)
    type: Literal["repository"] = "repository"


@dataclass
class PullRequestContext:
    """Snapshot of a pull request submission."""

    diff: str
    pr_title: str
    pr_description: str | None = None
    commits: list[PRCommit] = field(default_factory=list)
    file_tree: list[FileTreeNode] = field(default_factory=list)
    key_files: list[KeyFile] = field(default_factory=list)
    type: Literal["pr"] = "pr"


CodeContext = RepositoryContext | PullRequestContext
