"""Fetch repository and pull request snapshots from the GitHub REST API."""

import base64
import binascii
import fnmatch
import logging
from dataclasses import dataclass, field
from typing import Any, Literal
from urllib.parse import urlparse

import httpx

from ..errors import ExternalFetchError
from ..models import FileTreeNode, Importance, KeyFile, PRCommit

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"

MAX_KEY_FILES = 30
MAX_FILE_CHARS = 50000
PER_PAGE = 100

# Files most worth reviewing in Solana/Web3 projects, in priority order.
PRIORITY_PATTERNS = [
    "Anchor.toml",
    "Cargo.toml",
    "package.json",
    "tsconfig.json",
    "**/lib.rs",
    "**/mod.rs",
    "**/instructions/*.rs",
    "**/state/*.rs",
    "src/index.ts",
    "src/main.ts",
    "src/App.tsx",
    "programs/**/src/*.rs",
    "contracts/**/*.sol",
]

RELEVANT_EXTENSIONS = (
    ".rs",
    ".ts",
    ".tsx",
    ".js",
    ".jsx",
    ".sol",
    ".toml",
    ".json",
    ".py",
    ".go",
)

SKIP_PATTERNS = [
    "node_modules",
    ".git",
    "target",
    "dist",
    "build",
    ".next",
    "coverage",
    "__pycache__",
    "*.lock",
    "*.log",
    ".env*",
]

CRITICAL_FILES = {"lib.rs", "main.rs", "index.ts", "main.ts", "App.tsx"}
HIGH_FILES = {"Cargo.toml", "package.json", "Anchor.toml", "mod.rs"}

LANGUAGES = {
    "ts": "typescript",
    "tsx": "typescript",
    "js": "javascript",
    "jsx": "javascript",
    "rs": "rust",
    "py": "python",
    "go": "go",
    "sol": "solidity",
    "json": "json",
    "toml": "toml",
    "yaml": "yaml",
    "yml": "yaml",
    "md": "markdown",
    "css": "css",
    "scss": "scss",
    "html": "html",
}


@dataclass(frozen=True)
class GitHubTarget:
    """What a submission URL points at."""

    owner: str
    repo: str
    type: Literal["pr", "repository"]
    pr_number: int | None = None


@dataclass
class ChangedFile:
    filename: str
    status: str
    additions: int
    deletions: int
    patch: str | None = None


@dataclass
class RepositoryData:
    owner: str
    repo: str
    default_branch: str
    description: str | None
    languages: dict[str, int]
    file_tree: list[FileTreeNode]
    key_files: list[KeyFile]
    total_files: int
    total_lines: int


@dataclass
class PullRequestData:
    owner: str
    repo: str
    pr_number: int
    title: str
    description: str | None
    base_branch: str
    head_branch: str
    state: str
    diff: str
    changed_files: list[ChangedFile] = field(default_factory=list)
    commits: list[PRCommit] = field(default_factory=list)


def parse_github_url(url: str) -> GitHubTarget:
    """
    Parse a GitHub repository or pull request URL.

    Raises:
        ExternalFetchError: If the URL has no owner and repo (kind ``not_found``).
    """
    parts = [p for p in urlparse(url).path.split("/") if p]
    if len(parts) < 2:
        raise ExternalFetchError(
            f"Invalid GitHub URL: missing owner or repo: {url}", kind="not_found"
        )

    owner, repo = parts[0], parts[1].removesuffix(".git")
    if len(parts) >= 4 and parts[2] == "pull" and parts[3].isdigit():
        return GitHubTarget(owner=owner, repo=repo, type="pr", pr_number=int(parts[3]))
    return GitHubTarget(owner=owner, repo=repo, type="repository")


def language_from_path(path: str) -> str:
    ext = path.rsplit(".", 1)[-1].lower() if "." in path else ""
    return LANGUAGES.get(ext, "plaintext")


def should_skip_path(path: str) -> bool:
    """Skip vendored, generated and secret files."""
    segments = path.split("/")
    return any(
        fnmatch.fnmatch(segment, pattern)
        for pattern in SKIP_PATTERNS
        for segment in segments
    )


def is_relevant_file(path: str) -> bool:
    return path.endswith(RELEVANT_EXTENSIONS)


def build_file_tree(paths: list[str]) -> list[FileTreeNode]:
    """Nest flat file paths into a directory tree, preserving input order."""
    root: list[FileTreeNode] = []

    for path in paths:
        parts = path.split("/")
        level = root
        for i, part in enumerate(parts):
            is_file = i == len(parts) - 1
            node = next((n for n in level if n.name == part), None)
            if node is None:
                node = FileTreeNode(
                    name=part,
                    path="/".join(parts[: i + 1]),
                    type="file" if is_file else "directory",
                    children=None if is_file else [],
                )
                level.append(node)
            if not is_file and node.children is not None:
                level = node.children

    return root


def identify_key_files(paths: list[str], limit: int = MAX_KEY_FILES) -> list[str]:
    """Pick files matching the priority patterns, in pattern order, de-duplicated."""
    selected: dict[str, None] = {}
    for pattern in PRIORITY_PATTERNS:
        for path in paths:
            if "*" in pattern:
                matched = fnmatch.fnmatch(path, pattern)
            else:
                matched = path == pattern or path.endswith("/" + pattern)
            if matched:
                selected.setdefault(path, None)
    return list(selected)[:limit]


def file_importance(path: str) -> Importance:
    filename = path.rsplit("/", 1)[-1]
    if filename in CRITICAL_FILES:
        return "critical"
    if filename in HIGH_FILES:
        return "high"
    if "/instructions/" in path or "/state/" in path:
        return "high"
    if "/tests/" in path or ".test." in path:
        return "low"
    return "medium"


def build_diff(files: list[ChangedFile]) -> str:
    return "\n\n".join(
        f"--- a/{f.filename}\n+++ b/{f.filename}\n{f.patch}" for f in files if f.patch
    )


class GitHubFetcher:
    """
    Read-only GitHub client for submission snapshots.

    Every failure is raised as ExternalFetchError with a kind the caller
    can act on: ``not_found``, ``rate_limited``, ``private``, ``empty``
    or ``network``.
    """

    def __init__(
        self,
        token: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        api_url: str = GITHUB_API_URL,
        timeout: float = 30.0,
    ) -> None:
        self._token = token
        self._http_client = http_client
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    @staticmethod
    def _raise_for_status(response: httpx.Response, what: str) -> None:
        status = response.status_code
        if status < 400:
            return
        if status == 404:
            raise ExternalFetchError(f"{what} not found", kind="not_found")
        if status == 429 or (
            status == 403 and response.headers.get("x-ratelimit-remaining") == "0"
        ):
            raise ExternalFetchError(
                f"GitHub rate limit exceeded while fetching {what}", kind="rate_limited"
            )
        if status in (401, 403):
            raise ExternalFetchError(f"{what} is private or inaccessible", kind="private")
        if status == 409:
            raise ExternalFetchError(f"{what} is empty", kind="empty")
        raise ExternalFetchError(
            f"GitHub API error {status} while fetching {what}", kind="network"
        )

    async def _get(
        self,
        client: httpx.AsyncClient,
        path: str,
        what: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        try:
            response = await client.get(
                f"{self._api_url}{path}", params=params, headers=self._headers()
            )
        except httpx.HTTPError as e:
            raise ExternalFetchError(
                f"Network error fetching {what}: {e}", kind="network"
            ) from e

        self._raise_for_status(response, what)
        return response.json()

    async def _get_paginated(
        self, client: httpx.AsyncClient, path: str, what: str
    ) -> list[Any]:
        items: list[Any] = []
        page = 1
        while True:
            data = await self._get(
                client, path, what, params={"page": page, "per_page": PER_PAGE}
            )
            if not data:
                break
            items.extend(data)
            if len(data) < PER_PAGE:
                break
            page += 1
        return items

    async def _fetch_file(
        self,
        client: httpx.AsyncClient,
        owner: str,
        repo: str,
        path: str,
        ref: str,
    ) -> KeyFile | None:
        try:
            data = await self._get(
                client,
                f"/repos/{owner}/{repo}/contents/{path}",
                path,
                params={"ref": ref},
            )
        except ExternalFetchError as e:
            if e.kind in ("not_found", "private"):
                logger.debug(f"Skipping {path}: {e}")
                return None
            raise

        if not isinstance(data, dict) or data.get("type") != "file":
            return None

        try:
            content = base64.b64decode(data.get("content", "")).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            logger.debug(f"Skipping {path}: not UTF-8 text")
            return None

        if len(content) > MAX_FILE_CHARS:
            logger.debug(f"Skipping {path}: {len(content)} chars")
            return None

        return KeyFile(
            path=path,
            language=language_from_path(path),
            content=content,
            importance=file_importance(path),
        )

    async def fetch_repository_data(self, url: str) -> RepositoryData:
        """
        Fetch a repository snapshot: metadata, file tree and key file contents.

        Args:
            url: A GitHub repository URL.

        Returns:
            RepositoryData with up to 30 key files.

        Raises:
            ExternalFetchError: If the repository cannot be read or is empty.
        """
        target = parse_github_url(url)
        owner, repo = target.owner, target.repo
        name = f"Repository {owner}/{repo}"

        should_close_client = self._http_client is None
        client = self._http_client or httpx.AsyncClient(timeout=self._timeout)

        try:
            repo_data = await self._get(client, f"/repos/{owner}/{repo}", name)
            branch = repo_data.get("default_branch") or "main"

            languages = await self._get(
                client, f"/repos/{owner}/{repo}/languages", name
            )
            tree = await self._get(
                client,
                f"/repos/{owner}/{repo}/git/trees/{branch}",
                name,
                params={"recursive": "1"},
            )

            entries = tree.get("tree") or []
            if not entries:
                raise ExternalFetchError(f"{name} is empty", kind="empty")

            paths = [
                item["path"]
                for item in entries
                if item.get("type") == "blob"
                and item.get("path")
                and not should_skip_path(item["path"])
                and is_relevant_file(item["path"])
            ]

            key_files: list[KeyFile] = []
            for path in identify_key_files(paths):
                key_file = await self._fetch_file(client, owner, repo, path, branch)
                if key_file is not None:
                    key_files.append(key_file)

            logger.info(
                f"Fetched {owner}/{repo}: {len(paths)} relevant files, "
                f"{len(key_files)} key files"
            )

            return RepositoryData(
                owner=owner,
                repo=repo,
                default_branch=branch,
                description=repo_data.get("description"),
                languages=languages or {},
                file_tree=build_file_tree(paths),
                key_files=key_files,
                total_files=len(paths),
                total_lines=sum(len(f.content.split("\n")) for f in key_files),
            )

        finally:
            if should_close_client:
                await client.aclose()

    async def fetch_pr_data(self, url: str) -> PullRequestData:
        """
        Fetch a pull request snapshot: metadata, changed files, commits and diff.

        Raises:
            ExternalFetchError: If the URL is not a PR URL or the PR cannot be read.
        """
        target = parse_github_url(url)
        if target.pr_number is None:
            raise ExternalFetchError(
                f"Invalid PR URL: missing PR number: {url}", kind="not_found"
            )
        owner, repo, number = target.owner, target.repo, target.pr_number
        name = f"Pull request #{number} in {owner}/{repo}"
        base = f"/repos/{owner}/{repo}/pulls/{number}"

        should_close_client = self._http_client is None
        client = self._http_client or httpx.AsyncClient(timeout=self._timeout)

        try:
            pr = await self._get(client, base, name)
            files_data = await self._get_paginated(client, f"{base}/files", name)
            commits_data = await self._get_paginated(client, f"{base}/commits", name)
        finally:
            if should_close_client:
                await client.aclose()

        changed_files = [
            ChangedFile(
                filename=f["filename"],
                status=f.get("status", "modified"),
                additions=f.get("additions", 0),
                deletions=f.get("deletions", 0),
                patch=f.get("patch"),
            )
            for f in files_data
        ]
        commits = [
            PRCommit(
                sha=c["sha"],
                message=c["commit"]["message"],
                author=(c["commit"].get("author") or {}).get("name") or "Unknown",
            )
            for c in commits_data
        ]

        logger.info(
            f"Fetched PR #{number} in {owner}/{repo}: {len(changed_files)} files, "
            f"{len(commits)} commits"
        )

        return PullRequestData(
            owner=owner,
            repo=repo,
            pr_number=number,
            title=pr.get("title", ""),
            description=pr.get("body"),
            base_branch=pr.get("base", {}).get("ref", ""),
            head_branch=pr.get("head", {}).get("ref", ""),
            state=pr.get("state", ""),
            diff=build_diff(changed_files),
            changed_files=changed_files,
            commits=commits,
        )
