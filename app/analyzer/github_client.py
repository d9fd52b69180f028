"""GitHub commit history ingestion"""

import asyncio
import logging
import re
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple
from dataclasses import dataclass, field

import httpx

import config

logger = logging.getLogger(__name__)

_REPO_URL_PATTERN = re.compile(r"github\.com[/:]([^/\s]+)/([^/\s#?]+)")
_FULL_NAME_PATTERN = re.compile(r"^([A-Za-z0-9_.-]+)/([A-Za-z0-9_.-]+)$")


class IngestionError(Exception):
    """Commit history could not be retrieved"""


class RepositoryNotFoundError(IngestionError):
    """The repository does not exist or the token has no access to it"""


class GitHubAPIError(IngestionError):
    """Any other upstream failure on the listing endpoint"""


@dataclass
class ChangedFile:
    """Per-file change summary from the commit detail endpoint"""
    filename: str
    additions: int = 0
    deletions: int = 0
    changes: int = 0


@dataclass
class RawCommit:
    """Commit as returned by the hosting service"""
    sha: str
    message: str
    author_name: Optional[str] = None
    author_email: Optional[str] = None
    author_date: Optional[datetime] = None
    committer_name: Optional[str] = None
    committer_email: Optional[str] = None
    committer_date: Optional[datetime] = None
    author_login: Optional[str] = None
    author_avatar: Optional[str] = None
    author_github_id: Optional[str] = None
    additions: int = 0
    deletions: int = 0
    files: List[ChangedFile] = field(default_factory=list)


def parse_github_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp into a naive UTC datetime"""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Unparseable date: {value}")
        return None
    if parsed.tzinfo:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_repository_url(value: str) -> Optional[str]:
    """Return `owner/name` for a github.com URL or an `owner/name` string"""
    value = (value or "").strip()
    match = _FULL_NAME_PATTERN.match(value)
    if match:
        return f"{match.group(1)}/{match.group(2)}"
    match = _REPO_URL_PATTERN.search(value)
    if match:
        name = match.group(2)
        if name.endswith(".git"):
            name = name[:-4]
        return f"{match.group(1)}/{name}"
    return None


class GitHubClient:
    """Fetches commit history with per-commit diff statistics"""

    def __init__(
        self,
        token: str = None,
        base_url: str = None,
        timeout: float = None,
        max_commits: int = None,
        per_page: int = None,
        detail_concurrency: int = None,
        transport: httpx.AsyncBaseTransport = None,
    ):
        self.token = token if token is not None else config.GITHUB_API_TOKEN
        self.base_url = (base_url or config.GITHUB_API_URL).rstrip("/")
        self.timeout = timeout or config.GITHUB_TIMEOUT
        self.max_commits = max_commits or config.MAX_COMMITS_PER_REPO
        self.per_page = per_page or config.COMMITS_PER_PAGE
        self.detail_concurrency = detail_concurrency or config.GITHUB_DETAIL_CONCURRENCY
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": "gitlegend",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=self.timeout,
            transport=self._transport,
        )

    async def _get(self, client: httpx.AsyncClient, path: str, params: Dict = None) -> httpx.Response:
        try:
            return await client.get(path, params=params)
        except httpx.HTTPError as e:
            raise GitHubAPIError(f"GitHub API request failed for {path}: {e!r}") from e

    @staticmethod
    def _raise_for_listing(response: httpx.Response, full_name: str):
        if response.status_code == 404:
            raise RepositoryNotFoundError(f"Repository not found or access denied: {full_name}")
        if response.status_code >= 300:
            raise GitHubAPIError(f"GitHub API error: {response.status_code} for {full_name}")

    async def get_repository(self, full_name: str) -> Dict:
        """Repository metadata used when registering a repository"""
        async with self._client() as client:
            response = await self._get(client, f"/repos/{full_name}")
            self._raise_for_listing(response, full_name)
            return response.json()

    async def fetch_commits(self, full_name: str) -> List[RawCommit]:
        """Most recent commits (newest first), capped at `max_commits`"""
        async with self._client() as client:
            listed = await self._list_commits(client, full_name)
            logger.info(f"Listed {len(listed)} commits for {full_name}")

            semaphore = asyncio.Semaphore(self.detail_concurrency)

            async def with_detail(item: Dict) -> RawCommit:
                async with semaphore:
                    detail = await self._fetch_detail(client, full_name, item.get("sha", ""))
                return self._parse_commit(item, detail)

            return list(await asyncio.gather(*(with_detail(item) for item in listed)))

    async def _list_commits(self, client: httpx.AsyncClient, full_name: str) -> List[Dict]:
        items: List[Dict] = []
        page = 1

        while len(items) < self.max_commits:
            response = await self._get(
                client,
                f"/repos/{full_name}/commits",
                params={"per_page": self.per_page, "page": page},
            )
            self._raise_for_listing(response, full_name)

            data = response.json()
            if not isinstance(data, list):
                raise GitHubAPIError(f"Unexpected commit listing payload for {full_name}")
            if not data:
                break

            items.extend(data)
            if len(data) < self.per_page:
                break
            page += 1

        return items[:self.max_commits]

    async def _fetch_detail(self, client: httpx.AsyncClient, full_name: str, sha: str) -> Optional[Dict]:
        """Commit detail with stats and files; None when unavailable"""
        try:
            response = await client.get(f"/repos/{full_name}/commits/{sha}")
        except httpx.HTTPError as e:
            logger.warning(f"Error fetching details for commit {sha}: {e!r}")
            return None

        if response.status_code != 200:
            logger.warning(f"Error fetching details for commit {sha}: HTTP {response.status_code}")
            return None

        try:
            return response.json()
        except ValueError:
            logger.warning(f"Malformed details for commit {sha}")
            return None

    @staticmethod
    def _parse_commit(item: Dict, detail: Optional[Dict]) -> RawCommit:
        commit = item.get("commit") or {}
        author = commit.get("author") or {}
        committer = commit.get("committer") or {}
        account = item.get("author") or {}

        stats, files = _parse_stats(detail)
        account_id = account.get("id")

        return RawCommit(
            sha=item.get("sha", ""),
            message=commit.get("message") or "",
            author_name=author.get("name"),
            author_email=author.get("email"),
            author_date=parse_github_date(author.get("date")),
            committer_name=committer.get("name"),
            committer_email=committer.get("email"),
            committer_date=parse_github_date(committer.get("date")),
            author_login=account.get("login"),
            author_avatar=account.get("avatar_url"),
            author_github_id=str(account_id) if account_id is not None else None,
            additions=stats[0],
            deletions=stats[1],
            files=files,
        )


def _parse_stats(detail: Optional[Dict]) -> Tuple[Tuple[int, int], List[ChangedFile]]:
    if not isinstance(detail, dict):
        return (0, 0), []

    stats = detail.get("stats") or {}
    files = [
        ChangedFile(
            filename=f.get("filename", ""),
            additions=f.get("additions") or 0,
            deletions=f.get("deletions") or 0,
            changes=f.get("changes") or 0,
        )
        for f in detail.get("files") or []
        if isinstance(f, dict)
    ]
    return (stats.get("additions") or 0, stats.get("deletions") or 0), files
