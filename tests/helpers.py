"""Fake upstream services for tests"""

import asyncio
import json
from typing import Dict, List, Optional

import httpx


def commit_item(sha: str, message: str, date: str, github_id: Optional[int] = None,
                login: str = None, name: str = None) -> Dict:
    """One entry of the commit listing endpoint"""
    return {
        "sha": sha,
        "commit": {
            "message": message,
            "author": {"name": name or login or "Anonymous", "email": f"{login or 'anon'}@example.com", "date": date},
            "committer": {"name": "GitHub", "email": "noreply@github.com", "date": date},
        },
        "author": {"id": github_id, "login": login, "avatar_url": f"https://avatars.example/{login}"}
        if github_id is not None else None,
    }


def commit_detail(additions: int, deletions: int, files: int) -> Dict:
    per_file = max(files, 1)
    return {
        "stats": {"additions": additions, "deletions": deletions, "total": additions + deletions},
        "files": [
            {
                "filename": f"src/file_{i}.py",
                "additions": additions // per_file,
                "deletions": deletions // per_file,
                "changes": (additions + deletions) // per_file,
            }
            for i in range(files)
        ],
    }


class FakeGitHub:
    """Serves repository metadata, a paginated commit listing and commit details"""

    def __init__(self, full_name: str = "octo/demo", commits: List[Dict] = None,
                 details: Dict[str, Dict] = None, listing_status: int = 200, failing_details=()):
        self.full_name = full_name
        self.commits = commits or []
        self.details = details or {}
        self.listing_status = listing_status
        self.failing_details = set(failing_details)
        self.requests: List[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if path == f"/repos/{self.full_name}":
            if self.listing_status != 200:
                return httpx.Response(self.listing_status, json={"message": "Not Found"})
            return httpx.Response(200, json={
                "id": 4242,
                "name": self.full_name.split("/")[1],
                "full_name": self.full_name,
                "description": "Demo repository",
                "language": "Python",
                "stargazers_count": 12,
                "forks_count": 3,
            })

        if path == f"/repos/{self.full_name}/commits":
            if self.listing_status != 200:
                return httpx.Response(self.listing_status, json={"message": "Not Found"})
            per_page = int(request.url.params.get("per_page", 30))
            page = int(request.url.params.get("page", 1))
            start = (page - 1) * per_page
            return httpx.Response(200, json=self.commits[start:start + per_page])

        prefix = f"/repos/{self.full_name}/commits/"
        if path.startswith(prefix):
            sha = path[len(prefix):]
            if sha in self.failing_details:
                return httpx.Response(500, json={"message": "Server Error"})
            return httpx.Response(200, json=self.details.get(sha, commit_detail(0, 0, 0)))

        return httpx.Response(404, json={"message": "Not Found"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def listing_pages(self) -> List[int]:
        return [
            int(r.url.params["page"]) for r in self.requests
            if r.url.path == f"/repos/{self.full_name}/commits"
        ]


class FakeOpenRouter:
    """Scripted chat completions: each model maps to a list of responses consumed in order.

    A response is a string (success), an int (HTTP status) or an exception
    instance raised by the transport. The last entry repeats once exhausted.
    """

    def __init__(self, script: Dict[str, list] = None, default: object = "Summary text"):
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.default = default
        self.calls: List[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        model = json.loads(request.content)["model"]
        self.calls.append(model)

        queue = self.script.get(model)
        if queue is None:
            outcome = self.default
        elif len(queue) > 1:
            outcome = queue.pop(0)
        else:
            outcome = queue[0]

        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, int):
            return httpx.Response(outcome, json={"error": {"message": f"status {outcome}"}})
        return httpx.Response(200, json={"choices": [{"message": {"content": f"  {outcome}  "}}]})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


async def no_sleep(delay: float):
    return None


class BlockingGitHub:
    """Hangs on ingestion until cancelled"""

    def __init__(self):
        self.started = asyncio.Event()

    async def fetch_commits(self, full_name):
        self.started.set()
        await asyncio.Event().wait()
