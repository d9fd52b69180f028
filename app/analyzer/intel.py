"""Repository intelligence queries for external agents (MCP)"""

import logging
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.database import Commit, Contributor, Repository

import config

logger = logging.getLogger(__name__)

BUG_KEYWORDS = (
    "fix", "bug", "error", "issue", "problem", "broken", "fail",
    "debug", "regression", "crash", "exception", "defect",
)

# (keywords, description, impact) checked in order
SHIFT_PATTERNS = (
    (("refactor", "rewrite"), "Code refactoring or rewrite", "high"),
    (("migrate", "migration"), "Technology migration", "high"),
    (("api", "interface"), "API or interface changes", "medium"),
    (("structure", "architecture"), "Structural reorganization", "high"),
)

AREA_KEYWORDS = (
    ("API", ("api",)),
    ("Frontend", ("ui", "frontend")),
    ("Database", ("database", "db")),
    ("Testing", ("test", "spec")),
    ("Configuration", ("config", "setup")),
)


class NotFoundError(LookupError):
    """Requested repository or commit does not exist"""


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class RepositoryIntel:
    """Read-only queries over persisted commits and contributors"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def _repository(self, repository_id: int) -> Repository:
        repo = await self.session.get(Repository, repository_id)
        if repo is None:
            raise NotFoundError("Repository not found")
        return repo

    async def _commits(self, repository_id: int, newest_first: bool = False, limit: int = None,
                       since: datetime = None) -> List[Commit]:
        order = Commit.author_date.desc() if newest_first else Commit.author_date.asc()
        query = select(Commit).where(Commit.repository_id == repository_id).order_by(order)
        if since is not None:
            query = query.where(Commit.author_date >= since)
        if limit:
            query = query.limit(limit)
        return (await self.session.execute(query)).scalars().all()

    async def get_biography(self, repository_id: int) -> Dict:
        """Overview of a repository's history"""
        repo = await self._repository(repository_id)
        commits = [c for c in await self._commits(repository_id) if c.author_date]
        contributors = (await self.session.execute(
            select(Contributor).where(Contributor.repository_id == repository_id)
        )).scalars().all()

        biography = {
            "repository": {
                "name": repo.name,
                "full_name": repo.full_name,
                "description": repo.description,
                "language": repo.language,
                "stars": repo.stars or 0,
                "forks": repo.forks or 0,
                "created_at": _iso(repo.created_at),
                "last_analyzed": _iso(repo.last_analyzed),
            },
            "total_commits": len(commits),
            "total_contributors": len(contributors),
            "time_span": {"first_commit": "", "last_commit": ""},
            "key_metrics": {"avg_commits_per_month": 0, "top_contributor": "", "most_active_month": ""},
        }
        if not commits:
            return biography

        first, last = commits[0].author_date, commits[-1].author_date
        months_span = max(1.0, (last - first).total_seconds() / (86400 * 30))

        top = max(contributors, key=lambda c: c.commits_count or 0) if contributors else None
        by_month = Counter(c.author_date.strftime("%Y-%m") for c in commits)

        biography["time_span"] = {"first_commit": _iso(first), "last_commit": _iso(last)}
        biography["key_metrics"] = {
            "avg_commits_per_month": round(len(commits) / months_span),
            "top_contributor": (top.login or top.name or "Unknown") if top else "",
            "most_active_month": by_month.most_common(1)[0][0],
        }
        return biography

    async def get_intel(self, repository_id: int, sha: str) -> Dict:
        """A commit with its stats and up to five related commits"""
        commit = (await self.session.execute(
            select(Commit).where(Commit.repository_id == repository_id, Commit.sha == sha)
        )).scalar_one_or_none()
        if commit is None:
            raise NotFoundError("Commit not found")

        words = (commit.message or "").split()
        related: List[Commit] = []
        if words:
            related = (await self.session.execute(
                select(Commit)
                .where(
                    Commit.repository_id == repository_id,
                    Commit.id != commit.id,
                    Commit.message.contains(words[0]),
                )
                .order_by(Commit.author_date.desc())
                .limit(5)
            )).scalars().all()

        return {
            "commit": {
                "sha": commit.sha,
                "message": commit.message,
                "author_name": commit.author_name,
                "author_date": _iso(commit.author_date),
                "significance": commit.significance,
                "summary": commit.summary,
                "is_key_commit": commit.is_key_commit,
            },
            "context": {
                "files_changed": commit.files_changed,
                "additions": commit.additions,
                "deletions": commit.deletions,
                "related_commits": [
                    {"sha": r.sha, "message": r.message, "author_date": _iso(r.author_date)}
                    for r in related
                ],
            },
        }

    async def diagnose_bug_origin(self, repository_id: int, bug_description: str,
                                  since: datetime = None) -> Dict:
        """Most recent bug-flavoured or key commit as a likely origin"""
        commits = await self._commits(repository_id, newest_first=True, since=since)
        analysis = {
            "bug_description": bug_description,
            "suspicious_patterns": [],
            "recommended_investigation": [],
        }
        if not commits:
            return {"potential_origin": None, "analysis": analysis}

        threshold = config.KEY_COMMIT_THRESHOLD
        suspicious = [
            c for c in commits
            if any(k in (c.message or "").lower() for k in BUG_KEYWORDS) or (c.significance or 0) > threshold
        ]

        origin = None
        if suspicious:
            candidate = suspicious[0]
            origin = {
                "sha": candidate.sha,
                "message": candidate.message,
                "author_date": _iso(candidate.author_date),
                "author_name": candidate.author_name,
                "confidence": round(min(0.9, 0.5 + (candidate.significance or 0) * 0.4), 3),
                "reasoning": "High significance commit with bug-related keywords in message",
            }

        analysis["suspicious_patterns"] = [
            "High significance commits",
            "Commits with bug-related keywords",
            "Recent changes to core functionality",
        ]
        analysis["recommended_investigation"] = [
            "Review commits with high significance scores",
            "Check recent changes to affected modules",
            "Look for regression patterns in commit history",
        ]
        return {"potential_origin": origin, "analysis": analysis}

    async def explain_architectural_shift(self, repository_id: int) -> Dict:
        """Key commits classified by the kind of structural change they describe"""
        commits = await self._commits(repository_id)
        if not commits:
            return {
                "shifts": [],
                "summary": {"major_shifts": 0, "primary_areas": [], "evolution_pattern": "No commits found"},
            }

        shifts = []
        for commit in commits:
            if not commit.is_key_commit:
                continue
            description, impact = classify_shift(commit.message)
            shifts.append({
                "sha": commit.sha,
                "message": commit.message,
                "author_date": _iso(commit.author_date),
                "description": description,
                "impact": impact,
            })

        high_impact = sum(1 for s in shifts if s["impact"] == "high")
        return {
            "shifts": shifts,
            "summary": {
                "major_shifts": high_impact,
                "primary_areas": primary_areas(c.message for c in commits),
                "evolution_pattern": evolution_pattern(len(shifts), high_impact),
            },
        }

    async def get_review_guidelines(self, repository_id: int) -> Dict:
        """Review rules derived from the last 100 commits"""
        await self._repository(repository_id)
        commits = await self._commits(repository_id, newest_first=True, limit=100)

        patterns: List[str] = []
        issues: List[str] = []
        preferences: List[str] = []
        for commit in commits:
            message = (commit.message or "").lower()
            if ("test" in message or "spec" in message) and "Test-driven development" not in patterns:
                patterns.append("Test-driven development")
            if "break" in message and "Breaking changes detected" not in issues:
                issues.append("Breaking changes detected")
            if ("fix" in message or "bug" in message) and "Bug fixes common" not in issues:
                issues.append("Bug fixes common")
            if "feat" in message and "Feature-focused development" not in preferences:
                preferences.append("Feature-focused development")

        guidelines = [
            {"rule": "Clear Commit Messages",
             "description": "Write descriptive commit messages that explain the 'why' behind changes",
             "severity": "high"},
            {"rule": "Significant Changes Review",
             "description": "Commits with high impact should be thoroughly reviewed",
             "severity": "high"},
            {"rule": "Consistent Style",
             "description": "Maintain consistent coding style across the repository",
             "severity": "medium"},
        ]
        if "Test-driven development" in patterns:
            guidelines.append({"rule": "Test Coverage",
                               "description": "Ensure adequate test coverage for new features",
                               "severity": "medium"})
        if "Breaking changes detected" in issues:
            guidelines.append({"rule": "Breaking Changes",
                               "description": "Clearly document breaking changes and migration paths",
                               "severity": "high"})

        return {
            "guidelines": guidelines,
            "context": {
                "repository_patterns": patterns,
                "common_issues": issues,
                "team_preferences": preferences,
            },
        }


def classify_shift(message: Optional[str]):
    lowered = (message or "").lower()
    for keywords, description, impact in SHIFT_PATTERNS:
        if any(k in lowered for k in keywords):
            return description, impact
    return "Major architectural change", "medium"


def primary_areas(messages) -> List[str]:
    found = set()
    for message in messages:
        lowered = (message or "").lower()
        for area, keywords in AREA_KEYWORDS:
            if any(k in lowered for k in keywords):
                found.add(area)
    return [area for area, _ in AREA_KEYWORDS if area in found]


def evolution_pattern(shift_count: int, high_impact: int) -> str:
    if shift_count == 0:
        return "Steady incremental development"
    if high_impact > 3:
        return "Rapid evolution with frequent architectural changes"
    if high_impact > 1:
        return "Moderate evolution with occasional major changes"
    return "Stable evolution with minimal architectural disruption"
