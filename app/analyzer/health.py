"""Repository Health Scoring Module"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.database import Commit, Contributor

import config

logger = logging.getLogger(__name__)

NO_DATA_RECOMMENDATION = "No commits found to analyze health"
HEALTHY_RECOMMENDATION = "Project health looks good! Continue current practices"


@dataclass
class HealthMetrics:
    total_commits: int = 0
    active_contributors: int = 0
    commit_frequency: float = 0.0  # commits per week
    avg_response_time: float = 0.0  # days between fix commits
    bug_fix_rate: float = 0.0


@dataclass
class HealthBreakdown:
    activity: int = 0
    contributor_diversity: int = 0
    code_quality: int = 0
    maintenance: int = 0


@dataclass
class HealthScore:
    """Composite health score for a repository (0-100)"""
    overall: int = 0
    breakdown: HealthBreakdown = field(default_factory=HealthBreakdown)
    recommendations: List[str] = field(default_factory=list)
    metrics: HealthMetrics = field(default_factory=HealthMetrics)

    def to_dict(self) -> Dict:
        """Convert to dictionary for API response"""
        return {
            "overall": self.overall,
            "breakdown": {
                "activity": self.breakdown.activity,
                "contributor_diversity": self.breakdown.contributor_diversity,
                "code_quality": self.breakdown.code_quality,
                "maintenance": self.breakdown.maintenance,
            },
            "recommendations": list(self.recommendations),
            "metrics": {
                "total_commits": self.metrics.total_commits,
                "active_contributors": self.metrics.active_contributors,
                "commit_frequency": round(self.metrics.commit_frequency, 2),
                "avg_response_time": round(self.metrics.avg_response_time, 2),
                "bug_fix_rate": round(self.metrics.bug_fix_rate, 4),
            },
        }


def _mentions(message: Optional[str], *keywords: str) -> bool:
    lowered = (message or "").lower()
    return any(k in lowered for k in keywords)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: float, low: float = 0, high: float = 100) -> float:
    return max(low, min(high, value))


def compute_health(commits: Sequence, contributors: Sequence, now: datetime = None) -> HealthScore:
    """Compute the health score from persisted commits and contributor rollups.

    Commits need `message`, `author_date`, `author_github_id` and `author_name`;
    contributors need `github_id`, `name` and `commits_count`.
    """
    if not commits:
        return HealthScore(recommendations=[NO_DATA_RECOMMENDATION])

    now = now or datetime.utcnow()
    metrics = _calc_metrics(commits, contributors, now)
    breakdown = HealthBreakdown(
        activity=_round_half_up(_calc_activity(metrics)),
        contributor_diversity=_round_half_up(_calc_diversity(commits, contributors)),
        code_quality=_round_half_up(_calc_code_quality(commits)),
        maintenance=_round_half_up(_calc_maintenance(commits, metrics, now)),
    )

    weights = config.HEALTH_WEIGHTS
    overall = _round_half_up(
        breakdown.activity * weights["activity"] +
        breakdown.contributor_diversity * weights["contributor_diversity"] +
        breakdown.code_quality * weights["code_quality"] +
        breakdown.maintenance * weights["maintenance"]
    )

    return HealthScore(
        overall=overall,
        breakdown=breakdown,
        recommendations=_recommendations(breakdown, metrics),
        metrics=metrics,
    )


def _calc_metrics(commits: Sequence, contributors: Sequence, now: datetime) -> HealthMetrics:
    thirty_days_ago = now - timedelta(days=30)

    recent_ids = set()
    recent_names = set()
    for commit in commits:
        if commit.author_date and commit.author_date >= thirty_days_ago:
            if commit.author_github_id:
                recent_ids.add(commit.author_github_id)
            elif commit.author_name:
                recent_names.add(commit.author_name)

    active_contributors = sum(
        1 for c in contributors
        if c.github_id in recent_ids or (c.name and c.name in recent_names)
    )

    dates = [c.author_date for c in commits if c.author_date]
    span_days = (max(dates) - min(dates)).total_seconds() / 86400 if dates else 0
    weeks_span = max(1.0, span_days / 7)

    bug_fixes = sum(1 for c in commits if _mentions(c.message, "fix", "bug"))

    return HealthMetrics(
        total_commits=len(commits),
        active_contributors=active_contributors,
        commit_frequency=len(commits) / weeks_span,
        avg_response_time=_calc_average_response_time(commits),
        bug_fix_rate=bug_fixes / len(commits),
    )


def _calc_average_response_time(commits: Sequence) -> float:
    """Mean gap in days between consecutive fix commits"""
    fix_dates = sorted(c.author_date for c in commits if c.author_date and _mentions(c.message, "fix"))
    if len(fix_dates) < 2:
        return 0.0
    gaps = [(b - a).total_seconds() / 86400 for a, b in zip(fix_dates, fix_dates[1:])]
    return sum(gaps) / len(gaps)


def _calc_activity(metrics: HealthMetrics) -> float:
    return min(100, metrics.active_contributors * 20 + metrics.commit_frequency * 10)


def _calc_diversity(commits: Sequence, contributors: Sequence) -> float:
    if not contributors:
        return 0
    top_commits = max(c.commits_count or 0 for c in contributors)
    concentration = top_commits / len(commits)
    return max(0, 100 - concentration * 100)


def _calc_code_quality(commits: Sequence) -> float:
    score = 70
    total = len(commits)

    tests = sum(1 for c in commits if _mentions(c.message, "test", "spec"))
    if tests >= total * 0.1:
        score += 10

    reverts = sum(1 for c in commits if _mentions(c.message, "revert"))
    if reverts >= total * 0.05:
        score -= 15

    return _clamp(score)


def _calc_maintenance(commits: Sequence, metrics: HealthMetrics, now: datetime) -> float:
    ninety_days_ago = now - timedelta(days=90)
    recent = sum(1 for c in commits if c.author_date and c.author_date >= ninety_days_ago)

    score = min(100, recent / len(commits) * 100)
    if metrics.bug_fix_rate > 0.1:
        score += 10
    return _clamp(score)


def _recommendations(breakdown: HealthBreakdown, metrics: HealthMetrics) -> List[str]:
    recommendations = []

    if breakdown.activity < 50:
        recommendations.append("Increase commit frequency to maintain project momentum")
    if breakdown.contributor_diversity < 40:
        recommendations.append("Encourage more contributors to reduce dependency on key developers")
    if breakdown.code_quality < 60:
        recommendations.append("Improve code quality practices: add more tests and reduce reverts")
    if breakdown.maintenance < 50:
        recommendations.append("Focus on maintenance: address issues and keep dependencies updated")
    if metrics.bug_fix_rate < 0.05:
        recommendations.append("Consider implementing more rigorous testing to catch bugs earlier")
    if metrics.active_contributors < 2:
        recommendations.append("Grow the contributor base through better documentation and onboarding")

    if not recommendations:
        recommendations.append(HEALTHY_RECOMMENDATION)

    return recommendations


class HealthScoringEngine:
    """Calculate health scores for persisted repositories"""

    @staticmethod
    async def calculate(session: AsyncSession, repository_id: int, now: datetime = None) -> HealthScore:
        commits = (await session.execute(
            select(Commit)
            .where(Commit.repository_id == repository_id)
            .order_by(Commit.author_date)
        )).scalars().all()
        contributors = (await session.execute(
            select(Contributor).where(Contributor.repository_id == repository_id)
        )).scalars().all()

        score = compute_health(commits, contributors, now=now)
        logger.debug(f"Health for repository {repository_id}: {score.overall}")
        return score
