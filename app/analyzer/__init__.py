"""GitLegend Analysis Engine"""

from app.analyzer.github_client import GitHubClient, RawCommit
from app.analyzer.significance import ScoredCommit, score_commit, score_commits
from app.analyzer.contributor import ContributorAggregator, ContributorRollup, aggregate_contributors
from app.analyzer.openrouter import OpenRouterClient, SummaryResult
from app.analyzer.health import HealthScore, HealthScoringEngine, compute_health
from app.analyzer.orchestrator import AnalysisOrchestrator

__all__ = [
    "GitHubClient",
    "RawCommit",
    "ScoredCommit",
    "score_commit",
    "score_commits",
    "ContributorAggregator",
    "ContributorRollup",
    "aggregate_contributors",
    "OpenRouterClient",
    "SummaryResult",
    "HealthScore",
    "HealthScoringEngine",
    "compute_health",
    "AnalysisOrchestrator",
]
