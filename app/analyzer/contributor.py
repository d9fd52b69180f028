"""Contributor Aggregation Module"""

import logging
import math
from typing import Dict, Iterable, List, Optional, Sequence
from dataclasses import dataclass

from app.analyzer.significance import ScoredCommit

logger = logging.getLogger(__name__)

TOP_CONTRIBUTOR_SHARE = 0.2


@dataclass
class ContributorRollup:
    """Aggregated metrics for one author of a repository"""
    github_id: str
    login: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    avatar: Optional[str] = None
    commits_count: int = 0
    additions: int = 0
    deletions: int = 0
    is_first_contributor: bool = False
    is_top_contributor: bool = False

    @property
    def lines_changed(self) -> int:
        return self.additions + self.deletions


def assign_rank_flags(ranked: Sequence):
    """Set the top and first flags on entries already sorted by commit count"""
    top_count = max(1, math.ceil(len(ranked) * TOP_CONTRIBUTOR_SHARE))
    for index, contrib in enumerate(ranked):
        contrib.is_top_contributor = index < top_count
        contrib.is_first_contributor = index == 0


class ContributorAggregator:
    """Folds scored commits into per-author rollups"""

    def __init__(self):
        self.contributors: Dict[str, ContributorRollup] = {}
        self.skipped_commits = 0

    def process_commit(self, scored: ScoredCommit):
        """Add one commit to its author's rollup"""
        commit = scored.commit
        github_id = commit.author_github_id
        if not github_id:
            self.skipped_commits += 1
            return

        if github_id not in self.contributors:
            self.contributors[github_id] = ContributorRollup(
                github_id=github_id,
                login=commit.author_login,
                name=commit.author_name,
                email=commit.author_email,
                avatar=commit.author_avatar,
            )

        contrib = self.contributors[github_id]
        contrib.commits_count += 1
        contrib.additions += commit.additions
        contrib.deletions += commit.deletions

    def get_rankings(self) -> List[ContributorRollup]:
        """Contributors by commit count, descending; ties keep first-seen order.

        The top 20% (rounded up, at least one) are top contributors and the
        single highest-ranked author is the first contributor.
        """
        ranked = sorted(self.contributors.values(), key=lambda c: c.commits_count, reverse=True)
        assign_rank_flags(ranked)
        return ranked

    def clear(self):
        """Clear all contributor data"""
        self.contributors.clear()
        self.skipped_commits = 0


def aggregate_contributors(commits: Iterable[ScoredCommit]) -> List[ContributorRollup]:
    """Group commits by author id and rank the resulting rollups"""
    aggregator = ContributorAggregator()
    for scored in commits:
        aggregator.process_commit(scored)

    if aggregator.skipped_commits:
        logger.debug(f"Skipped {aggregator.skipped_commits} commits without an author account")
    return aggregator.get_rankings()
