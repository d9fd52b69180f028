"""Commit significance scoring"""

import math
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional

from app.analyzer.github_client import RawCommit

import config

RELEASE_PATTERN = re.compile(r"\b(release|version|v\d+\.\d+)\b", re.IGNORECASE)

CHANGES_WEIGHT = 0.4
FILES_WEIGHT = 0.3
MERGE_BONUS = 0.2
RELEASE_BONUS = 0.3


@dataclass
class SignificanceResult:
    significance: float
    is_key_commit: bool


@dataclass
class ScoredCommit:
    """Raw commit enriched with its score and, for key commits, a summary"""
    commit: RawCommit
    files_changed: int
    significance: float
    is_key_commit: bool
    summary: Optional[str] = None
    model_used: Optional[str] = None

    @property
    def sha(self) -> str:
        return self.commit.sha

    @property
    def message(self) -> str:
        return self.commit.message

    @property
    def additions(self) -> int:
        return self.commit.additions

    @property
    def deletions(self) -> int:
        return self.commit.deletions


def score_commit(commit: RawCommit, threshold: float = None) -> SignificanceResult:
    """Score a commit in [0, 1]; commits above the threshold are key commits.

    Diff size and file count contribute logarithmically. Merge and release
    commits get a flat bonus independent of size.
    """
    threshold = config.KEY_COMMIT_THRESHOLD if threshold is None else threshold

    message = commit.message or ""
    total_changes = (commit.additions or 0) + (commit.deletions or 0)
    files_changed = len(commit.files)
    has_merge = "merge" in message.lower()
    has_release = RELEASE_PATTERN.search(message) is not None

    significance = (
        CHANGES_WEIGHT * math.log(total_changes + 1) +
        FILES_WEIGHT * math.log(files_changed + 1) +
        (MERGE_BONUS if has_merge else 0.0) +
        (RELEASE_BONUS if has_release else 0.0)
    )
    significance = min(significance, 1.0)

    return SignificanceResult(significance=significance, is_key_commit=significance > threshold)


def score_commits(commits: Iterable[RawCommit], threshold: float = None) -> List[ScoredCommit]:
    """Score every commit, keeping input order"""
    scored = []
    for commit in commits:
        result = score_commit(commit, threshold)
        scored.append(ScoredCommit(
            commit=commit,
            files_changed=len(commit.files),
            significance=result.significance,
            is_key_commit=result.is_key_commit,
        ))
    return scored
