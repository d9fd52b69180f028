"""Tests for repository health scoring"""

from datetime import datetime
from types import SimpleNamespace

import pytest

from app.analyzer.health import HealthScoringEngine, compute_health
from app.models.database import Commit, Contributor, Repository

NOW = datetime(2024, 6, 1)


def commit(message, date, github_id="1", name="Dev"):
    return SimpleNamespace(message=message, author_date=date, author_github_id=github_id, author_name=name)


def contributor(github_id, commits_count, name="Dev"):
    return SimpleNamespace(github_id=github_id, name=name, commits_count=commits_count)


ACTIVE_HISTORY = [
    commit("Add feature", datetime(2024, 5, 25), "1"),
    commit("fix crash on start", datetime(2024, 5, 20), "2", "Other"),
    commit("add tests for parser", datetime(2024, 5, 10), "1"),
    commit("fix typo", datetime(2024, 4, 30), "1"),
]
ACTIVE_CONTRIBUTORS = [contributor("1", 3), contributor("2", 1, "Other")]


def test_no_commits():
    score = compute_health([], [])

    assert score.overall == 0
    assert score.recommendations == ["No commits found to analyze health"]


def test_active_repository():
    score = compute_health(ACTIVE_HISTORY, ACTIVE_CONTRIBUTORS, now=NOW)

    assert score.metrics.active_contributors == 2
    assert score.metrics.commit_frequency == pytest.approx(1.12)
    assert score.metrics.bug_fix_rate == pytest.approx(0.5)
    assert score.metrics.avg_response_time == pytest.approx(20.0)

    assert score.breakdown.activity == 51
    assert score.breakdown.contributor_diversity == 25
    assert score.breakdown.code_quality == 80
    assert score.breakdown.maintenance == 100
    assert score.overall == 64
    assert score.recommendations == ["Encourage more contributors to reduce dependency on key developers"]


def test_stale_single_author_repository():
    history = [
        commit("initial import", datetime(2023, 1, 1)),
        commit("revert change", datetime(2023, 1, 8)),
    ]

    score = compute_health(history, [contributor("1", 2)], now=NOW)

    assert score.breakdown.code_quality == 55
    assert score.breakdown.maintenance == 0
    assert score.recommendations == [
        "Increase commit frequency to maintain project momentum",
        "Encourage more contributors to reduce dependency on key developers",
        "Improve code quality practices: add more tests and reduce reverts",
        "Focus on maintenance: address issues and keep dependencies updated",
        "Consider implementing more rigorous testing to catch bugs earlier",
        "Grow the contributor base through better documentation and onboarding",
    ]


def test_to_dict_shape():
    data = compute_health(ACTIVE_HISTORY, ACTIVE_CONTRIBUTORS, now=NOW).to_dict()

    assert set(data) == {"overall", "breakdown", "recommendations", "metrics"}
    assert set(data["breakdown"]) == {"activity", "contributor_diversity", "code_quality", "maintenance"}
    assert data["metrics"]["commit_frequency"] == 1.12


@pytest.mark.asyncio
async def test_engine_reads_persisted_history(session):
    repo = Repository(name="demo", full_name="octo/demo")
    session.add(repo)
    await session.flush()

    for i, c in enumerate(ACTIVE_HISTORY):
        session.add(Commit(
            sha=f"sha{i}",
            repository_id=repo.id,
            message=c.message,
            author_name=c.author_name,
            author_github_id=c.author_github_id,
            author_date=c.author_date,
        ))
    for c in ACTIVE_CONTRIBUTORS:
        session.add(Contributor(repository_id=repo.id, github_id=c.github_id, name=c.name,
                                commits_count=c.commits_count))
    await session.commit()

    score = await HealthScoringEngine.calculate(session, repo.id, now=NOW)

    assert score.overall == 64


def test_half_scores_round_up():
    history = [commit(f"change {i}", datetime(2024, 5, 20), str(i % 6)) for i in range(8)]
    contributors = [contributor("0", 3)] + [contributor(str(i), 1) for i in range(1, 6)]

    score = compute_health(history, contributors, now=NOW)

    assert score.breakdown.contributor_diversity == 63
