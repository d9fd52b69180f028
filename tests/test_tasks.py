"""Tests for background analysis tasks"""

import pytest
from sqlalchemy import select

from app.analyzer.orchestrator import AnalysisOrchestrator, create_analysis_run
from app.analyzer.tasks import AnalysisAlreadyRunningError, AnalysisTaskManager, fail_interrupted_runs
from app.models.database import AnalysisRun, AnalysisStatus, Repository

from tests.helpers import BlockingGitHub


async def setup_run(session):
    repo = Repository(name="demo", full_name="octo/demo")
    session.add(repo)
    await session.commit()
    run = await create_analysis_run(session, repo.id)
    return repo, run


async def stored_run(session_factory, run_id) -> AnalysisRun:
    async with session_factory() as s:
        return (await s.execute(select(AnalysisRun).where(AnalysisRun.id == run_id))).scalar_one()


@pytest.mark.asyncio
async def test_cancel_marks_run_failed(session_factory, session):
    repo, run = await setup_run(session)
    github = BlockingGitHub()
    orchestrator = AnalysisOrchestrator(session_factory=session_factory, github_client=github,
                                        generator_factory=lambda model_config: None)
    manager = AnalysisTaskManager()

    manager.start(repo.id, run.id, orchestrator.run(run.id))
    await github.started.wait()
    assert manager.running_analysis(repo.id) == run.id

    assert await manager.cancel(repo.id) is True

    assert not manager.is_running(repo.id)
    result = await stored_run(session_factory, run.id)
    assert result.status == AnalysisStatus.FAILED
    assert result.error_message == "Analysis cancelled"


@pytest.mark.asyncio
async def test_one_analysis_per_repository(session_factory, session):
    repo, run = await setup_run(session)
    github = BlockingGitHub()
    orchestrator = AnalysisOrchestrator(session_factory=session_factory, github_client=github,
                                        generator_factory=lambda model_config: None)
    manager = AnalysisTaskManager()
    manager.start(repo.id, run.id, orchestrator.run(run.id))

    with pytest.raises(AnalysisAlreadyRunningError):
        manager.start(repo.id, run.id + 1, orchestrator.run(run.id + 1))

    await manager.shutdown()
    assert not manager.is_running(repo.id)


@pytest.mark.asyncio
async def test_cancel_without_running_task():
    assert await AnalysisTaskManager().cancel(99) is False


@pytest.mark.asyncio
async def test_interrupted_runs_are_failed_on_startup(session_factory, session):
    _, run = await setup_run(session)

    assert await fail_interrupted_runs(session) == 1

    result = await stored_run(session_factory, run.id)
    assert result.status == AnalysisStatus.FAILED
    assert result.error_message == "Interrupted by restart"
