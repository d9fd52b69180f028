"""Background analysis task tracking"""

import asyncio
import logging
from typing import Coroutine, Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.database import AnalysisRun, AnalysisStatus

logger = logging.getLogger(__name__)


class AnalysisAlreadyRunningError(Exception):
    """An analysis for this repository is still in flight"""


class AnalysisTaskManager:
    """Owns the asyncio tasks running analyses, at most one per repository"""

    def __init__(self):
        self._tasks: Dict[int, asyncio.Task] = {}
        self._analysis_ids: Dict[int, int] = {}

    def is_running(self, repository_id: int) -> bool:
        task = self._tasks.get(repository_id)
        return task is not None and not task.done()

    def running_analysis(self, repository_id: int) -> Optional[int]:
        """Analysis id currently running for the repository, if any"""
        if not self.is_running(repository_id):
            return None
        return self._analysis_ids.get(repository_id)

    def start(self, repository_id: int, analysis_id: int, coro: Coroutine) -> asyncio.Task:
        """Schedule `coro` for the repository; raises if one is already running"""
        if self.is_running(repository_id):
            coro.close()
            raise AnalysisAlreadyRunningError(
                f"Analysis {self._analysis_ids.get(repository_id)} already in progress for repository {repository_id}"
            )

        task = asyncio.create_task(coro, name=f"analysis-{analysis_id}")
        self._tasks[repository_id] = task
        self._analysis_ids[repository_id] = analysis_id
        task.add_done_callback(lambda t: self._finished(repository_id, t))
        logger.info(f"Started analysis {analysis_id} for repository {repository_id}")
        return task

    def _finished(self, repository_id: int, task: asyncio.Task):
        if self._tasks.get(repository_id) is task:
            del self._tasks[repository_id]
            self._analysis_ids.pop(repository_id, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Analysis task {task.get_name()} raised: {exc!r}")

    async def cancel(self, repository_id: int) -> bool:
        """Cancel the running analysis for a repository and wait for it to stop"""
        task = self._tasks.get(repository_id)
        if task is None or task.done():
            return False
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return True

    async def wait(self, repository_id: int):
        """Wait for the running analysis of a repository, if any"""
        task = self._tasks.get(repository_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self):
        """Cancel every in-flight analysis"""
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Cancelled {len(tasks)} running analyses")


async def fail_interrupted_runs(session: AsyncSession) -> int:
    """Mark runs left PROCESSING by a previous process as FAILED"""
    result = await session.execute(
        select(AnalysisRun).where(AnalysisRun.status == AnalysisStatus.PROCESSING)
    )
    runs = result.scalars().all()
    for run in runs:
        run.status = AnalysisStatus.FAILED
        run.error_message = "Interrupted by restart"
    await session.commit()
    return len(runs)


task_manager = AnalysisTaskManager()
