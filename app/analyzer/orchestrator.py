"""End-to-end repository analysis pipeline"""

import asyncio
import json
import logging
from collections import Counter
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.analyzer.contributor import ContributorRollup, aggregate_contributors, assign_rank_flags
from app.analyzer.github_client import GitHubClient
from app.analyzer.model_config import ModelConfigStore
from app.analyzer.model_registry import ModelConfiguration
from app.analyzer.openrouter import CommitFacts, OpenRouterClient
from app.analyzer.significance import ScoredCommit, score_commits
from app.models.database import AnalysisRun, AnalysisStatus, Commit, Contributor, Repository

import config

logger = logging.getLogger(__name__)

GeneratorFactory = Callable[[ModelConfiguration], Optional[OpenRouterClient]]
ProgressListener = Callable[[int, int], None]

PROGRESS_STARTED = 10
PROGRESS_INGESTED = 30
PROGRESS_SCORED = 60
PROGRESS_SUMMARIZED = 80
PROGRESS_DONE = 100


def default_generator_factory(model_config: ModelConfiguration) -> Optional[OpenRouterClient]:
    """OpenRouter client for the active configuration; None when no API key is set"""
    if not config.OPENROUTER_API_KEY:
        logger.warning("OPENROUTER_API_KEY is not configured, skipping commit summaries")
        return None
    return OpenRouterClient(model_config=model_config)


async def create_analysis_run(session: AsyncSession, repository_id: int) -> AnalysisRun:
    """Create a run already in PROCESSING at progress 0"""
    run = AnalysisRun(
        repository_id=repository_id,
        status=AnalysisStatus.PROCESSING,
        progress=0,
        started_at=datetime.utcnow(),
    )
    session.add(run)
    await session.commit()
    await session.refresh(run)
    return run


class AnalysisOrchestrator:
    """Ingest, score, summarize, aggregate and persist one repository's history"""

    def __init__(
        self,
        session_factory=None,
        github_client: GitHubClient = None,
        generator_factory: GeneratorFactory = None,
        progress_listener: ProgressListener = None,
    ):
        self.session_factory = session_factory
        self.github = github_client or GitHubClient()
        self.generator_factory = generator_factory or default_generator_factory
        self.progress_listener = progress_listener

    def _sessions(self):
        if self.session_factory is not None:
            return self.session_factory
        from app.models.database import SessionLocal
        return SessionLocal

    async def run(self, analysis_id: int):
        """Run the pipeline for an existing analysis run"""
        async with self._sessions()() as session:
            run = await session.get(AnalysisRun, analysis_id)
            if run is None:
                logger.error(f"Analysis run {analysis_id} not found")
                return
            if run.status in AnalysisStatus.TERMINAL:
                logger.warning(f"Analysis run {analysis_id} already {run.status}")
                return

            repo = await session.get(Repository, run.repository_id)
            run.status = AnalysisStatus.PROCESSING
            run.started_at = run.started_at or datetime.utcnow()
            await session.commit()

            try:
                if repo is None:
                    raise ValueError(f"Repository {run.repository_id} not found")

                await self._set_progress(session, run, PROGRESS_STARTED)
                raw_commits = await self.github.fetch_commits(repo.full_name)
                await self._set_progress(session, run, PROGRESS_INGESTED)

                scored = score_commits(raw_commits)
                await self._set_progress(session, run, PROGRESS_SCORED)

                model_usage = await self._summarize(session, scored)
                run.summaries_generated = sum(model_usage.values())
                run.model_usage_json = json.dumps(model_usage)
                await self._set_progress(session, run, PROGRESS_SUMMARIZED)

                rollups = aggregate_contributors(scored)
                new_commits = await self._save_commits(session, repo.id, run.id, scored)
                await self._save_contributors(session, repo.id, rollups)

                run.status = AnalysisStatus.COMPLETED
                run.commits_analyzed = len(scored)
                run.completed_at = datetime.utcnow()
                await self._set_progress(session, run, PROGRESS_DONE)

                repo.last_analyzed = datetime.utcnow()
                await session.commit()

                logger.info(
                    f"Analysis {analysis_id} completed for {repo.full_name}: {len(scored)} commits "
                    f"({new_commits} new), {len(rollups)} contributors, {run.summaries_generated} summaries"
                )

            except asyncio.CancelledError:
                logger.warning(f"Analysis {analysis_id} cancelled")
                await self._mark_failed(session, analysis_id, "Analysis cancelled")
                raise
            except Exception as e:
                logger.error(f"Analysis {analysis_id} failed: {e}")
                await self._mark_failed(session, analysis_id, str(e) or e.__class__.__name__)

    async def _set_progress(self, session: AsyncSession, run: AnalysisRun, progress: int):
        run.progress = max(run.progress or 0, progress)
        await session.commit()
        if self.progress_listener:
            self.progress_listener(run.id, run.progress)

    async def _mark_failed(self, session: AsyncSession, analysis_id: int, message: str):
        await session.rollback()
        run = await session.get(AnalysisRun, analysis_id)
        if run is None:
            return
        run.status = AnalysisStatus.FAILED
        run.error_message = message
        await session.commit()

    async def _summarize(self, session: AsyncSession, scored: List[ScoredCommit]) -> Dict[str, int]:
        """Attach summaries to key commits; returns a histogram of models used"""
        key_commits = [s for s in scored if s.is_key_commit]
        if not key_commits:
            return {}

        model_config = await ModelConfigStore(session).get_active()
        generator = self.generator_factory(model_config)
        if generator is None:
            return {}

        try:
            results = await generator.batch_generate_summaries([
                CommitFacts(
                    sha=s.sha,
                    message=s.message,
                    files_changed=s.files_changed,
                    additions=s.additions,
                    deletions=s.deletions,
                )
                for s in key_commits
            ])
        except Exception as e:
            logger.warning(f"Summary generation failed, continuing without summaries: {e}")
            return {}

        by_sha = {r.sha: r for r in results}
        usage: Counter = Counter()
        for s in key_commits:
            result = by_sha.get(s.sha)
            if result and result.summary:
                s.summary = result.summary
                s.model_used = result.model_used
                usage[result.model_used] += 1

        logger.info(f"Generated {sum(usage.values())}/{len(key_commits)} key commit summaries")
        return dict(usage)

    async def _save_commits(
        self,
        session: AsyncSession,
        repository_id: int,
        analysis_id: int,
        scored: List[ScoredCommit]
    ) -> int:
        """Insert commits whose sha is not yet stored for the repository"""
        result = await session.execute(
            select(Commit.sha).where(Commit.repository_id == repository_id)
        )
        existing = set(result.scalars().all())

        inserted = 0
        for s in scored:
            if s.sha in existing:
                continue
            existing.add(s.sha)
            c = s.commit
            session.add(Commit(
                sha=c.sha,
                repository_id=repository_id,
                analysis_id=analysis_id,
                message=c.message,
                author_name=c.author_name,
                author_email=c.author_email,
                author_login=c.author_login,
                author_github_id=c.author_github_id,
                author_avatar=c.author_avatar,
                author_date=c.author_date,
                committer_name=c.committer_name,
                committer_email=c.committer_email,
                committer_date=c.committer_date,
                additions=c.additions,
                deletions=c.deletions,
                files_changed=s.files_changed,
                significance=s.significance,
                is_key_commit=s.is_key_commit,
                summary=s.summary,
                model_used=s.model_used,
            ))
            inserted += 1

        await session.commit()
        return inserted

    async def _save_contributors(self, session: AsyncSession, repository_id: int, rollups: List[ContributorRollup]):
        """Upsert rollups: counters are incremented, identity fields overwritten, flags re-ranked"""
        result = await session.execute(
            select(Contributor).where(Contributor.repository_id == repository_id)
        )
        by_github_id = {c.github_id: c for c in result.scalars().all()}

        for rollup in rollups:
            row = by_github_id.get(rollup.github_id)
            if row is None:
                row = Contributor(
                    repository_id=repository_id,
                    github_id=rollup.github_id,
                    commits_count=0,
                    additions=0,
                    deletions=0,
                )
                session.add(row)
                by_github_id[rollup.github_id] = row

            row.commits_count = (row.commits_count or 0) + rollup.commits_count
            row.additions = (row.additions or 0) + rollup.additions
            row.deletions = (row.deletions or 0) + rollup.deletions
            row.login = rollup.login
            row.name = rollup.name
            row.email = rollup.email
            row.avatar = rollup.avatar

        # flags follow cumulative counts over every stored row
        assign_rank_flags(sorted(by_github_id.values(), key=lambda c: c.commits_count or 0, reverse=True))
        await session.commit()
