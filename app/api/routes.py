"""API Routes for GitLegend"""

import json
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.database import (
    Repository, Commit, Contributor, AnalysisRun, AnalysisStatus, get_session
)
from app.analyzer import GitHubClient, AnalysisOrchestrator, HealthScoringEngine
from app.analyzer.github_client import IngestionError, RepositoryNotFoundError, parse_repository_url
from app.analyzer.intel import NotFoundError, RepositoryIntel
from app.analyzer.model_config import ModelConfigConflictError, ModelConfigStore
from app.analyzer.model_registry import (
    ModelConfigError, ModelConfiguration, get_model_by_id, list_free, list_models, list_recommended_free
)
from app.analyzer.orchestrator import GeneratorFactory, create_analysis_run, default_generator_factory
from app.analyzer.tasks import AnalysisAlreadyRunningError, AnalysisTaskManager, task_manager

logger = logging.getLogger(__name__)
router = APIRouter()


# ============== Pydantic Models ==============

class RepositoryResponse(BaseModel):
    id: int
    name: str
    full_name: str
    description: Optional[str]
    language: Optional[str]
    stars: int
    forks: int
    last_analyzed: Optional[datetime]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class CreateRepositoryRequest(BaseModel):
    repository: str = Field(..., description="owner/name or a github.com URL")


class CommitResponse(BaseModel):
    sha: str
    message: str
    author_name: Optional[str]
    author_login: Optional[str]
    author_avatar: Optional[str]
    author_date: Optional[datetime]
    additions: int
    deletions: int
    files_changed: int
    significance: float
    is_key_commit: bool
    summary: Optional[str]
    model_used: Optional[str]

    class Config:
        from_attributes = True


class ContributorResponse(BaseModel):
    github_id: str
    login: Optional[str]
    name: Optional[str]
    email: Optional[str]
    avatar: Optional[str]
    commits_count: int
    additions: int
    deletions: int
    is_first_contributor: bool
    is_top_contributor: bool

    class Config:
        from_attributes = True


class AnalysisResponse(BaseModel):
    id: int
    repository_id: int
    status: str
    progress: int
    error: Optional[str]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    commits_analyzed: int
    summaries_generated: int
    model_usage: Dict[str, int]


class ModelConfigRequest(BaseModel):
    primary: str
    fallback: str
    enabled: List[str]
    expected_version: Optional[int] = None
    updated_by: Optional[str] = None


class ModelTestRequest(BaseModel):
    model_id: str


class BugOriginRequest(BaseModel):
    repository_id: int
    bug_description: str
    since: Optional[datetime] = None


# ============== Dependencies ==============

def get_github_client() -> GitHubClient:
    return GitHubClient()


def get_orchestrator() -> AnalysisOrchestrator:
    return AnalysisOrchestrator()


def get_task_manager() -> AnalysisTaskManager:
    return task_manager


def get_generator_factory() -> GeneratorFactory:
    return default_generator_factory


async def _get_repository(session: AsyncSession, repository_id: int) -> Repository:
    repo = await session.get(Repository, repository_id)
    if not repo:
        raise HTTPException(status_code=404, detail="Repository not found")
    return repo


def _analysis_response(run: AnalysisRun) -> AnalysisResponse:
    return AnalysisResponse(
        id=run.id,
        repository_id=run.repository_id,
        status=run.status,
        progress=run.progress or 0,
        error=run.error_message,
        started_at=run.started_at,
        completed_at=run.completed_at,
        commits_analyzed=run.commits_analyzed or 0,
        summaries_generated=run.summaries_generated or 0,
        model_usage=json.loads(run.model_usage_json or "{}"),
    )


# ============== Repository Endpoints ==============

@router.get("/repositories", response_model=List[RepositoryResponse])
async def list_repositories(session: AsyncSession = Depends(get_session)):
    """List all repositories"""
    result = await session.execute(select(Repository).order_by(Repository.created_at.desc()))
    return result.scalars().all()


@router.post("/repositories", response_model=RepositoryResponse, status_code=201)
async def create_repository(
    request: CreateRepositoryRequest,
    session: AsyncSession = Depends(get_session),
    github: GitHubClient = Depends(get_github_client)
):
    """Import a repository from GitHub"""
    full_name = parse_repository_url(request.repository)
    if not full_name:
        raise HTTPException(status_code=400, detail="Invalid GitHub repository URL")

    result = await session.execute(select(Repository).where(Repository.full_name == full_name))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail="Repository already added")

    try:
        data = await github.get_repository(full_name)
    except RepositoryNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except IngestionError as e:
        logger.error(f"Error fetching repository {full_name}: {e}")
        raise HTTPException(status_code=502, detail="Failed to fetch repository from GitHub")

    repo = Repository(
        github_id=str(data["id"]) if data.get("id") is not None else None,
        name=data.get("name") or full_name.split("/")[-1],
        full_name=data.get("full_name") or full_name,
        description=data.get("description"),
        language=data.get("language"),
        stars=data.get("stargazers_count") or 0,
        forks=data.get("forks_count") or 0,
    )
    session.add(repo)
    await session.commit()
    await session.refresh(repo)
    logger.info(f"Registered repository {repo.full_name}")
    return repo


@router.get("/repositories/{repository_id}", response_model=RepositoryResponse)
async def get_repository(repository_id: int, session: AsyncSession = Depends(get_session)):
    """Get repository details"""
    return await _get_repository(session, repository_id)


@router.get("/repositories/{repository_id}/commits", response_model=List[CommitResponse])
async def list_commits(
    repository_id: int,
    key_only: bool = False,
    limit: int = 500,
    offset: int = 0,
    session: AsyncSession = Depends(get_session)
):
    """Commit timeline, newest first"""
    await _get_repository(session, repository_id)

    query = select(Commit).where(Commit.repository_id == repository_id)
    if key_only:
        query = query.where(Commit.is_key_commit.is_(True))
    result = await session.execute(
        query.order_by(Commit.author_date.desc()).offset(offset).limit(limit)
    )
    return result.scalars().all()


@router.get("/repositories/{repository_id}/contributors", response_model=List[ContributorResponse])
async def list_contributors(repository_id: int, session: AsyncSession = Depends(get_session)):
    """Contributors ranked by commit count"""
    await _get_repository(session, repository_id)
    result = await session.execute(
        select(Contributor)
        .where(Contributor.repository_id == repository_id)
        .order_by(Contributor.commits_count.desc())
    )
    return result.scalars().all()


@router.get("/repositories/{repository_id}/health")
async def get_health_score(repository_id: int, session: AsyncSession = Depends(get_session)):
    """Health score derived from the persisted history"""
    await _get_repository(session, repository_id)
    score = await HealthScoringEngine.calculate(session, repository_id)
    return score.to_dict()


# ============== Analysis Endpoints ==============

@router.post("/repositories/{repository_id}/analyze", status_code=202)
async def analyze_repository(
    repository_id: int,
    session: AsyncSession = Depends(get_session),
    orchestrator: AnalysisOrchestrator = Depends(get_orchestrator),
    manager: AnalysisTaskManager = Depends(get_task_manager)
):
    """Trigger analysis for a repository"""
    repo = await _get_repository(session, repository_id)

    if manager.is_running(repo.id):
        raise HTTPException(status_code=409, detail="Analysis already in progress")

    run = await create_analysis_run(session, repo.id)
    try:
        manager.start(repo.id, run.id, orchestrator.run(run.id))
    except AnalysisAlreadyRunningError as e:
        run.status = AnalysisStatus.FAILED
        run.error_message = str(e)
        await session.commit()
        raise HTTPException(status_code=409, detail="Analysis already in progress")

    return {"message": f"Analysis started for {repo.full_name}", "analysis_id": run.id}


@router.get("/analyses/{analysis_id}", response_model=AnalysisResponse)
async def get_analysis(analysis_id: int, session: AsyncSession = Depends(get_session)):
    """Analysis status and progress"""
    run = await session.get(AnalysisRun, analysis_id)
    if not run:
        raise HTTPException(status_code=404, detail="Analysis not found")
    return _analysis_response(run)


@router.post("/analyses/{analysis_id}/cancel", response_model=AnalysisResponse)
async def cancel_analysis(
    analysis_id: int,
    session: AsyncSession = Depends(get_session),
    manager: AnalysisTaskManager = Depends(get_task_manager)
):
    """Cancel an in-flight analysis"""
    run = await session.get(AnalysisRun, analysis_id)
    if not run:
        raise HTTPException(status_code=404, detail="Analysis not found")
    if manager.running_analysis(run.repository_id) != analysis_id:
        raise HTTPException(status_code=409, detail="Analysis is not running")

    await manager.cancel(run.repository_id)
    await session.refresh(run)
    return _analysis_response(run)


@router.get("/repositories/{repository_id}/analyses", response_model=List[AnalysisResponse])
async def list_analyses(repository_id: int, limit: int = 20, session: AsyncSession = Depends(get_session)):
    """Recent analysis runs for a repository"""
    await _get_repository(session, repository_id)
    result = await session.execute(
        select(AnalysisRun)
        .where(AnalysisRun.repository_id == repository_id)
        .order_by(AnalysisRun.created_at.desc(), AnalysisRun.id.desc())
        .limit(limit)
    )
    return [_analysis_response(r) for r in result.scalars().all()]


@router.get("/stats")
async def dashboard_stats(session: AsyncSession = Depends(get_session)):
    """Dashboard counters"""
    repositories = (await session.execute(select(func.count(Repository.id)))).scalar() or 0
    completed = (await session.execute(
        select(func.count(AnalysisRun.id)).where(AnalysisRun.status == AnalysisStatus.COMPLETED)
    )).scalar() or 0
    processing = (await session.execute(
        select(func.count(AnalysisRun.id)).where(AnalysisRun.status == AnalysisStatus.PROCESSING)
    )).scalar() or 0
    commits = (await session.execute(select(func.count(Commit.id)))).scalar() or 0
    key_commits = (await session.execute(
        select(func.count(Commit.id)).where(Commit.is_key_commit.is_(True))
    )).scalar() or 0

    return {
        "repositories": repositories,
        "analyses_completed": completed,
        "analyses_processing": processing,
        "commits": commits,
        "key_commits": key_commits,
    }


# ============== Model Endpoints ==============

@router.get("/models")
async def list_available_models(free_only: bool = False, recommended: bool = False):
    """Generation model catalog"""
    if free_only and recommended:
        models = list_recommended_free()
    elif free_only:
        models = list_free()
    else:
        models = list_models()
    return [m.to_dict() for m in models]


@router.get("/admin/ai-models")
async def get_model_config(session: AsyncSession = Depends(get_session)):
    """Active model configuration"""
    model_config = await ModelConfigStore(session).get_active()
    return model_config.to_dict()


@router.post("/admin/ai-models")
async def set_model_config(request: ModelConfigRequest, session: AsyncSession = Depends(get_session)):
    """Save a new model configuration version"""
    model_config = ModelConfiguration(
        primary=request.primary,
        fallback=request.fallback,
        enabled=request.enabled,
    )
    try:
        saved = await ModelConfigStore(session).set_active(
            model_config,
            updated_by=request.updated_by,
            expected_version=request.expected_version,
        )
    except ModelConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ModelConfigConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return {"success": True, "config": saved.to_dict()}


@router.post("/admin/ai-models/test")
async def test_model(
    request: ModelTestRequest,
    session: AsyncSession = Depends(get_session),
    generator_factory: GeneratorFactory = Depends(get_generator_factory)
):
    """Probe a model with a minimal generation request"""
    if get_model_by_id(request.model_id) is None:
        raise HTTPException(status_code=400, detail=f"Invalid model ID: {request.model_id}")

    generator = generator_factory(await ModelConfigStore(session).get_active())
    if generator is None:
        raise HTTPException(status_code=503, detail="OpenRouter API key is not configured")

    available = await generator.test_model_availability(request.model_id)
    return {"model_id": request.model_id, "available": available}


# ============== MCP Endpoints ==============

@router.get("/mcp/biography/{repository_id}")
async def mcp_biography(repository_id: int, session: AsyncSession = Depends(get_session)):
    """Repository biography for external agents"""
    try:
        return await RepositoryIntel(session).get_biography(repository_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/mcp/intel")
async def mcp_intel(
    repository_id: Optional[int] = None,
    commit_sha: Optional[str] = None,
    session: AsyncSession = Depends(get_session)
):
    """Commit details with related commits"""
    if not repository_id or not commit_sha:
        raise HTTPException(status_code=400, detail="Commit SHA and Repository ID are required")
    try:
        return await RepositoryIntel(session).get_intel(repository_id, commit_sha)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/mcp/diagnose-bug-origin")
async def mcp_diagnose_bug_origin(request: BugOriginRequest, session: AsyncSession = Depends(get_session)):
    """Likely origin commit for a described bug"""
    if not request.bug_description.strip():
        raise HTTPException(status_code=400, detail="Bug description is required")
    await _get_repository(session, request.repository_id)

    since = request.since
    if since is not None and since.tzinfo is not None:
        since = since.astimezone(timezone.utc).replace(tzinfo=None)
    return await RepositoryIntel(session).diagnose_bug_origin(
        request.repository_id, request.bug_description, since=since
    )


@router.get("/mcp/architectural-shifts/{repository_id}")
async def mcp_architectural_shifts(repository_id: int, session: AsyncSession = Depends(get_session)):
    """Key commits that changed the shape of the codebase"""
    await _get_repository(session, repository_id)
    return await RepositoryIntel(session).explain_architectural_shift(repository_id)


@router.get("/mcp/review-guidelines/{repository_id}")
async def mcp_review_guidelines(repository_id: int, session: AsyncSession = Depends(get_session)):
    """Review guidelines inferred from recent commits"""
    try:
        return await RepositoryIntel(session).get_review_guidelines(repository_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
