"""Database models and connection handling"""

from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Float, DateTime, Text, ForeignKey,
    Boolean, Index, UniqueConstraint
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker as async_sessionmaker

import config

Base = declarative_base()


class AnalysisStatus:
    """Analysis run lifecycle states"""
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    TERMINAL = (COMPLETED, FAILED)


class Repository(Base):
    """Hosted repository imported for analysis"""
    __tablename__ = "repositories"

    id = Column(Integer, primary_key=True)
    github_id = Column(String(64), nullable=True)
    name = Column(String(255), nullable=False)
    full_name = Column(String(512), unique=True, nullable=False)
    description = Column(Text, nullable=True)
    language = Column(String(128), nullable=True)
    stars = Column(Integer, default=0)
    forks = Column(Integer, default=0)
    last_analyzed = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    commits = relationship("Commit", back_populates="repository", cascade="all, delete-orphan")
    contributors = relationship("Contributor", back_populates="repository", cascade="all, delete-orphan")
    analyses = relationship("AnalysisRun", back_populates="repository", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_repo_full_name", "full_name"),
    )


class Commit(Base):
    """Scored commit record"""
    __tablename__ = "commits"

    id = Column(Integer, primary_key=True)
    sha = Column(String(40), nullable=False)
    repository_id = Column(Integer, ForeignKey("repositories.id"), nullable=False)
    analysis_id = Column(Integer, ForeignKey("analysis_runs.id"), nullable=True)
    message = Column(Text, nullable=False, default="")
    author_name = Column(String(255), nullable=True)
    author_email = Column(String(255), nullable=True)
    author_login = Column(String(255), nullable=True)
    author_github_id = Column(String(64), nullable=True)
    author_avatar = Column(String(1024), nullable=True)
    author_date = Column(DateTime, nullable=True)
    committer_name = Column(String(255), nullable=True)
    committer_email = Column(String(255), nullable=True)
    committer_date = Column(DateTime, nullable=True)
    additions = Column(Integer, default=0)
    deletions = Column(Integer, default=0)
    files_changed = Column(Integer, default=0)
    significance = Column(Float, default=0.0)
    is_key_commit = Column(Boolean, default=False)
    summary = Column(Text, nullable=True)
    model_used = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    repository = relationship("Repository", back_populates="commits")

    __table_args__ = (
        UniqueConstraint("repository_id", "sha", name="uq_commit_repo_sha"),
        Index("idx_commit_repo", "repository_id"),
        Index("idx_commit_date", "author_date"),
        Index("idx_commit_key", "repository_id", "is_key_commit"),
    )


class Contributor(Base):
    """Per-repository contributor rollup"""
    __tablename__ = "contributors"

    id = Column(Integer, primary_key=True)
    repository_id = Column(Integer, ForeignKey("repositories.id"), nullable=False)
    github_id = Column(String(64), nullable=False)
    login = Column(String(255), nullable=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    avatar = Column(String(1024), nullable=True)
    commits_count = Column(Integer, default=0)
    additions = Column(Integer, default=0)
    deletions = Column(Integer, default=0)
    is_first_contributor = Column(Boolean, default=False)
    is_top_contributor = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    repository = relationship("Repository", back_populates="contributors")

    __table_args__ = (
        UniqueConstraint("repository_id", "github_id", name="uq_contributor_repo_github_id"),
        Index("idx_contributor_repo", "repository_id"),
        Index("idx_contributor_commits", "repository_id", "commits_count"),
    )


class AnalysisRun(Base):
    """Track analysis runs"""
    __tablename__ = "analysis_runs"

    id = Column(Integer, primary_key=True)
    repository_id = Column(Integer, ForeignKey("repositories.id"), nullable=False)
    status = Column(String(50), default=AnalysisStatus.PENDING)
    progress = Column(Integer, default=0)
    error_message = Column(Text, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    commits_analyzed = Column(Integer, default=0)
    summaries_generated = Column(Integer, default=0)
    model_usage_json = Column(Text, nullable=False, default="{}")
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    repository = relationship("Repository", back_populates="analyses")

    __table_args__ = (
        Index("idx_analysis_repo_status", "repository_id", "status"),
    )


class ModelConfigVersion(Base):
    """Append-only history of generation model configurations"""
    __tablename__ = "model_config_versions"

    id = Column(Integer, primary_key=True)
    version = Column(Integer, unique=True, nullable=False)
    primary_model = Column(String(255), nullable=False)
    fallback_model = Column(String(255), nullable=False)
    enabled_models_json = Column(Text, nullable=False)
    updated_by = Column(String(255), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)


# Database engine and session
engine = None
SessionLocal = None


async def init_db(db_url: str = None):
    """Initialize the database"""
    global engine, SessionLocal

    # Convert sqlite:// to sqlite+aiosqlite:// for async
    db_url = db_url or config.DATABASE_URL
    if db_url.startswith("sqlite://"):
        db_url = db_url.replace("sqlite://", "sqlite+aiosqlite://")

    engine = create_async_engine(db_url, echo=config.DEBUG)
    SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Dispose of the engine and its pooled connections"""
    global engine, SessionLocal

    if engine is not None:
        await engine.dispose()
    engine = None
    SessionLocal = None


async def get_session() -> AsyncSession:
    """Get database session"""
    async with SessionLocal() as session:
        yield session
