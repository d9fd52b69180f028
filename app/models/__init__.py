"""Database models for GitLegend"""

from app.models.database import (
    Repository,
    Commit,
    Contributor,
    AnalysisRun,
    AnalysisStatus,
    ModelConfigVersion,
    get_session,
    init_db,
    close_db,
)

__all__ = [
    "Repository",
    "Commit",
    "Contributor",
    "AnalysisRun",
    "AnalysisStatus",
    "ModelConfigVersion",
    "get_session",
    "init_db",
    "close_db",
]
