"""GitLegend Main Application"""

from fastapi import FastAPI
from contextlib import asynccontextmanager
import logging

from app.api.routes import router as api_router
from app.analyzer.tasks import fail_interrupted_runs, task_manager
from app.models import database
from app.models.database import init_db, close_db
import config

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if config.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    logger.info("Starting GitLegend...")
    await init_db()

    async with database.SessionLocal() as session:
        interrupted = await fail_interrupted_runs(session)
    if interrupted:
        logger.warning(f"Marked {interrupted} interrupted analyses as failed")

    logger.info(f"GitHub API: {config.GITHUB_API_URL}")
    if not config.OPENROUTER_API_KEY:
        logger.warning("OPENROUTER_API_KEY not set, commit summaries are disabled")
    yield
    logger.info("Shutting down GitLegend...")
    await task_manager.shutdown()
    await close_db()


app = FastAPI(
    title="GitLegend",
    description="Repository history analysis with AI commit summaries",
    version="0.1.0",
    lifespan=lifespan
)

# Include API routes
app.include_router(api_router, prefix="/api")


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {"status": "healthy", "version": "0.1.0"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app.main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG
    )
