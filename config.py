"""GitLegend Configuration"""

import os
from pathlib import Path

# Base paths
BASE_DIR = Path(__file__).parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))

# Ensure directories exist
DATA_DIR.mkdir(parents=True, exist_ok=True)

# Database
DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR}/gitlegend.db")

# GitHub settings
GITHUB_API_URL = os.getenv("GITHUB_API_URL", "https://api.github.com")
GITHUB_API_TOKEN = os.getenv("GITHUB_API_TOKEN", "")
GITHUB_TIMEOUT = float(os.getenv("GITHUB_TIMEOUT", "30"))
GITHUB_DETAIL_CONCURRENCY = int(os.getenv("GITHUB_DETAIL_CONCURRENCY", "5"))
MAX_COMMITS_PER_REPO = int(os.getenv("MAX_COMMITS_PER_REPO", "500"))
COMMITS_PER_PAGE = int(os.getenv("COMMITS_PER_PAGE", "100"))

# OpenRouter settings
OPENROUTER_API_KEY = os.getenv("OPENROUTER_API_KEY", "")
OPENROUTER_BASE_URL = os.getenv("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")
SITE_URL = os.getenv("SITE_URL", "http://localhost:8000")
GENERATION_TIMEOUT = float(os.getenv("GENERATION_TIMEOUT", "30"))
GENERATION_MAX_RETRIES = int(os.getenv("GENERATION_MAX_RETRIES", "3"))
GENERATION_RETRY_DELAY = float(os.getenv("GENERATION_RETRY_DELAY", "1.0"))  # seconds, multiplied by attempt
SUMMARY_BATCH_SIZE = int(os.getenv("SUMMARY_BATCH_SIZE", "3"))
SUMMARY_BATCH_DELAY = float(os.getenv("SUMMARY_BATCH_DELAY", "2.0"))

# Analysis settings
KEY_COMMIT_THRESHOLD = float(os.getenv("KEY_COMMIT_THRESHOLD", "0.7"))

# Web server
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))
DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# Health score weights
HEALTH_WEIGHTS = {
    "activity": 0.3,
    "contributor_diversity": 0.2,
    "code_quality": 0.3,
    "maintenance": 0.2,
}
