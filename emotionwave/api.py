"""
EmotionWave - API.

============================================================
RESPONSIBILITY
============================================================
Exposes the current world mood over HTTP.
Response bodies follow SentimentData.to_dict().
============================================================
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from . import __version__
from .service import get_service, get_social_service, shutdown_services

logger = logging.getLogger(__name__)


# ============================================================
# Response Models
# ============================================================

class SourceResponse(BaseModel):
    name: str
    score: float
    articles: int


class ArticleResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sentiment: float
    url: str = ""
    title: str = ""
    source: str = "Unknown"
    published_at: Optional[str] = Field(default=None, alias="publishedAt")


class SentimentResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    score: float
    timestamp: int
    sources: List[SourceResponse] = []
    api_sources: List[str] = Field(default_factory=list, alias="apiSources")
    articles: Optional[List[ArticleResponse]] = None


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str = __version__
    uptime_seconds: float = 0


# ============================================================
# FastAPI Application
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    logger.info("Shutting down, closing source sessions")
    await shutdown_services()


app = FastAPI(
    title="EmotionWave API",
    description="Real-time world mood aggregated from global news and social sources",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Startup time for uptime calculation
_startup_time = datetime.utcnow()


# ============================================================
# API Endpoints
# ============================================================

@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "service": "EmotionWave API",
        "version": __version__,
        "docs": "/docs",
    }


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    uptime = (datetime.utcnow() - _startup_time).total_seconds()
    return HealthResponse(
        status="healthy",
        timestamp=datetime.utcnow().isoformat(),
        uptime_seconds=uptime,
    )


@app.get("/api/advanced-sentiment", response_model=SentimentResponse, tags=["Sentiment"])
async def advanced_sentiment():
    """World mood from every configured source. Falls back instead of failing."""
    data = await get_service().handle()
    return SentimentResponse(**data.to_dict())


@app.get("/api/reddit-sentiment", response_model=SentimentResponse, tags=["Sentiment"])
async def reddit_sentiment():
    """Social-only mood from Reddit."""
    data = await get_social_service().handle()
    return SentimentResponse(**data.to_dict())


@app.get("/api/sources/health", tags=["Sources"])
async def sources_health() -> Dict[str, Any]:
    """Per-source health, service stats and recent incidents."""
    service = get_service()
    return {
        "sources": service.get_health(),
        "stats": service.get_stats(),
        "incidents": service.get_incidents(),
        "timestamp": datetime.utcnow().isoformat(),
    }
