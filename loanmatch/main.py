"""FastAPI application entry point — wires everything together.

Usage:
    python -m loanmatch.main

Exposes batch matching runs, the match store read side, and catalog ingestion.
"""

from __future__ import annotations

import logging
import sys
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import Depends, FastAPI, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from loanmatch.assessment.assessor import QualitativeAssessor
from loanmatch.audit import audit_on_event, log_on_event
from loanmatch.config import settings
from loanmatch.db.engine import async_session_factory, db_lifespan, get_session, redis_client
from loanmatch.errors import BatchLockedError, DuplicateProductError, RepositoryError
from loanmatch.events import start_event_system, stop_event_system, subscribe, unsubscribe
from loanmatch.llm.client import GeminiClient
from loanmatch.matching import queries
from loanmatch.matching.locks import BatchLock
from loanmatch.matching.orchestrator import PipelineOrchestrator
from loanmatch.matching.persister import MatchPersister
from loanmatch.matching.repository import CatalogRepository
from loanmatch.schemas.matching import (
    ApplicantCreate,
    BatchMatchSummary,
    BulkUpsertResult,
    PendingNotification,
    PipelineSummary,
    ProductCreate,
    ProductProfile,
)

# ── Logging setup ────────────────────────────────────────────────────

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s %(levelname)-8s %(name)s %(message)s",
    stream=sys.stdout,
)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer() if settings.is_production else structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = logging.getLogger(__name__)


class MatchRunRequest(BaseModel):
    """Optional knobs for one matching run."""

    applicant_ids: list[uuid.UUID] | None = None
    timeout: float | None = Field(default=None, gt=0, description="Run deadline in seconds")


# ── FastAPI lifespan ─────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle."""
    logger.info("Starting loanmatch (env=%s)", settings.environment)

    # 1. Database
    async with db_lifespan():
        logger.info("Database initialized")

        # 2. Event system + subscribers
        await start_event_system()
        subscribe(audit_on_event)
        subscribe(log_on_event)
        logger.info("Audit and log subscribers registered")

        # 3. Pipeline components
        gemini = GeminiClient(settings.llm)
        if not gemini.is_configured:
            logger.warning("GEMINI_API_KEY not set, Stage 3 runs in offline mode")

        repository = CatalogRepository(async_session_factory)
        app.state.repository = repository
        app.state.orchestrator = PipelineOrchestrator(
            repository=repository,
            assessor=QualitativeAssessor.from_settings(gemini, settings.llm, settings.matching),
            store=MatchPersister(async_session_factory),
            config=settings.matching,
        )

        try:
            yield
        finally:
            logger.info("Shutting down loanmatch...")
            await gemini.close()
            logger.info("Gemini client closed")

            await stop_event_system()
            unsubscribe(audit_on_event)
            unsubscribe(log_on_event)

    logger.info("loanmatch shutdown complete")


# ── FastAPI app ──────────────────────────────────────────────────────

app = FastAPI(
    title="loanmatch API",
    description="Batch eligibility matching of applicants against a loan product catalog",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {
        "status": "ok",
        "environment": settings.environment,
    }


@app.post("/batches/{batch_tag}/match", response_model=PipelineSummary)
async def run_batch(batch_tag: str, request: Request, body: MatchRunRequest | None = None) -> PipelineSummary:
    """Run the matching pipeline for one batch. Concurrent runs on a tag get 409."""
    body = body or MatchRunRequest()
    orchestrator: PipelineOrchestrator = request.app.state.orchestrator
    try:
        async with BatchLock(redis_client, batch_tag, timeout=settings.matching.batch_lock_timeout):
            return await orchestrator.run(
                batch_tag,
                applicant_ids=body.applicant_ids,
                timeout=body.timeout,
            )
    except BatchLockedError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@app.get("/batches/{batch_tag}/summary", response_model=BatchMatchSummary)
async def batch_summary(batch_tag: str, db: AsyncSession = Depends(get_session)) -> BatchMatchSummary:
    return await queries.get_batch_summary(db, batch_tag)


@app.delete("/batches/{batch_tag}/matches")
async def clear_batch_matches(batch_tag: str, db: AsyncSession = Depends(get_session)) -> dict[str, Any]:
    """Explicit bulk-clear of a batch's matches (the only path that deletes matches)."""
    deleted = await queries.clear_matches(db, batch_tag)
    return {"batch_tag": batch_tag, "deleted": deleted}


@app.get("/matches/pending", response_model=list[PendingNotification])
async def pending_notifications(
    batch_tag: str | None = None,
    limit: int | None = None,
    db: AsyncSession = Depends(get_session),
) -> list[PendingNotification]:
    return await queries.list_pending_notifications(db, batch_tag=batch_tag, limit=limit)


@app.get("/applicants/{applicant_id}/matches")
async def applicant_matches(applicant_id: uuid.UUID, db: AsyncSession = Depends(get_session)) -> list[dict[str, Any]]:
    matches = await queries.get_applicant_matches(db, applicant_id)
    return [
        {
            "match_id": str(m.id),
            "product_id": str(m.product_id),
            "match_score": str(m.match_score),
            "status": m.status,
            "match_source": m.match_source,
            "llm_confidence": m.llm_confidence,
            "notified_at": m.notified_at.isoformat() if m.notified_at else None,
        }
        for m in matches
    ]


@app.post("/applicants", response_model=BulkUpsertResult)
async def upload_applicants(applicants: list[ApplicantCreate], request: Request) -> BulkUpsertResult:
    """Insert or overwrite applicants by external id."""
    repository: CatalogRepository = request.app.state.repository
    try:
        return await repository.upsert_applicants(applicants)
    except RepositoryError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.post("/products", response_model=ProductProfile, status_code=201)
async def create_product(product: ProductCreate, request: Request) -> ProductProfile:
    repository: CatalogRepository = request.app.state.repository
    try:
        return await repository.create_product(product)
    except DuplicateProductError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except RepositoryError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@app.post("/products/{product_id}/deactivate")
async def deactivate_product(product_id: uuid.UUID, request: Request) -> dict[str, Any]:
    """Exclude a product from future matching runs."""
    repository: CatalogRepository = request.app.state.repository
    try:
        found = await repository.deactivate_product(product_id)
    except RepositoryError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    if not found:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"product_id": str(product_id), "is_active": False}


# ── Entry point ──────────────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run(
        "loanmatch.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
