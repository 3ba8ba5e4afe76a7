"""
Deliverability Analyzer Backend API
FastAPI application that analyzes inbound probe emails and serves the reports.
"""

import logging
import os
from typing import List

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from app.routers import inbound, results
from app.services.result_store import (
    ResultStore,
    StoreUnavailableError,
    get_result_store,
)

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Deliverability Analyzer API",
    description="Email deliverability reports: SPF/DKIM/DMARC status and spam-risk scoring",
    version="0.1.0",
)


def get_cors_origins() -> List[str]:
    """
    Build the list of allowed CORS origins.

    Always includes:
    - http://localhost:3000  (Next.js dev server)
    - http://localhost:3001

    Additional origins are read from the CORS_ORIGINS environment variable
    as a comma-separated list, e.g.:
        CORS_ORIGINS=https://deliverability-analyzer.vercel.app

    Duplicates are removed while preserving order.
    """
    always_included = [
        "http://localhost:3000",
        "http://localhost:3001",
    ]

    extra_origins: List[str] = []
    cors_env = os.getenv("CORS_ORIGINS", "").strip()
    if cors_env:
        extra_origins = [o.strip() for o in cors_env.split(",") if o.strip()]

    # Deduplicate while preserving order
    seen: set = set()
    origins: List[str] = []
    for origin in always_included + extra_origins:
        if origin not in seen:
            seen.add(origin)
            origins.append(origin)

    return origins


# CORS configuration; origins are resolved at startup from the environment
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)

# Include routers
app.include_router(inbound.router, prefix="/api", tags=["inbound"])
app.include_router(results.router, prefix="/api/results", tags=["results"])


@app.get("/")
async def root():
    return {"message": "Deliverability Analyzer API", "version": "0.1.0"}


@app.get("/health")
async def health():
    return {"status": "ok", "service": "email-analysis"}


@app.get("/health/store")
def health_store(store: ResultStore = Depends(get_result_store)):
    """
    Test the result store connection.

    Backends that support it are pinged with a lightweight query; the
    in-memory store is always reachable. Returns 503 on failure.
    """
    ping = getattr(store, "ping", None)
    if ping is None:
        return {"status": "ok", "store": type(store).__name__}

    try:
        ping()
    except StoreUnavailableError as exc:
        logger.error(f"Result store health check failed: {exc}")
        raise HTTPException(
            status_code=503,
            detail=f"Result store unreachable: {str(exc)}",
        )
    return {"status": "ok", "store": type(store).__name__}
