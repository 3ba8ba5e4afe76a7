"""
Results router: polling endpoint for finished analyses.

Endpoints:
  GET /{test_id}   - 200 with the AnalysisResult, 404 while pending or after
                     expiry, 503 when the store cannot be reached
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from app.models.analysis import AnalysisResult
from app.services.result_store import (
    ResultStore,
    StoreUnavailableError,
    get_result_store,
)
from app.services.results_gateway import ResultsGateway

logger = logging.getLogger(__name__)

router = APIRouter()


def get_results_gateway(store: ResultStore = Depends(get_result_store)) -> ResultsGateway:
    return ResultsGateway(store)


@router.get("/{test_id}", response_model=AnalysisResult)
def get_results(
    test_id: str,
    gateway: ResultsGateway = Depends(get_results_gateway),
) -> AnalysisResult:
    """Return the stored analysis for test_id verbatim."""
    try:
        result = gateway.get(test_id)
    except StoreUnavailableError as exc:
        logger.error(f"Could not read results for test {test_id}: {exc}")
        raise HTTPException(status_code=503, detail="Result store unavailable")

    if result is None:
        raise HTTPException(status_code=404, detail="Test results not found")
    return result
