"""
Read-only access to stored analysis results for polling clients.

A test id is in one of three states: pending (nothing stored yet), analyzed
(result present) or expired (TTL elapsed). Pending and expired look the same
from here: both return None. A store failure is not "not found"; it
propagates as StoreUnavailableError so callers can answer with a transient
error instead.
"""

import logging
from typing import Optional

from app.models.analysis import AnalysisResult
from app.services.result_store import ResultStore

logger = logging.getLogger(__name__)


class ResultsGateway:
    def __init__(self, store: ResultStore):
        self._store = store

    def get(self, test_id: str) -> Optional[AnalysisResult]:
        result = self._store.get(test_id)
        if result is None:
            logger.debug(f"No result yet for test {test_id}")
        return result
