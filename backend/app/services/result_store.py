"""
Result store: analysis results keyed by test id, with expiry.

Key format:   test:<test_id>
Value:        JSON-serialized AnalysisResult
TTL:          24 hours by default (RESULT_TTL_SECONDS)

Backends
--------
supabase  (default)  Row per key in the ``deliverability_results`` table
                     (RESULTS_TABLE). Expired rows are hidden on read and
                     removed by purge_expired().
memory               Process-local dict; used in tests and local dev.

Select with RESULT_STORE_BACKEND. "Not found" (never written, or expired) is
a normal state and returns None; a backend failure raises
StoreUnavailableError.
"""

import json
import logging
import os
import threading
import time
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Callable, Optional, Protocol

from pydantic import ValidationError

from app.models.analysis import AnalysisResult

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60
_DEFAULT_TABLE = "deliverability_results"


class StoreUnavailableError(Exception):
    """The underlying store could not be read or written."""


def result_key(test_id: str) -> str:
    return f"test:{test_id}"


def default_ttl_seconds() -> int:
    return int(os.getenv("RESULT_TTL_SECONDS", DEFAULT_TTL_SECONDS))


class ResultStore(Protocol):
    def put(self, test_id: str, result: AnalysisResult, ttl_seconds: Optional[int] = None) -> None:
        ...

    def get(self, test_id: str) -> Optional[AnalysisResult]:
        ...


def _decode(key: str, value) -> Optional[AnalysisResult]:
    """Parse a stored value (JSON text or an already-decoded dict)."""
    try:
        if isinstance(value, (str, bytes)):
            return AnalysisResult.model_validate_json(value)
        return AnalysisResult.model_validate(value)
    except ValidationError as e:
        logger.error(f"Discarding unreadable stored result {key!r}: {e}")
        return None


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------

class InMemoryResultStore:
    """
    Dict-backed store with TTL semantics.

    ``clock`` returns seconds (monotonic by default) and can be replaced in
    tests to simulate expiry.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._items: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def put(self, test_id: str, result: AnalysisResult, ttl_seconds: Optional[int] = None) -> None:
        ttl = default_ttl_seconds() if ttl_seconds is None else ttl_seconds
        key = result_key(test_id)
        with self._lock:
            self._items[key] = (result.to_json(), self._clock() + ttl)

    def get(self, test_id: str) -> Optional[AnalysisResult]:
        key = result_key(test_id)
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None
            value, expires_at = item
            if self._clock() >= expires_at:
                del self._items[key]
                return None
        return _decode(key, value)

    def __len__(self) -> int:
        now = self._clock()
        with self._lock:
            return sum(1 for _, expires_at in self._items.values() if expires_at > now)


# ---------------------------------------------------------------------------
# Supabase backend
# ---------------------------------------------------------------------------

class SupabaseResultStore:
    """
    Supabase (PostgREST) backed store.

    Expected table (see supabase/migrations):
      key         text primary key
      value       jsonb
      expires_at  timestamptz
    """

    def __init__(self, client, table: Optional[str] = None, now: Optional[Callable[[], datetime]] = None):
        self._client = client
        self._table = table or os.getenv("RESULTS_TABLE", _DEFAULT_TABLE)
        self._now = now or (lambda: datetime.now(timezone.utc))

    def put(self, test_id: str, result: AnalysisResult, ttl_seconds: Optional[int] = None) -> None:
        ttl = default_ttl_seconds() if ttl_seconds is None else ttl_seconds
        key = result_key(test_id)
        row = {
            "key": key,
            "value": json.loads(result.to_json()),
            "expires_at": (self._now() + timedelta(seconds=ttl)).isoformat(),
        }
        try:
            self._client.table(self._table).upsert(row, on_conflict="key").execute()
        except Exception as e:
            logger.error(f"Failed to store result {key!r}: {e}")
            raise StoreUnavailableError(f"Could not write {key!r}: {e}") from e

    def get(self, test_id: str) -> Optional[AnalysisResult]:
        key = result_key(test_id)
        try:
            response = (
                self._client.table(self._table)
                .select("value")
                .eq("key", key)
                .gt("expires_at", self._now().isoformat())
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to read result {key!r}: {e}")
            raise StoreUnavailableError(f"Could not read {key!r}: {e}") from e

        if not response.data:
            return None
        return _decode(key, response.data[0]["value"])

    def purge_expired(self) -> int:
        """Delete expired rows. Returns the number of rows removed."""
        try:
            response = (
                self._client.table(self._table)
                .delete()
                .lt("expires_at", self._now().isoformat())
                .execute()
            )
        except Exception as e:
            raise StoreUnavailableError(f"Could not purge expired results: {e}") from e
        removed = len(response.data or [])
        logger.info(f"Purged {removed} expired results")
        return removed

    def ping(self) -> None:
        """Lightweight reachability check used by /health/store."""
        try:
            self._client.table(self._table).select("key").limit(1).execute()
        except Exception as e:
            raise StoreUnavailableError(f"Result store unreachable: {e}") from e


# ---------------------------------------------------------------------------
# Factory / FastAPI dependency
# ---------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_result_store() -> ResultStore:
    """
    Build the configured store once per process.

    Used as a FastAPI dependency; tests replace it through
    ``app.dependency_overrides``.
    """
    backend = os.getenv("RESULT_STORE_BACKEND", "supabase").lower().strip()
    if backend == "memory":
        logger.info("Using in-memory result store")
        return InMemoryResultStore()
    if backend == "supabase":
        from app.db import get_supabase_admin
        return SupabaseResultStore(get_supabase_admin())
    raise ValueError(
        f"Unknown result store backend {backend!r}. Supported backends: ['memory', 'supabase']"
    )
