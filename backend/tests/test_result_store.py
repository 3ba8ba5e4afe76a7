"""
Result store tests: in-memory TTL semantics and the Supabase backend.

Supabase is mocked throughout; no network calls.
"""

import json
import os
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest

from app.models.analysis import AnalysisResult, AuthVerdict, MechanismVerdict
from app.services.result_store import (
    DEFAULT_TTL_SECONDS,
    InMemoryResultStore,
    StoreUnavailableError,
    SupabaseResultStore,
    default_ttl_seconds,
    get_result_store,
    result_key,
)


def _make_result(test_id: str = "abc123", score: float = 8.0, subject: str = "Hello") -> AnalysisResult:
    verdict = MechanismVerdict(status="pass", detail="ok")
    return AnalysisResult(
        test_id=test_id,
        sender="alice@example.com",
        recipient=f"test-{test_id}@deliverabilityanalyzer.xyz",
        subject=subject,
        auth=AuthVerdict(spf=verdict, dkim=verdict, dmarc=verdict),
        score=score,
        risk_score=10 - score,
        assessment="Good – likely to reach inbox",
        timestamp="2026-10-17T10:00:00+00:00",
    )


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Keys and config
# ---------------------------------------------------------------------------

class TestKeysAndConfig:

    def test_key_format(self):
        assert result_key("abc123") == "test:abc123"

    def test_default_ttl_is_one_day(self):
        with patch.dict(os.environ, {}, clear=False) as env:
            env.pop("RESULT_TTL_SECONDS", None)
            assert default_ttl_seconds() == DEFAULT_TTL_SECONDS == 86400

    def test_ttl_from_env(self):
        with patch.dict(os.environ, {"RESULT_TTL_SECONDS": "60"}):
            assert default_ttl_seconds() == 60


# ---------------------------------------------------------------------------
# In-memory backend
# ---------------------------------------------------------------------------

class TestInMemoryResultStore:

    def test_put_then_get(self):
        store = InMemoryResultStore()
        store.put("abc123", _make_result(score=8.0))
        fetched = store.get("abc123")
        assert fetched is not None
        assert fetched.score == 8.0
        assert fetched.test_id == "abc123"

    def test_get_unknown_id_returns_none(self):
        assert InMemoryResultStore().get("never-written") is None

    def test_roundtrip_preserves_result(self):
        store = InMemoryResultStore()
        result = _make_result()
        store.put("abc123", result)
        assert store.get("abc123") == result

    def test_overwrite_last_write_wins(self):
        store = InMemoryResultStore()
        store.put("abc123", _make_result(subject="first"))
        store.put("abc123", _make_result(subject="second"))
        assert store.get("abc123").subject == "second"
        assert len(store) == 1

    def test_expires_after_ttl(self):
        clock = FakeClock()
        store = InMemoryResultStore(clock=clock)
        store.put("abc123", _make_result(), ttl_seconds=86400)

        clock.advance(86399)
        assert store.get("abc123") is not None

        clock.advance(1)
        assert store.get("abc123") is None
        assert len(store) == 0

    def test_overwrite_resets_ttl(self):
        clock = FakeClock()
        store = InMemoryResultStore(clock=clock)
        store.put("abc123", _make_result(), ttl_seconds=100)
        clock.advance(90)
        store.put("abc123", _make_result(), ttl_seconds=100)
        clock.advance(50)
        assert store.get("abc123") is not None

    def test_ids_are_independent(self):
        store = InMemoryResultStore()
        store.put("one", _make_result(test_id="one"))
        store.put("two", _make_result(test_id="two"))
        assert store.get("one").test_id == "one"
        assert store.get("two").test_id == "two"

    def test_headers_from_alias_roundtrips(self):
        store = InMemoryResultStore()
        store.put("abc123", _make_result())
        assert store.get("abc123").headers.from_ == "Unknown"


# ---------------------------------------------------------------------------
# Supabase backend
# ---------------------------------------------------------------------------

_FIXED_NOW = datetime(2026, 10, 17, 12, 0, 0, tzinfo=timezone.utc)


def _mock_client(data=None, error: Exception | None = None) -> MagicMock:
    """
    Build a Supabase client mock whose query chains all end in the same
    execute() mock.
    """
    client = MagicMock()
    table = client.table.return_value
    execute = MagicMock()
    if error is not None:
        execute.side_effect = error
    else:
        execute.return_value = MagicMock(data=data if data is not None else [])

    table.upsert.return_value.execute = execute
    select = table.select.return_value
    select.eq.return_value.gt.return_value.limit.return_value.execute = execute
    select.limit.return_value.execute = execute
    table.delete.return_value.lt.return_value.execute = execute
    return client


class TestSupabaseResultStore:

    def _store(self, client) -> SupabaseResultStore:
        return SupabaseResultStore(client, table="deliverability_results", now=lambda: _FIXED_NOW)

    def test_put_upserts_row_with_expiry(self):
        client = _mock_client()
        self._store(client).put("abc123", _make_result(), ttl_seconds=86400)

        client.table.assert_called_with("deliverability_results")
        args, kwargs = client.table.return_value.upsert.call_args
        row = args[0]
        assert row["key"] == "test:abc123"
        assert row["value"]["test_id"] == "abc123"
        assert row["value"]["headers"]["from"] == "Unknown"
        assert row["expires_at"] == (_FIXED_NOW + timedelta(days=1)).isoformat()
        assert kwargs == {"on_conflict": "key"}

    def test_get_filters_expired_rows(self):
        stored = json.loads(_make_result().to_json())
        client = _mock_client(data=[{"value": stored}])
        result = self._store(client).get("abc123")

        assert result.test_id == "abc123"
        select = client.table.return_value.select
        select.assert_called_once_with("value")
        select.return_value.eq.assert_called_once_with("key", "test:abc123")
        select.return_value.eq.return_value.gt.assert_called_once_with(
            "expires_at", _FIXED_NOW.isoformat()
        )

    def test_get_missing_returns_none(self):
        assert self._store(_mock_client(data=[])).get("abc123") is None

    def test_get_accepts_json_text_value(self):
        client = _mock_client(data=[{"value": _make_result().to_json()}])
        assert self._store(client).get("abc123").score == 8.0

    def test_unreadable_value_treated_as_missing(self):
        client = _mock_client(data=[{"value": {"unexpected": True}}])
        assert self._store(client).get("abc123") is None

    def test_read_failure_raises_store_unavailable(self):
        client = _mock_client(error=ConnectionError("boom"))
        with pytest.raises(StoreUnavailableError):
            self._store(client).get("abc123")

    def test_write_failure_raises_store_unavailable(self):
        client = _mock_client(error=ConnectionError("boom"))
        with pytest.raises(StoreUnavailableError):
            self._store(client).put("abc123", _make_result())

    def test_purge_expired(self):
        client = _mock_client(data=[{"key": "test:old1"}, {"key": "test:old2"}])
        removed = self._store(client).purge_expired()
        assert removed == 2
        client.table.return_value.delete.return_value.lt.assert_called_once_with(
            "expires_at", _FIXED_NOW.isoformat()
        )

    def test_ping_failure_raises_store_unavailable(self):
        client = _mock_client(error=TimeoutError("slow"))
        with pytest.raises(StoreUnavailableError):
            self._store(client).ping()

    def test_table_name_from_env(self):
        with patch.dict(os.environ, {"RESULTS_TABLE": "custom_results"}):
            store = SupabaseResultStore(_mock_client())
        assert store._table == "custom_results"


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

class TestGetResultStore:

    def setup_method(self):
        get_result_store.cache_clear()

    def teardown_method(self):
        get_result_store.cache_clear()

    def test_memory_backend(self):
        with patch.dict(os.environ, {"RESULT_STORE_BACKEND": "memory"}):
            assert isinstance(get_result_store(), InMemoryResultStore)

    def test_supabase_backend_uses_admin_client(self):
        with patch.dict(os.environ, {"RESULT_STORE_BACKEND": "supabase"}), \
             patch("app.db.get_supabase_admin") as mock_admin:
            store = get_result_store()
        assert isinstance(store, SupabaseResultStore)
        mock_admin.assert_called_once()

    def test_unknown_backend_raises(self):
        with patch.dict(os.environ, {"RESULT_STORE_BACKEND": "redis"}):
            with pytest.raises(ValueError, match="Unknown result store backend"):
                get_result_store()
