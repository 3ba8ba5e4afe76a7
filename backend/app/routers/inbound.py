"""
Inbound email router.

Receives probe emails relayed by the mail provider and hands out new probe
addresses.

The webhook endpoint is provider-agnostic: it normalises the raw payload via
the inbound_email_adapter service, so swapping the email-worker forwarder for
Postmark (or raw MIME delivery) only requires changing EMAIL_PROVIDER.

Environment variables
---------------------
EMAIL_PROVIDER            Which normaliser to use (default: "worker").
                          Supported values: "worker", "postmark", "mime".
INBOUND_WEBHOOK_SECRET    Shared secret checked in the X-Webhook-Secret header.
INBOUND_DOMAIN            Domain of generated probe addresses
                          (default: "deliverabilityanalyzer.xyz").

Endpoints:
  POST /inbound   - provider webhook (auth: X-Webhook-Secret)
  POST /tests     - generate a new probe address
"""

import logging
import os
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException

from app.services.analysis_pipeline import process_inbound_message
from app.services.inbound_email_adapter import (
    UnsupportedProviderError,
    normalize_webhook,
)
from app.services.result_store import (
    ResultStore,
    StoreUnavailableError,
    default_ttl_seconds,
    get_result_store,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_DEFAULT_INBOUND_DOMAIN = "deliverabilityanalyzer.xyz"
_TEST_ID_LENGTH = 12


def _get_inbound_domain() -> str:
    return os.getenv("INBOUND_DOMAIN", _DEFAULT_INBOUND_DOMAIN)


# ---------------------------------------------------------------------------
# Webhook authentication dependency
# ---------------------------------------------------------------------------

def _get_webhook_secret() -> str:
    return os.getenv("INBOUND_WEBHOOK_SECRET") or ""


def _verify_webhook_secret(
    x_webhook_secret: Optional[str] = Header(None),
) -> None:
    """
    Verify that the inbound webhook request carries the correct shared secret.

    Raises 401 if the secret is missing, unconfigured, or does not match.
    """
    expected = _get_webhook_secret()
    if not expected:
        logger.warning(
            "No webhook secret configured (INBOUND_WEBHOOK_SECRET); "
            "all inbound webhook requests will be rejected"
        )
        raise HTTPException(status_code=401, detail="Webhook secret not configured")

    if not x_webhook_secret or x_webhook_secret != expected:
        raise HTTPException(status_code=401, detail="Invalid webhook secret")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _generate_test_id() -> str:
    """Generate a new alphanumeric test id."""
    return uuid.uuid4().hex[:_TEST_ID_LENGTH]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/inbound")
def receive_inbound_email(
    payload: dict,
    _: None = Depends(_verify_webhook_secret),
    store: ResultStore = Depends(get_result_store),
) -> dict:
    """
    Provider-agnostic inbound email webhook receiver.

    Returns 200 for messages that are dropped (bad payload, no test id) so the
    provider does not retry them. Returns 503 when the result could not be
    stored, so the provider retries later.
    """
    provider = os.getenv("EMAIL_PROVIDER", "worker")
    try:
        message = normalize_webhook(payload, provider=provider)
    except UnsupportedProviderError as exc:
        logger.error(f"Webhook normalization failed: {exc}")
        return {"received": True, "processed": False, "reason": "unsupported_provider"}
    except ValueError as exc:
        logger.warning(f"Could not read inbound payload: {exc}")
        return {"received": True, "processed": False, "reason": "invalid_payload"}

    try:
        return process_inbound_message(message, store)
    except StoreUnavailableError as exc:
        logger.error(f"Result store unavailable, message not processed: {exc}")
        raise HTTPException(status_code=503, detail="Result store unavailable")


@router.post("/tests")
async def create_test_address() -> dict:
    """
    Return a fresh probe address.

    The client polls GET /api/results/{test_id} after sending an email to
    ``address``; results are kept for ``expires_in_seconds``.
    """
    test_id = _generate_test_id()
    return {
        "test_id": test_id,
        "address": f"test-{test_id}@{_get_inbound_domain()}",
        "expires_in_seconds": default_ttl_seconds(),
    }
