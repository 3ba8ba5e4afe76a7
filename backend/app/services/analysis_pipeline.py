"""
Inbound message processing.

Entry point shared by every provider path after normalization:

  1. Extract the test id from the recipient address.
  2. Score the message with the configured strategy.
  3. Store the result under test:<id> (24h TTL).
  4. Optionally relay the result to RESULT_WEBHOOK_URL.

The store is passed in rather than looked up globally, so callers (and tests)
decide which backend is used. A result is stored whole or not at all.
"""

import logging
from typing import Optional

from app.models.inbound_email import InboundMessage
from app.services.result_store import ResultStore
from app.services.scorer import Scorer, ScorerError, get_scorer
from app.services.webhook_relay import get_webhook_url, notify_webhook

logger = logging.getLogger(__name__)


def process_inbound_message(
    message: InboundMessage,
    store: ResultStore,
    scorer: Optional[Scorer] = None,
    webhook_url: Optional[str] = None,
) -> dict:
    """
    Analyze one inbound message and persist its result.

    Returns a dict suitable for the HTTP response. Messages without a test id,
    messages the scorer cannot handle and an unknown DELIVERABILITY_SCORER
    are dropped (nothing stored).

    Raises:
        StoreUnavailableError: the result could not be persisted.
    """
    test_id = message.test_id
    if not test_id:
        logger.warning(
            f"Could not extract test id from recipient address: {message.recipient!r}"
        )
        return {"received": True, "processed": False, "reason": "invalid_to_address"}

    if scorer is None:
        try:
            scorer = get_scorer()
        except ValueError as e:
            logger.error(f"Scorer misconfigured, test {test_id} not processed: {e}")
            return {"received": True, "processed": False, "reason": "unsupported_scorer"}

    try:
        result = scorer.score(message)
    except ScorerError as e:
        logger.error(f"Scoring failed for test {test_id}: {e}")
        return {"received": True, "processed": False, "reason": "scoring_failed"}

    store.put(test_id, result)
    logger.info(
        f"Analysis complete for test {test_id}: {result.score}/10 ({result.assessment})"
    )

    url = webhook_url if webhook_url is not None else get_webhook_url()
    if url:
        notify_webhook(url, result)

    return {
        "received": True,
        "processed": True,
        "test_id": test_id,
        "score": result.score,
        "assessment": result.assessment,
    }
