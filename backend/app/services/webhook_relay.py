"""
Optional side notification of finished analyses.

When RESULT_WEBHOOK_URL is set, each stored AnalysisResult is POSTed there as
JSON. Delivery is best-effort: failures are logged and swallowed, and never
affect the stored result.

WEBHOOK_TIMEOUT_SECONDS bounds the request (default: 5).
"""

import logging
import os
from typing import Optional

import httpx

from app.models.analysis import AnalysisResult

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_SECONDS = 5.0


def get_webhook_url() -> Optional[str]:
    return os.getenv("RESULT_WEBHOOK_URL", "").strip() or None


def notify_webhook(
    url: str,
    result: AnalysisResult,
    timeout: Optional[float] = None,
) -> bool:
    """
    POST the result to url.

    Returns True when the receiver answered 2xx, False otherwise.
    """
    if timeout is None:
        timeout = float(os.getenv("WEBHOOK_TIMEOUT_SECONDS", _DEFAULT_TIMEOUT_SECONDS))

    try:
        response = httpx.post(
            url,
            content=result.to_json(),
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.warning(f"Webhook notification for test {result.test_id} failed: {e}")
        return False

    logger.info(f"Webhook notified for test {result.test_id} ({response.status_code})")
    return True
