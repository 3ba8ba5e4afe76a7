"""
Header hygiene checks: presence and consistency of the standard mail headers.
"""

import re
from dataclasses import dataclass, field
from typing import Mapping, Optional

from app.models.analysis import CheckOutcome, ImportantHeaders


@dataclass
class HeaderCheckOutcome(CheckOutcome):
    """CheckOutcome plus the display projection of the important headers."""

    important: ImportantHeaders = field(default_factory=ImportantHeaders)


def extract_domain(address: str) -> Optional[str]:
    """
    Return the lower-cased domain of an address.

    Takes everything after the first "@" up to whitespace or ">", so both
    "a@example.com" and "Alice <a@Example.com>" yield "example.com".
    """
    if not address:
        return None
    m = re.search(r"@([^\s>]+)", address)
    return m.group(1).lower() if m else None


def important_headers(headers: Mapping[str, str]) -> ImportantHeaders:
    return ImportantHeaders(
        from_=headers.get("from") or "Unknown",
        return_path=headers.get("return-path") or "Not set",
        message_id=headers.get("message-id") or "Not set",
        date=headers.get("date") or "Not set",
    )


def check_headers(headers: Mapping[str, str]) -> HeaderCheckOutcome:
    """
    Check a lower-cased header mapping.

    Findings:
      missing Return-Path                     +1
      missing Message-ID                      +1
      From / Return-Path domain mismatch      +0.5 (only when both present)
      missing Date                            +0.5
    """
    outcome = HeaderCheckOutcome(important=important_headers(headers))

    from_header = headers.get("from", "")
    return_path = headers.get("return-path", "")

    if not return_path:
        outcome.add(
            1.0,
            "Missing Return-Path header",
            "Ensure Return-Path header is set",
            "header",
        )

    if not headers.get("message-id"):
        outcome.add(
            1.0,
            "Missing Message-ID header",
            "Ensure Message-ID header is present",
            "header",
        )

    if from_header and return_path:
        from_domain = extract_domain(from_header)
        return_path_domain = extract_domain(return_path)
        if from_domain and return_path_domain and from_domain != return_path_domain:
            outcome.add(
                0.5,
                f"From domain ({from_domain}) differs from Return-Path domain ({return_path_domain})",
                "Align From and Return-Path domains when possible",
                "header",
            )

    if not headers.get("date"):
        outcome.add(
            0.5,
            "Missing Date header",
            "Include Date header in email",
            "header",
        )

    return outcome
