"""
Authentication verdict extraction.

Reads the SPF, DKIM and DMARC verdicts the receiving mail platform wrote into
the message headers. Nothing here verifies a signature or resolves DNS: real
validation needs the connecting IP and provenance data that only the receiving
platform has, so its verdict is trusted as-is.

Sources, in priority order:
  1. Authentication-Results       - added by the receiving platform
  2. ARC-Authentication-Results   - forwarded mail, sealed by an earlier hop
  3. Received-SPF                 - SPF only
  4. DKIM-Signature               - DKIM only, evidence of signing (no verdict)

When a trusted authserv-id is configured (AUTHSERV_ID) and the raw header
block is available, only the Authentication-Results header stamped by that
server is considered, so a sender cannot forge a verdict by adding its own.
"""

import logging
import re
from email.parser import HeaderParser
from typing import Mapping, Optional

from app.models.analysis import AuthVerdict, CheckOutcome, MechanismVerdict

logger = logging.getLogger(__name__)

# Risk weight added for each mechanism that did not pass
AUTH_WEIGHTS = {"spf": 2.0, "dkim": 2.0, "dmarc": 1.0}

_SPF_DETAILS = {
    "pass": "SPF passed",
    "fail": "SPF failed",
    "softfail": "SPF softfail",
    "neutral": "SPF neutral (domain makes no assertion about this sender)",
    "none": "No SPF record found",
    "temperror": "SPF temporary error at the receiving server",
    "permerror": "SPF permanent error (invalid SPF record)",
}

_DKIM_DETAILS = {
    "pass": "DKIM signature valid",
    "fail": "DKIM signature invalid",
    "none": "No DKIM signature",
    "neutral": "DKIM signature present but not validated",
    "policy": "DKIM signature rejected by receiver policy",
    "temperror": "DKIM temporary error at the receiving server",
    "permerror": "DKIM permanent error (unusable signature or key)",
}

_DMARC_DETAILS = {
    "pass": "DMARC passed",
    "fail": "DMARC failed",
    "none": "No DMARC policy found",
    "temperror": "DMARC temporary error at the receiving server",
    "permerror": "DMARC permanent error (invalid DMARC record)",
}

_NOT_DECLARED = {
    "spf": "No SPF record found",
    "dkim": "No DKIM signature",
    "dmarc": "No DMARC policy found",
}

_INDICATORS = {
    "spf": ("SPF check failed", "SPF could not be verified"),
    "dkim": ("DKIM signature invalid", "DKIM signature missing or not validated"),
    "dmarc": ("DMARC check failed", "DMARC could not be verified"),
}

_RECOMMENDATIONS = {
    "spf": "Configure SPF records for your domain",
    "dkim": "Enable DKIM signing for your email",
    "dmarc": "Set up DMARC policy for your domain",
}


def _mechanism_result(text: str, mechanism: str) -> Optional[str]:
    """
    Return the lower-cased result of ``<mechanism>=<result>`` in text, if any.

    A header may carry several results for one mechanism (e.g. an ESP and a
    brand DKIM signature). Any pass wins, then any fail, then the first
    other result.
    """
    if not text:
        return None
    results = [
        r.lower()
        for r in re.findall(rf"(?<![\w.-]){mechanism}\s*=\s*([a-z]+)", text, re.IGNORECASE)
    ]
    if not results:
        return None
    for preferred in ("pass", "fail"):
        if preferred in results:
            return preferred
    return results[0]


def _authserv_id(header_value: str) -> str:
    """Return the authserv-id (first token before the first ';') of an Authentication-Results value."""
    head = header_value.split(";", 1)[0].strip()
    return head.split()[0].lower() if head else ""


def select_authentication_results(
    headers: Mapping[str, str],
    raw_headers: Optional[str] = None,
    authserv_id: Optional[str] = None,
) -> str:
    """
    Return the Authentication-Results value to trust.

    Without a configured authserv_id this is simply the header mapping's
    value. Otherwise every Authentication-Results header in the raw block is
    inspected and only the one stamped by authserv_id is returned; an empty
    string means none matched, or there was no raw block to check.
    """
    default = headers.get("authentication-results", "")
    if not authserv_id:
        return default
    if not raw_headers:
        logger.warning(
            f"Trusted authserv-id {authserv_id!r} configured but no raw header block; "
            "ignoring Authentication-Results"
        )
        return ""

    parsed = HeaderParser().parsestr(raw_headers, headersonly=True)
    wanted = authserv_id.strip().lower()
    for value in parsed.get_all("Authentication-Results") or []:
        value = " ".join(str(value).split())
        if _authserv_id(value) == wanted:
            return value

    logger.info(
        f"No Authentication-Results header from trusted authserv-id {authserv_id!r}"
    )
    return ""


def _declared_result(
    mechanism: str,
    auth_results: str,
    arc_results: str,
) -> tuple[Optional[str], bool]:
    """Return (result, via_arc) for the first source declaring the mechanism."""
    result = _mechanism_result(auth_results, mechanism)
    if result is not None:
        return result, False
    result = _mechanism_result(arc_results, mechanism)
    if result is not None:
        return result, True
    return None, False


def _verdict(
    result: str,
    details: dict[str, str],
    name: str,
    via_arc: bool,
) -> MechanismVerdict:
    status = result if result in ("pass", "fail") else "unknown"
    detail = details.get(result, f"{name} result '{result}'")
    if via_arc:
        detail = f"{detail} (from ARC-Authentication-Results)"
    return MechanismVerdict(status=status, detail=detail, present=result != "none")


def _check_spf(headers: Mapping[str, str], auth_results: str, arc_results: str) -> MechanismVerdict:
    result, via_arc = _declared_result("spf", auth_results, arc_results)
    if result is not None:
        return _verdict(result, _SPF_DETAILS, "SPF", via_arc)

    # Received-SPF: "<result> (explanation) key=value; ..."
    received = headers.get("received-spf", "").strip()
    if received:
        token = received.split(None, 1)[0].lower().rstrip(";")
        if token in _SPF_DETAILS:
            verdict = _verdict(token, _SPF_DETAILS, "SPF", False)
            return verdict.model_copy(
                update={"detail": f"{verdict.detail} (from Received-SPF)"}
            )

    return MechanismVerdict(status="unknown", detail=_NOT_DECLARED["spf"])


def _check_dkim(headers: Mapping[str, str], auth_results: str, arc_results: str) -> MechanismVerdict:
    result, via_arc = _declared_result("dkim", auth_results, arc_results)
    has_signature = bool(headers.get("dkim-signature", "").strip())

    if result is not None and not (result == "none" and has_signature):
        verdict = _verdict(result, _DKIM_DETAILS, "DKIM", via_arc)
        if has_signature and not verdict.present:
            verdict = verdict.model_copy(update={"present": True})
        return verdict

    if has_signature:
        return MechanismVerdict(
            status="unknown",
            detail="DKIM signature present but not validated",
            present=True,
        )
    return MechanismVerdict(status="unknown", detail=_NOT_DECLARED["dkim"])


def _check_dmarc(auth_results: str, arc_results: str) -> MechanismVerdict:
    result, via_arc = _declared_result("dmarc", auth_results, arc_results)
    if result is not None:
        return _verdict(result, _DMARC_DETAILS, "DMARC", via_arc)
    return MechanismVerdict(status="unknown", detail=_NOT_DECLARED["dmarc"])


def extract_auth_verdicts(
    headers: Mapping[str, str],
    raw_headers: Optional[str] = None,
    authserv_id: Optional[str] = None,
) -> AuthVerdict:
    """
    Extract SPF/DKIM/DMARC verdicts from a lower-cased header mapping.

    Args:
        headers:     header name (lower case) -> value
        raw_headers: raw header block, used only with authserv_id
        authserv_id: trusted receiving server; restricts which
                     Authentication-Results header is believed

    Returns:
        AuthVerdict. Mechanisms with no declared verdict are "unknown",
        never "pass".
    """
    auth_results = select_authentication_results(headers, raw_headers, authserv_id)
    arc_results = headers.get("arc-authentication-results", "")

    return AuthVerdict(
        spf=_check_spf(headers, auth_results, arc_results),
        dkim=_check_dkim(headers, auth_results, arc_results),
        dmarc=_check_dmarc(auth_results, arc_results),
    )


def auth_findings(verdict: AuthVerdict) -> CheckOutcome:
    """
    Turn verdicts into weighted findings.

    Unknown is scored exactly like fail: a mechanism nobody vouched for is a
    deliverability risk.
    """
    outcome = CheckOutcome()
    for mechanism in ("spf", "dkim", "dmarc"):
        mv: MechanismVerdict = getattr(verdict, mechanism)
        if mv.passed:
            continue
        failed_text, unknown_text = _INDICATORS[mechanism]
        indicator = failed_text if mv.status == "fail" else f"{unknown_text}: {mv.detail}"
        outcome.add(
            AUTH_WEIGHTS[mechanism],
            indicator,
            _RECOMMENDATIONS[mechanism],
            "auth",
        )
    return outcome
