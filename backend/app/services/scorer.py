"""
Deliverability scoring.

Combines the auth, content and header findings into one normalized score.

  risk            = sum of finding weights
  deliverability  = 10 - clamp(risk, 0, 10)        (higher is better)

Assessment thresholds on the deliverability score (inclusive lower bounds):
  >= 9  Excellent   >= 7  Good   >= 5  Fair   otherwise Poor

Scoring strategies implement the Scorer protocol. HeuristicScorer is the
canonical one; SpamAssassinScorer (app.services.spamassassin) is a pluggable
alternative selected with DELIVERABILITY_SCORER=spamassassin.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Iterable, Optional, Protocol

from app.models.analysis import (
    AnalysisResult,
    AuthVerdict,
    ImportantHeaders,
    RiskFinding,
)
from app.models.inbound_email import InboundMessage
from app.services import spf_lookup
from app.services.auth_verdicts import auth_findings, extract_auth_verdicts
from app.services.content_risk import scan_content
from app.services.header_hygiene import check_headers, extract_domain

logger = logging.getLogger(__name__)

MIN_SCORE = 0.0
MAX_SCORE = 10.0

# (inclusive lower bound, label), checked top-down
ASSESSMENT_THRESHOLDS = (
    (9.0, "Excellent – very likely to reach inbox"),
    (7.0, "Good – likely to reach inbox"),
    (5.0, "Fair – may reach spam folder"),
)
POOR_ASSESSMENT = "Poor – likely to be marked as spam"


class ScorerError(Exception):
    """A scoring strategy could not produce a result for a message."""


class Scorer(Protocol):
    name: str

    def score(self, message: InboundMessage) -> AnalysisResult:
        ...


def clamp(value: float, low: float = MIN_SCORE, high: float = MAX_SCORE) -> float:
    return max(low, min(high, value))


def compute_risk(findings: Iterable[RiskFinding]) -> float:
    return sum(f.weight for f in findings)


def deliverability_score(risk: float) -> float:
    """Invert a raw risk score into a 0-10 deliverability score."""
    return MAX_SCORE - clamp(risk)


def assess(score: float) -> str:
    for lower_bound, label in ASSESSMENT_THRESHOLDS:
        if score >= lower_bound:
            return label
    return POOR_ASSESSMENT


def dedupe(items: Iterable[str]) -> list[str]:
    """Remove duplicates while preserving order."""
    seen: set = set()
    out: list[str] = []
    for item in items:
        if item not in seen:
            seen.add(item)
            out.append(item)
    return out


def build_result(
    message: InboundMessage,
    auth: AuthVerdict,
    findings: list[RiskFinding],
    headers: ImportantHeaders,
    scorer: str,
    risk: Optional[float] = None,
    recommendations: Optional[list[str]] = None,
    now: Optional[datetime] = None,
) -> AnalysisResult:
    """
    Assemble an AnalysisResult.

    risk defaults to the sum of the finding weights; recommendations default
    to the findings' recommendations in order, without duplicates.
    """
    test_id = message.test_id
    if not test_id:
        raise ScorerError(f"No test id in recipient {message.recipient!r}")

    raw_risk = compute_risk(findings) if risk is None else risk
    risk_score = clamp(raw_risk)
    score = deliverability_score(raw_risk)
    if recommendations is None:
        recommendations = dedupe(f.recommendation for f in findings)

    return AnalysisResult(
        test_id=test_id,
        sender=message.sender,
        recipient=message.recipient,
        subject=message.subject or "No Subject",
        auth=auth,
        score=score,
        risk_score=risk_score,
        findings=findings,
        recommendations=recommendations,
        assessment=assess(score),
        headers=headers,
        scorer=scorer,
        timestamp=(now or datetime.now(timezone.utc)).isoformat(),
    )


class HeuristicScorer:
    """
    Header/content heuristic scorer.

    Runs the three independent checkers against the immutable message and
    merges their findings in a fixed order (auth, content, header) so the
    display order is stable.
    """

    name = "heuristic"

    def __init__(
        self,
        authserv_id: Optional[str] = None,
        spf_dns_fallback: Optional[bool] = None,
        resolver=None,
    ):
        self.authserv_id = authserv_id if authserv_id is not None else os.getenv("AUTHSERV_ID") or None
        self.spf_dns_fallback = (
            spf_lookup.is_enabled() if spf_dns_fallback is None else spf_dns_fallback
        )
        self.resolver = resolver

    def verdicts(self, message: InboundMessage) -> AuthVerdict:
        verdict = extract_auth_verdicts(
            message.headers,
            raw_headers=message.raw_header_block,
            authserv_id=self.authserv_id,
        )
        if self.spf_dns_fallback:
            domain = extract_domain(message.header("return-path")) or extract_domain(
                message.header("from") or message.sender
            )
            verdict = spf_lookup.refine_spf_verdict(verdict, domain, self.resolver)
        return verdict

    def score(self, message: InboundMessage) -> AnalysisResult:
        auth = self.verdicts(message)
        auth_outcome = auth_findings(auth)
        content_outcome = scan_content(message.subject, message.text)
        header_outcome = check_headers(message.headers)

        findings = (
            auth_outcome.findings
            + content_outcome.findings
            + header_outcome.findings
        )
        result = build_result(
            message,
            auth=auth,
            findings=findings,
            headers=header_outcome.important,
            scorer=self.name,
        )
        logger.info(
            f"Scored test {result.test_id}: risk={compute_risk(findings)} "
            f"score={result.score} ({len(findings)} findings)"
        )
        return result


def get_scorer(name: Optional[str] = None) -> Scorer:
    """
    Return the scoring strategy selected by name or DELIVERABILITY_SCORER.

    Raises ValueError for unknown names.
    """
    resolved = (name or os.getenv("DELIVERABILITY_SCORER", "heuristic")).lower().strip()
    if resolved == "heuristic":
        return HeuristicScorer()
    if resolved == "spamassassin":
        from app.services.spamassassin import SpamAssassinScorer
        return SpamAssassinScorer()
    raise ValueError(
        f"Unknown scorer {resolved!r}. Supported scorers: ['heuristic', 'spamassassin']"
    )
