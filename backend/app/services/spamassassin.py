"""
SpamAssassin scoring strategy.

Pipes the raw message through ``spamassassin --local-tests-only`` and maps
its report onto the same AnalysisResult contract as the heuristic scorer.
Auth verdicts and the important-header projection still come from the header
checkers; the risk score is SpamAssassin's own score clamped to 0-10.

Environment variables
---------------------
SPAMASSASSIN_COMMAND          Command line to run
                              (default: "spamassassin --local-tests-only").
SPAMASSASSIN_TIMEOUT_SECONDS  Subprocess timeout (default: 60).
"""

import logging
import os
import re
import shlex
import subprocess
from dataclasses import dataclass, field
from typing import Optional

from app.models.analysis import AnalysisResult, RiskFinding
from app.models.inbound_email import InboundMessage
from app.services.auth_verdicts import extract_auth_verdicts
from app.services.header_hygiene import important_headers
from app.services.scorer import ScorerError, build_result, clamp

logger = logging.getLogger(__name__)

_DEFAULT_COMMAND = "spamassassin --local-tests-only"
_DEFAULT_TIMEOUT_SECONDS = 60.0
_DEFAULT_THRESHOLD = 5.0

_SCORE_PATTERN = re.compile(r"score=([\d.-]+)\s+required=([\d.]+)")
_RULE_PATTERN = re.compile(r"^\s*([-\d.]+)\s+(\S+)\s+(.+)$")


@dataclass
class SpamAssassinRule:
    points: float
    rule: str
    description: str


@dataclass
class SpamAssassinReport:
    score: float
    threshold: float
    rules: list[SpamAssassinRule] = field(default_factory=list)

    @property
    def is_spam(self) -> bool:
        return self.score >= self.threshold

    @property
    def confidence(self) -> str:
        magnitude = abs(self.score)
        if magnitude > 10:
            return "very_high"
        if magnitude > 5:
            return "high"
        if magnitude > 2:
            return "medium"
        return "low"


def parse_spamassassin_output(output: str) -> SpamAssassinReport:
    """
    Parse the report SpamAssassin appends to a processed message.

    Reads the ``score=<f> required=<f>`` pair (defaults 0 / 5.0 when absent)
    and every rule line after "Content analysis details:", formatted as
    ``<points> <RULE_NAME> <description>``.
    """
    m = _SCORE_PATTERN.search(output)
    score = float(m.group(1)) if m else 0.0
    threshold = float(m.group(2)) if m else _DEFAULT_THRESHOLD

    rules: list[SpamAssassinRule] = []
    in_details = False
    for line in output.splitlines():
        if "Content analysis details:" in line:
            in_details = True
            continue
        if not in_details or not line.strip():
            continue
        rule_match = _RULE_PATTERN.match(line)
        if rule_match:
            try:
                points = float(rule_match.group(1))
            except ValueError:
                continue  # the "pts rule name" header and "----" separators
            rules.append(
                SpamAssassinRule(
                    points=points,
                    rule=rule_match.group(2),
                    description=rule_match.group(3).strip(),
                )
            )

    return SpamAssassinReport(score=score, threshold=threshold, rules=rules)


def recommendations_for(report: SpamAssassinReport) -> list[str]:
    """Rule-family advice, most severe first."""
    recommendations: list[str] = []
    names = [r.rule for r in report.rules]

    if report.is_spam:
        recommendations.append(
            "This email is classified as spam and likely to be blocked by most email providers."
        )
    if any("SPF" in n for n in names):
        recommendations.append(
            "SPF validation issues detected. Ensure your SPF record is properly configured."
        )
    if any("DKIM" in n for n in names):
        recommendations.append(
            "DKIM signature issues detected. Verify your DKIM signing configuration."
        )
    if any("BAYES" in n for n in names):
        recommendations.append(
            "Bayesian analysis indicates spam-like content patterns. Review your email content."
        )
    if any("URI" in n or "URL" in n for n in names):
        recommendations.append(
            "Suspicious URLs detected. Ensure all links are legitimate and use HTTPS."
        )

    if 0 < report.score < 2:
        recommendations.append(
            "Low spam score. Your email looks good but can be improved further."
        )
    elif report.score <= 0:
        recommendations.append(
            "Excellent! Your email has a negative spam score, indicating high quality."
        )
    return recommendations


class SpamAssassinScorer:
    """Scorer backed by an external SpamAssassin process."""

    name = "spamassassin"

    def __init__(self, command: Optional[str] = None, timeout: Optional[float] = None):
        self.command = shlex.split(
            command or os.getenv("SPAMASSASSIN_COMMAND", _DEFAULT_COMMAND)
        )
        self.timeout = (
            timeout
            if timeout is not None
            else float(os.getenv("SPAMASSASSIN_TIMEOUT_SECONDS", _DEFAULT_TIMEOUT_SECONDS))
        )

    def run(self, raw: bytes) -> str:
        """
        Feed raw message bytes to SpamAssassin and return its stdout.

        Raises ScorerError when the binary is missing, times out or exits
        with an error.
        """
        try:
            completed = subprocess.run(
                self.command,
                input=raw,
                capture_output=True,
                timeout=self.timeout,
                check=True,
            )
        except FileNotFoundError as e:
            raise ScorerError(f"SpamAssassin not installed: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise ScorerError(f"SpamAssassin timed out after {self.timeout}s") from e
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or b"").decode("utf-8", errors="replace").strip()
            raise ScorerError(f"SpamAssassin exited with {e.returncode}: {stderr}") from e
        return completed.stdout.decode("utf-8", errors="replace")

    def score(self, message: InboundMessage) -> AnalysisResult:
        report = parse_spamassassin_output(self.run(message.raw))
        logger.info(
            f"SpamAssassin score {report.score}/{report.threshold} "
            f"({len(report.rules)} rules, confidence={report.confidence})"
        )

        findings = [
            RiskFinding(
                weight=rule.points,
                indicator=f"{rule.rule}: {rule.description}",
                recommendation=f"Review the content that triggered {rule.rule}",
                category="spamassassin",
            )
            for rule in report.rules
            if rule.points > 0
        ]

        return build_result(
            message,
            auth=extract_auth_verdicts(message.headers),
            findings=findings,
            headers=important_headers(message.headers),
            scorer=self.name,
            risk=clamp(report.score),
            recommendations=recommendations_for(report),
        )
