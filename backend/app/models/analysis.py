"""
Pydantic models for deliverability analysis results.

Models:
  MechanismVerdict  - pass/fail/unknown for one authentication mechanism
  AuthVerdict       - SPF, DKIM and DMARC verdicts
  RiskFinding       - one weighted risk signal with its remediation advice
  ImportantHeaders  - compact header projection shown in the report
  AnalysisResult    - the stored, polled report for one test id
"""

from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, Field

AuthStatus = Literal["pass", "fail", "unknown"]
FindingCategory = Literal["auth", "content", "header", "spamassassin"]


class MechanismVerdict(BaseModel):
    """Upstream-supplied verdict for a single mechanism (never recomputed here)."""
    model_config = {"frozen": True}

    status: AuthStatus = "unknown"
    detail: str
    # True when some evidence for the mechanism was seen (e.g. a DKIM-Signature
    # header) even though no verdict was declared
    present: bool = False

    @property
    def passed(self) -> bool:
        return self.status == "pass"


class AuthVerdict(BaseModel):
    model_config = {"frozen": True}

    spf: MechanismVerdict
    dkim: MechanismVerdict
    dmarc: MechanismVerdict


class RiskFinding(BaseModel):
    """A (score delta, indicator, recommendation) triple."""
    model_config = {"frozen": True}

    weight: float
    indicator: str
    recommendation: str
    category: FindingCategory


class ImportantHeaders(BaseModel):
    """
    Display projection of the standard headers.

    ``from`` is a Python keyword, so the field is ``from_`` and serializes
    under the alias ``from``.
    """
    model_config = {"frozen": True, "populate_by_name": True}

    from_: str = Field(default="Unknown", alias="from")
    return_path: str = "Not set"
    message_id: str = "Not set"
    date: str = "Not set"


class AnalysisResult(BaseModel):
    """
    Full deliverability report for one inbound probe email.

    score       - deliverability, 0-10, higher is better
    risk_score  - summed risk weights clamped to 0-10 (score = 10 - risk_score)
    scorer      - name of the scoring strategy that produced the report
    timestamp   - UTC ISO-8601 time the analysis finished
    """
    model_config = {"frozen": True}

    test_id: str
    sender: str
    recipient: str
    subject: str = "No Subject"
    auth: AuthVerdict
    score: float = Field(ge=0, le=10)
    risk_score: float = Field(ge=0, le=10)
    findings: list[RiskFinding] = []
    recommendations: list[str] = []
    assessment: str
    headers: ImportantHeaders = ImportantHeaders()
    scorer: str = "heuristic"
    timestamp: str

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


@dataclass
class CheckOutcome:
    """
    Local accumulator returned by each checker.

    Checkers never share state; the scorer merges outcomes by concatenating
    findings in the order the checkers ran.
    """

    findings: list[RiskFinding] = field(default_factory=list)

    def add(
        self,
        weight: float,
        indicator: str,
        recommendation: str,
        category: FindingCategory,
    ) -> None:
        self.findings.append(
            RiskFinding(
                weight=weight,
                indicator=indicator,
                recommendation=recommendation,
                category=category,
            )
        )

    @property
    def score(self) -> float:
        return sum(f.weight for f in self.findings)

    @property
    def indicators(self) -> list[str]:
        return [f.indicator for f in self.findings]

    @property
    def recommendations(self) -> list[str]:
        return [f.recommendation for f in self.findings]
