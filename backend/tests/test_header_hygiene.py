"""
Header hygiene checker tests.
"""

import pytest

from app.services.header_hygiene import check_headers, extract_domain, important_headers


def _complete_headers(**overrides) -> dict:
    headers = {
        "from": "Alice <alice@example.com>",
        "return-path": "<bounce@example.com>",
        "message-id": "<abc123@example.com>",
        "date": "Sat, 17 Oct 2026 10:00:00 +0000",
    }
    headers.update(overrides)
    return {k: v for k, v in headers.items() if v is not None}


class TestExtractDomain:

    @pytest.mark.parametrize("address,domain", [
        ("alice@example.com", "example.com"),
        ("Alice <alice@Example.COM>", "example.com"),
        ("<bounce@mail.example.org>", "mail.example.org"),
        ("alice@example.com (Alice)", "example.com"),
    ])
    def test_extracts_lowercased_domain(self, address, domain):
        assert extract_domain(address) == domain

    @pytest.mark.parametrize("address", ["", "no-at-sign", "<>"])
    def test_returns_none_without_domain(self, address):
        assert extract_domain(address) is None


class TestCheckHeaders:

    def test_complete_aligned_headers_no_findings(self):
        outcome = check_headers(_complete_headers())
        assert outcome.findings == []
        assert outcome.score == 0

    def test_missing_return_path(self):
        outcome = check_headers(_complete_headers(**{"return-path": None}))
        assert outcome.indicators == ["Missing Return-Path header"]
        assert outcome.score == 1.0

    def test_missing_message_id(self):
        outcome = check_headers(_complete_headers(**{"message-id": None}))
        assert outcome.indicators == ["Missing Message-ID header"]
        assert outcome.score == 1.0

    def test_missing_date(self):
        outcome = check_headers(_complete_headers(date=None))
        assert outcome.indicators == ["Missing Date header"]
        assert outcome.score == 0.5

    def test_domain_mismatch(self):
        outcome = check_headers(_complete_headers(**{"return-path": "<bounces@esp.example.net>"}))
        assert outcome.score == 0.5
        assert outcome.indicators == [
            "From domain (example.com) differs from Return-Path domain (esp.example.net)"
        ]
        assert outcome.recommendations == ["Align From and Return-Path domains when possible"]

    def test_domain_comparison_ignores_case(self):
        outcome = check_headers(_complete_headers(**{"return-path": "<bounce@EXAMPLE.com>"}))
        assert outcome.findings == []

    def test_mismatch_not_checked_without_from(self):
        outcome = check_headers(_complete_headers(**{"from": None, "return-path": "<b@other.example>"}))
        assert all("differs" not in i for i in outcome.indicators)

    def test_empty_headers(self):
        outcome = check_headers({})
        assert outcome.indicators == [
            "Missing Return-Path header",
            "Missing Message-ID header",
            "Missing Date header",
        ]
        assert outcome.score == 2.5
        assert all(f.category == "header" for f in outcome.findings)


class TestImportantHeaders:

    def test_projection_of_present_headers(self):
        important = important_headers(_complete_headers())
        assert important.from_ == "Alice <alice@example.com>"
        assert important.return_path == "<bounce@example.com>"
        assert important.message_id == "<abc123@example.com>"
        assert important.date == "Sat, 17 Oct 2026 10:00:00 +0000"

    def test_placeholders_for_missing_headers(self):
        important = important_headers({})
        assert important.from_ == "Unknown"
        assert important.return_path == "Not set"
        assert important.message_id == "Not set"
        assert important.date == "Not set"

    def test_serializes_from_under_its_header_name(self):
        dumped = important_headers(_complete_headers()).model_dump(by_alias=True)
        assert dumped["from"] == "Alice <alice@example.com>"

    def test_outcome_carries_projection(self):
        outcome = check_headers(_complete_headers())
        assert outcome.important.message_id == "<abc123@example.com>"
