"""
Content risk scanner tests.

Each check contributes independently; nothing short-circuits.
"""

import pytest

from app.services.content_risk import (
    MAX_LINKS,
    caps_ratio,
    count_links,
    find_spam_words,
    has_url_shortener,
    scan_content,
)

# Long enough to stay clear of the "very short content" check
_FILLER = "Hello, here is the quarterly newsletter with product updates for our customers."


def _indicators(outcome) -> list[str]:
    return outcome.indicators


class TestSpamWords:

    def test_single_word_adds_flat_weight(self):
        outcome = scan_content("Hello", f"{_FILLER} You are a winner.")
        assert outcome.score == 1.0
        assert _indicators(outcome) == ["Contains spam trigger words: winner"]

    def test_many_words_still_flat_weight(self):
        outcome = scan_content(
            "Hello", f"{_FILLER} viagra cialis lottery winner click here act now"
        )
        spam_findings = [f for f in outcome.findings if "spam trigger" in f.indicator]
        assert len(spam_findings) == 1
        assert spam_findings[0].weight == 1.0
        assert "viagra, cialis, lottery, winner, click here, act now" in spam_findings[0].indicator

    def test_matching_is_case_insensitive(self):
        assert find_spam_words("CLICK HERE to see the LOTTERY results") == ["lottery", "click here"]

    def test_subject_is_scanned_too(self):
        outcome = scan_content("Limited time offer", _FILLER)
        assert any("limited time" in i for i in _indicators(outcome))

    def test_clean_text_has_no_findings(self):
        assert scan_content("Quarterly update", _FILLER).findings == []


class TestSubjectCapitalization:

    def test_shouting_subject_flagged(self):
        outcome = scan_content("FINAL REMINDER", _FILLER)
        assert "Excessive capitalization in subject line" in _indicators(outcome)
        assert outcome.score == 1.0

    def test_short_subject_not_flagged(self):
        """Subjects of 5 characters or fewer are exempt ("URGENT" is 6)."""
        outcome = scan_content("HELLO", _FILLER)
        assert outcome.findings == []

    def test_ratio_at_half_not_flagged(self):
        assert caps_ratio("ABCdef") == 0.5
        assert scan_content("ABCdef", _FILLER).findings == []

    def test_empty_subject(self):
        assert caps_ratio("") == 0.0
        assert scan_content("", _FILLER).findings == []

    def test_ratio_counts_all_characters(self):
        assert caps_ratio("WIN FREE MONEY NOW!!!") == pytest.approx(15 / 21)


class TestExclamationMarks:

    def test_two_exclamations_flagged(self):
        outcome = scan_content("Great news!!", _FILLER)
        assert "Excessive exclamation marks in subject" in _indicators(outcome)

    def test_single_exclamation_ok(self):
        assert scan_content("Great news!", _FILLER).findings == []


class TestLinks:

    def _links(self, n: int) -> str:
        return "\n".join(f"https://example.com/page/{i}" for i in range(n))

    def test_count_links(self):
        assert count_links("http://a.example https://b.example HTTPS://c.example") == 3

    def test_at_threshold_not_flagged(self):
        outcome = scan_content("Links", f"{_FILLER}\n{self._links(MAX_LINKS)}")
        assert outcome.findings == []

    def test_over_threshold_weight_two(self):
        outcome = scan_content("Links", f"{_FILLER}\n{self._links(MAX_LINKS + 1)}")
        assert outcome.score == 2.0
        assert _indicators(outcome) == [f"Excessive number of links ({MAX_LINKS + 1})"]


class TestUrlShorteners:

    @pytest.mark.parametrize("text", [
        "see https://bit.ly/abc",
        "go to tinyurl.com/xyz now",
        "https://t.co/123",
        "link: goo.gl/maps",
        "BIT.LY/UPPER",
        "trailing bit.ly.",
    ])
    def test_detects_shorteners(self, text):
        assert has_url_shortener(text)

    @pytest.mark.parametrize("text", [
        "https://www.microsoft.com/en-us",
        "contact me at pat@robot.company.example",
        "visit https://habit.lyrics.example",
        "https://t.com/page",
    ])
    def test_ignores_lookalike_domains(self, text):
        assert not has_url_shortener(text)

    def test_shortener_weight(self):
        outcome = scan_content("Hello", f"{_FILLER} https://bit.ly/x")
        assert outcome.score == 1.0
        assert _indicators(outcome) == ["Contains URL shorteners"]


class TestShortContent:

    def test_short_text_flagged(self):
        outcome = scan_content("Hello", "   hi   ")
        assert _indicators(outcome) == ["Email content is very short"]
        assert outcome.score == 1.0

    def test_empty_text_flagged(self):
        assert scan_content("Hello", "").score == 1.0

    def test_fifty_characters_ok(self):
        assert scan_content("Hello", "x" * 50).findings == []


class TestAccumulation:

    def test_all_checks_accumulate_in_order(self):
        links = "\n".join(f"http://promo.example.net/{i}" for i in range(12))
        outcome = scan_content(
            "WIN FREE MONEY NOW!!!",
            f"lottery winner https://bit.ly/prize\n{links}",
        )
        assert _indicators(outcome) == [
            "Contains spam trigger words: lottery, winner",
            "Excessive capitalization in subject line",
            "Excessive exclamation marks in subject",
            "Excessive number of links (13)",
            "Contains URL shorteners",
        ]
        assert outcome.score == 1 + 1 + 1 + 2 + 1

    def test_recommendations_parallel_indicators(self):
        outcome = scan_content("WIN NOW!!", "x")
        assert len(outcome.recommendations) == len(outcome.indicators)
        assert "Use normal capitalization in subject line" in outcome.recommendations
