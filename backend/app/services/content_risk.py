"""
Content risk scanner.

Heuristic spam signals in the subject and message text. Every check runs
unconditionally and contributes its own finding; nothing short-circuits.

Weights:
  spam trigger words      1   (flat, however many words matched)
  subject capitalization  1   (upper-case ratio > 0.5, subject longer than 5)
  subject exclamations    1   (more than one "!")
  links                   2   (more than MAX_LINKS http(s):// occurrences)
  URL shorteners          1
  very short content      1   (trimmed text shorter than MIN_CONTENT_LENGTH)
"""

import re

from app.models.analysis import CheckOutcome

SPAM_TRIGGER_WORDS = (
    "viagra",
    "cialis",
    "lottery",
    "winner",
    "claim now",
    "click here",
    "act now",
    "limited time",
)

URL_SHORTENERS = (
    "bit.ly",
    "tinyurl.com",
    "goo.gl",
    "t.co",
    "ow.ly",
    "is.gd",
)

MAX_LINKS = 5
MIN_CONTENT_LENGTH = 50
CAPS_RATIO_THRESHOLD = 0.5
MIN_CAPS_SUBJECT_LENGTH = 5

_LINK_PATTERN = re.compile(r"https?://", re.IGNORECASE)

# Shortener host as a whole domain token: "t.co/x" matches, "microsoft.com" does not
_SHORTENER_PATTERN = re.compile(
    r"(?<![a-z0-9.-])(?:"
    + "|".join(re.escape(s) for s in URL_SHORTENERS)
    + r")(?![a-z0-9-])(?!\.[a-z])",
    re.IGNORECASE,
)


def find_spam_words(text: str) -> list[str]:
    """Return trigger words present in text, in list order."""
    lowered = text.lower()
    return [word for word in SPAM_TRIGGER_WORDS if word in lowered]


def caps_ratio(subject: str) -> float:
    """Fraction of subject characters that are upper-case ASCII letters."""
    if not subject:
        return 0.0
    return len(re.findall(r"[A-Z]", subject)) / len(subject)


def count_links(text: str) -> int:
    return len(_LINK_PATTERN.findall(text))


def has_url_shortener(text: str) -> bool:
    return _SHORTENER_PATTERN.search(text) is not None


def scan_content(subject: str, text: str) -> CheckOutcome:
    """
    Scan subject and message text for spam signals.

    Args:
        subject: subject line as sent (case matters for the caps check)
        text:    full message text; matching is case-insensitive

    Returns:
        CheckOutcome with one finding per triggered check.
    """
    outcome = CheckOutcome()
    subject = subject or ""
    text = text or ""

    spam_words = find_spam_words(f"{subject}\n{text}")
    if spam_words:
        outcome.add(
            1.0,
            f"Contains spam trigger words: {', '.join(spam_words)}",
            "Avoid using spam trigger words in your email",
            "content",
        )

    if caps_ratio(subject) > CAPS_RATIO_THRESHOLD and len(subject) > MIN_CAPS_SUBJECT_LENGTH:
        outcome.add(
            1.0,
            "Excessive capitalization in subject line",
            "Use normal capitalization in subject line",
            "content",
        )

    if subject.count("!") > 1:
        outcome.add(
            1.0,
            "Excessive exclamation marks in subject",
            "Limit exclamation marks in subject line",
            "content",
        )

    link_count = count_links(text)
    if link_count > MAX_LINKS:
        outcome.add(
            2.0,
            f"Excessive number of links ({link_count})",
            "Reduce the number of links in your email",
            "content",
        )

    if has_url_shortener(text):
        outcome.add(
            1.0,
            "Contains URL shorteners",
            "Use full URLs instead of URL shorteners",
            "content",
        )

    if len(text.strip()) < MIN_CONTENT_LENGTH:
        outcome.add(
            1.0,
            "Email content is very short",
            "Add more meaningful content to your email",
            "content",
        )

    return outcome
