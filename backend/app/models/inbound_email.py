"""
Provider-agnostic inbound message model.

Represents one delivered probe email after provider-specific fields have been
stripped away. The analysis pipeline and the checkers work exclusively with
this model; only the adapter layer knows about forwarder/Postmark/MIME formats.
"""

import re
from typing import Optional

from pydantic import BaseModel, field_validator

# test-<id>@anything; the id is the ResultStore key
_TEST_ID_PATTERN = re.compile(r"test-([a-zA-Z0-9]+)@")


def extract_test_id(recipient: str) -> Optional[str]:
    """
    Extract the test id from a recipient address like:
      test-abc123@deliverabilityanalyzer.xyz
      "Probe" <test-abc123@deliverabilityanalyzer.xyz>
      other@example.com, test-abc123@deliverabilityanalyzer.xyz

    The first address in a comma-separated list that matches wins. Returns
    None if no address matches the expected pattern.
    """
    if not recipient:
        return None
    for part in recipient.split(","):
        # Some providers wrap the address as "Name <addr@host>"
        match = re.search(r"<([^>]+)>", part)
        addr = match.group(1) if match else part.strip()

        m = _TEST_ID_PATTERN.match(addr.strip())
        if m:
            return m.group(1)
    return None


class InboundMessage(BaseModel):
    """
    Normalized inbound email, immutable once received.

    Header names are lower-cased on construction so every lookup is
    case-insensitive; insertion order is preserved.
    """

    model_config = {"frozen": True}

    sender: str
    recipient: str
    headers: dict[str, str] = {}
    raw: bytes = b""

    @field_validator("headers", mode="before")
    @classmethod
    def _lowercase_header_names(cls, value):
        if value is None:
            return {}
        normalized: dict[str, str] = {}
        for name, header_value in dict(value).items():
            key = str(name).lower()
            # First occurrence wins (topmost header = closest hop)
            if key not in normalized:
                normalized[key] = "" if header_value is None else str(header_value)
        return normalized

    def header(self, name: str, default: str = "") -> str:
        return self.headers.get(name.lower(), default)

    @property
    def subject(self) -> str:
        return self.header("subject")

    @property
    def text(self) -> str:
        """Raw content decoded as UTF-8 (undecodable bytes replaced)."""
        return self.raw.decode("utf-8", errors="replace")

    @property
    def raw_header_block(self) -> str:
        """Header section of the raw message (everything before the first blank line)."""
        text = self.text.replace("\r\n", "\n")
        head, _, _ = text.partition("\n\n")
        return head

    @property
    def test_id(self) -> Optional[str]:
        return extract_test_id(self.recipient)
