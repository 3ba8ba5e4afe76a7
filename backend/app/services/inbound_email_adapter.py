"""
Inbound email adapter service.

Normalizes provider-specific inbound webhook payloads into a single
provider-agnostic InboundMessage model.

Supported providers:
  - worker    (default) the email-worker forwarder
  - postmark  Postmark inbound webhook
  - mime      a raw RFC 822 message, optionally base64-encoded

Adding a new provider:
  1. Write a normalize_<provider>(payload: dict) -> InboundMessage function.
  2. Register it in _NORMALIZERS.
  3. Set EMAIL_PROVIDER=<provider> in the environment.

Email-worker forwarder field assumptions
----------------------------------------
The forwarder relays every message addressed to the inbound domain as JSON:

  from       str   - envelope sender
  to         str   - envelope recipient, e.g. "test-abc123@deliverabilityanalyzer.xyz"
  subject    str   - subject line ("No Subject" when absent)
  headers    dict  - header name -> value, as delivered
  raw        str   - the full message source (headers + body)
  timestamp  str   - forwarding time (ignored)
"""

import base64
import binascii
import os
from email import message_from_bytes
from email.message import Message
from email.policy import compat32
from typing import Callable

from app.models.inbound_email import InboundMessage


class UnsupportedProviderError(ValueError):
    """EMAIL_PROVIDER (or the provider argument) names no registered normalizer."""


def _encode_raw(raw) -> bytes:
    if raw is None:
        return b""
    if isinstance(raw, bytes):
        return raw
    return str(raw).encode("utf-8", errors="replace")


def _build_raw(headers: dict[str, str], body: str) -> bytes:
    """Reassemble a message source from a header mapping and a text body."""
    lines = [f"{name}: {value}" for name, value in headers.items()]
    return ("\r\n".join(lines) + "\r\n\r\n" + (body or "")).encode("utf-8", errors="replace")


# ---------------------------------------------------------------------------
# Email-worker normalizer
# ---------------------------------------------------------------------------

def normalize_worker(payload: dict) -> InboundMessage:
    """
    Convert an email-worker forwarder payload to InboundMessage.

    The subject is only used when the headers carry none.
    """
    headers = dict(payload.get("headers") or {})
    if payload.get("subject") and not any(k.lower() == "subject" for k in headers):
        headers["Subject"] = payload["subject"]

    return InboundMessage(
        sender=payload.get("from") or "",
        recipient=payload.get("to") or "",
        headers=headers,
        raw=_encode_raw(payload.get("raw")),
    )


# ---------------------------------------------------------------------------
# Postmark normalizer
# ---------------------------------------------------------------------------

def normalize_postmark(payload: dict) -> InboundMessage:
    """
    Convert a Postmark inbound webhook payload to InboundMessage.

    Postmark uses PascalCase keys:
      From, To, OriginalRecipient, Subject, Headers[].{Name, Value},
      TextBody, HtmlBody, RawEmail (only when raw delivery is enabled)

    Postmark lifts From/To/Subject/Date/Message-ID out of Headers, so they are
    merged back in. Without RawEmail the source is rebuilt from the headers and
    the text (or HTML) body.
    """
    headers: dict[str, str] = {}
    for item in payload.get("Headers") or []:
        name = item.get("Name")
        if name and name not in headers:
            headers[name] = item.get("Value", "")

    lifted = {
        "From": payload.get("From"),
        "To": payload.get("To"),
        "Subject": payload.get("Subject"),
        "Date": payload.get("Date"),
        "Message-ID": payload.get("MessageID") and f"<{payload['MessageID']}>",
        "Return-Path": payload.get("ReturnPath"),
    }
    lowered = {k.lower() for k in headers}
    for name, value in lifted.items():
        if value and name.lower() not in lowered:
            headers[name] = value

    raw = payload.get("RawEmail")
    if raw:
        raw_bytes = _encode_raw(raw)
    else:
        raw_bytes = _build_raw(headers, payload.get("TextBody") or payload.get("HtmlBody") or "")

    return InboundMessage(
        sender=payload.get("From") or "",
        recipient=payload.get("OriginalRecipient") or payload.get("To") or "",
        headers=headers,
        raw=raw_bytes,
    )


# ---------------------------------------------------------------------------
# Raw MIME normalizer
# ---------------------------------------------------------------------------

def _headers_from_message(msg: Message) -> dict[str, str]:
    """First occurrence of each header, unfolded, in message order."""
    headers: dict[str, str] = {}
    for name, value in msg.items():
        if name.lower() not in {k.lower() for k in headers}:
            headers[name] = " ".join(str(value).split())
    return headers


def message_from_rfc822(
    raw: bytes,
    sender: str | None = None,
    recipient: str | None = None,
) -> InboundMessage:
    """
    Build an InboundMessage from a raw RFC 822 message.

    Envelope sender/recipient default to the Return-Path/From and
    Delivered-To/To headers when not supplied.
    """
    msg = message_from_bytes(raw, policy=compat32)
    headers = _headers_from_message(msg)

    def first(*names: str) -> str:
        for name in names:
            value = msg.get(name)
            if value:
                return " ".join(str(value).split())
        return ""

    return InboundMessage(
        sender=sender or first("Return-Path", "From"),
        recipient=recipient or first("Delivered-To", "X-Original-To", "To"),
        headers=headers,
        raw=raw,
    )


def normalize_mime(payload: dict) -> InboundMessage:
    """
    Convert a raw-message payload to InboundMessage.

    Keys:
      raw           str  - message source (required)
      raw_encoding  str  - "base64" when raw is base64-encoded
      from, to      str  - envelope addresses (optional)

    Raises ValueError when raw is missing or not valid base64.
    """
    raw = payload.get("raw")
    if not raw:
        raise ValueError("mime payload requires a 'raw' message")

    if (payload.get("raw_encoding") or "").lower() == "base64":
        try:
            raw_bytes = base64.b64decode(raw, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"mime payload 'raw' is not valid base64: {exc}") from exc
    else:
        raw_bytes = _encode_raw(raw)

    return message_from_rfc822(raw_bytes, payload.get("from"), payload.get("to"))


# ---------------------------------------------------------------------------
# Registry and dispatcher
# ---------------------------------------------------------------------------

_NORMALIZERS: dict[str, Callable[[dict], InboundMessage]] = {
    "worker": normalize_worker,
    "postmark": normalize_postmark,
    "mime": normalize_mime,
}


def normalize_webhook(payload: dict, provider: str | None = None) -> InboundMessage:
    """
    Route to the correct normalizer based on the provider argument or the
    EMAIL_PROVIDER environment variable.

    Priority:
      1. provider argument (explicit, used in tests and the webhook endpoint)
      2. EMAIL_PROVIDER env var
      3. Default: "worker"

    Raises UnsupportedProviderError for unknown provider names and ValueError
    for payloads the selected normalizer cannot read.
    """
    resolved = provider or os.getenv("EMAIL_PROVIDER", "worker")
    resolved = resolved.lower().strip()

    normalizer = _NORMALIZERS.get(resolved)
    if normalizer is None:
        raise UnsupportedProviderError(
            f"Unknown email provider {resolved!r}. "
            f"Supported providers: {sorted(_NORMALIZERS)}"
        )

    return normalizer(payload)
