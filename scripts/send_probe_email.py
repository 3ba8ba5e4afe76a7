#!/usr/bin/env python3
"""
Dev helper: send a probe email webhook to the local backend and poll for the
deliverability report.

Builds an email-worker forwarder payload (or a raw MIME payload from an .eml
file), POSTs it to /api/inbound, then fetches /api/results/{test_id}.

Usage
-----
# Basic: well-formed sample message to a fresh test id on localhost:8000
python scripts/send_probe_email.py

# Spammy sample (caps subject, trigger words, many links, a shortener)
python scripts/send_probe_email.py --spammy

# Send an existing message file
python scripts/send_probe_email.py --eml path/to/message.eml

# Reuse a specific test id / target another backend
python scripts/send_probe_email.py --test-id abc123 --url http://staging.example.com

Environment / .env
------------------
INBOUND_WEBHOOK_SECRET   Shared webhook secret (required unless --dry-run).
INBOUND_DOMAIN           Domain used in the probe address
                         (default: deliverabilityanalyzer.xyz).
"""

import argparse
import json
import os
import sys
import textwrap
import uuid
from datetime import datetime, timezone
from email.utils import format_datetime, make_msgid
from pathlib import Path

import httpx
from dotenv import load_dotenv


# ---------------------------------------------------------------------------
# Sample message builders
# ---------------------------------------------------------------------------

def _sample_headers(from_email: str, to_address: str, subject: str) -> dict:
    domain = from_email.split("@", 1)[-1]
    return {
        "From": from_email,
        "To": to_address,
        "Subject": subject,
        "Date": format_datetime(datetime.now(timezone.utc)),
        "Message-ID": make_msgid(domain=domain),
        "Return-Path": f"<bounce@{domain}>",
        "Authentication-Results": (
            f"mx.local; spf=pass smtp.mailfrom={domain}; "
            f"dkim=pass header.d={domain}; dmarc=pass header.from={domain}"
        ),
    }


def _clean_body() -> str:
    return textwrap.dedent("""\
        Hi there,

        Thanks for signing up. Your account is ready and you can log in any
        time from the dashboard. Reply to this message if you need a hand.

        The Team
    """)


def _spammy_body() -> str:
    links = "\n".join(f"http://promo.example.net/offer/{i}" for i in range(12))
    return (
        "Congratulations WINNER! You won the lottery. Click here to claim now: "
        "https://bit.ly/claim-prize\n" + links
    )


def _render_raw(headers: dict, body: str) -> str:
    lines = [f"{name}: {value}" for name, value in headers.items()]
    return "\r\n".join(lines) + "\r\n\r\n" + body


def _build_worker_payload(from_email: str, to_address: str, spammy: bool) -> dict:
    """
    Build an email-worker forwarder payload.

      from, to, subject - envelope and subject
      headers           - header name -> value
      raw               - full message source
    """
    if spammy:
        subject = "WIN FREE MONEY NOW!!!"
        headers = {"From": from_email, "To": to_address, "Subject": subject}
        body = _spammy_body()
    else:
        subject = "Welcome to your new account"
        headers = _sample_headers(from_email, to_address, subject)
        body = _clean_body()

    return {
        "from": from_email,
        "to": to_address,
        "subject": subject,
        "headers": headers,
        "raw": _render_raw(headers, body),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


def _build_mime_payload(eml_path: Path, from_email: str, to_address: str) -> dict:
    return {
        "from": from_email,
        "to": to_address,
        "raw": eml_path.read_text(encoding="utf-8", errors="replace"),
    }


# ---------------------------------------------------------------------------
# Pretty printer
# ---------------------------------------------------------------------------

def _print_response(response: httpx.Response) -> None:
    status = response.status_code
    symbol = "OK" if status == 200 else "FAIL"
    print(f"\n[{symbol}] HTTP {status}")
    try:
        print(json.dumps(response.json(), indent=2, ensure_ascii=False))
    except ValueError:
        print(response.text)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def main() -> int:
    # Locate project root (scripts/ lives one level below the root)
    project_root = Path(__file__).resolve().parent.parent
    load_dotenv(project_root / ".env")
    load_dotenv(project_root / "backend" / ".env")

    parser = argparse.ArgumentParser(
        prog="send_probe_email.py",
        description=textwrap.dedent("""\
            Send a probe email webhook to the deliverability backend and print
            the resulting report.

            Reads INBOUND_WEBHOOK_SECRET from the environment or a .env file in
            the project root.
        """),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            Examples:
              python scripts/send_probe_email.py
              python scripts/send_probe_email.py --spammy
              python scripts/send_probe_email.py --eml samples/newsletter.eml
              python scripts/send_probe_email.py --test-id abc123
        """),
    )
    parser.add_argument(
        "--url",
        default="http://localhost:8000",
        help="Backend base URL (default: http://localhost:8000)",
    )
    parser.add_argument(
        "--test-id",
        default=None,
        metavar="TEST_ID",
        help="Alphanumeric test id (default: a new random id)",
    )
    parser.add_argument(
        "--from",
        dest="from_email",
        default="sender@example.com",
        help="Sender email address (default: sender@example.com)",
    )
    parser.add_argument(
        "--eml",
        default=None,
        metavar="PATH",
        help="Send this RFC 822 message as a raw MIME payload (requires EMAIL_PROVIDER=mime on the backend).",
    )
    parser.add_argument(
        "--spammy",
        action="store_true",
        help="Use a sample message that trips most risk checks.",
    )
    parser.add_argument(
        "--secret",
        default=None,
        metavar="SECRET",
        help="Override the webhook secret. Defaults to INBOUND_WEBHOOK_SECRET.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the payload JSON without sending it.",
    )

    args = parser.parse_args()

    secret = args.secret or os.getenv("INBOUND_WEBHOOK_SECRET", "")
    if not secret and not args.dry_run:
        print(
            "ERROR: No webhook secret found.\n"
            "Set INBOUND_WEBHOOK_SECRET in your environment or .env file, "
            "or pass --secret.",
            file=sys.stderr,
        )
        return 1

    test_id = args.test_id or uuid.uuid4().hex[:12]
    domain = os.getenv("INBOUND_DOMAIN", "deliverabilityanalyzer.xyz")
    to_address = f"test-{test_id}@{domain}"

    if args.eml:
        eml_path = Path(args.eml)
        if not eml_path.exists():
            print(f"ERROR: File not found: {eml_path}", file=sys.stderr)
            return 1
        payload = _build_mime_payload(eml_path, args.from_email, to_address)
    else:
        payload = _build_worker_payload(args.from_email, to_address, args.spammy)

    base_url = args.url.rstrip("/")
    endpoint = f"{base_url}/api/inbound"

    print(f"Endpoint  : {endpoint}")
    print(f"From      : {args.from_email}")
    print(f"To        : {to_address}")

    if args.dry_run:
        print("\n[DRY RUN] Payload:")
        print(json.dumps(payload, indent=2))
        return 0

    try:
        response = httpx.post(
            endpoint,
            json=payload,
            headers={"X-Webhook-Secret": secret},
            timeout=30,
        )
        _print_response(response)
        if response.status_code != 200:
            return 1

        report = httpx.get(f"{base_url}/api/results/{test_id}", timeout=30)
        _print_response(report)
        return 0 if report.status_code == 200 else 1
    except httpx.ConnectError:
        print(
            f"\nERROR: Could not connect to {endpoint}\n"
            "Is the backend running? Start it with:\n"
            "  cd backend && uvicorn app.main:app --reload",
            file=sys.stderr,
        )
        return 1
    except httpx.HTTPError as exc:
        print(f"\nERROR: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
