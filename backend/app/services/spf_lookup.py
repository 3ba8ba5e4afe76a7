"""
SPF DNS fallback lookup.

When the receiving platform declared no SPF verdict, a TXT lookup on the
sender's domain tells the user whether an SPF record is published at all.
The lookup only refines the detail text of the "unknown" verdict; it never
turns a verdict into pass or fail, because evaluating the record needs the
connecting IP.

Enabled with SPF_DNS_FALLBACK=true. DNS_RESOLVER / DNS_RESOLVER_PORT select a
custom resolver, DNS_TIMEOUT_SECONDS bounds every lookup (default 3s). Lookup
failures are logged and swallowed.
"""

import logging
import os
from typing import Optional

import dns.exception
import dns.resolver

from app.models.analysis import AuthVerdict, MechanismVerdict

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT_SECONDS = 3.0


def is_enabled() -> bool:
    return os.getenv("SPF_DNS_FALLBACK", "").strip().lower() in ("1", "true", "yes")


def get_resolver() -> dns.resolver.Resolver:
    """
    Build a resolver with the configured nameserver and timeout.

    DNS_RESOLVER        hostname/IP of a custom DNS server (default: system)
    DNS_RESOLVER_PORT   port (default: 53)
    DNS_TIMEOUT_SECONDS per-lookup budget (default: 3)
    """
    dns_server = os.getenv("DNS_RESOLVER")
    # A custom server replaces /etc/resolv.conf entirely
    resolver = dns.resolver.Resolver(configure=not dns_server)
    if dns_server:
        resolver.nameservers = [dns_server]
        resolver.port = int(os.getenv("DNS_RESOLVER_PORT", "53"))

    timeout = float(os.getenv("DNS_TIMEOUT_SECONDS", _DEFAULT_TIMEOUT_SECONDS))
    resolver.timeout = timeout
    resolver.lifetime = timeout
    return resolver


def lookup_spf_record(
    domain: str,
    resolver: Optional[dns.resolver.Resolver] = None,
) -> Optional[str]:
    """
    Return the published ``v=spf1`` TXT record for domain, or None.

    Raises dns.exception.DNSException on timeouts and server failures so the
    caller can tell "no record" apart from "could not look".
    """
    resolver = resolver or get_resolver()
    try:
        answers = resolver.resolve(domain, "TXT")
    except (dns.resolver.NoAnswer, dns.resolver.NXDOMAIN):
        return None

    for rdata in answers:
        txt = b"".join(rdata.strings).decode("utf-8", errors="replace")
        if txt.lower().startswith("v=spf1"):
            return txt
    return None


def refine_spf_verdict(
    verdict: AuthVerdict,
    domain: Optional[str],
    resolver: Optional[dns.resolver.Resolver] = None,
) -> AuthVerdict:
    """
    Enrich an undeclared SPF verdict with the outcome of a DNS lookup.

    Only touches verdicts that are "unknown" without any upstream evidence;
    everything else is returned unchanged, as is the verdict on lookup failure.
    """
    spf = verdict.spf
    if spf.status != "unknown" or spf.present or not domain:
        return verdict

    try:
        record = lookup_spf_record(domain, resolver)
    except dns.exception.DNSException as e:
        logger.warning(f"SPF DNS lookup for {domain!r} failed: {e}")
        return verdict

    if record:
        detail = f"SPF record published for {domain} but no verdict from the receiving server"
    else:
        detail = f"No SPF record published for {domain}"

    return verdict.model_copy(
        update={"spf": MechanismVerdict(status="unknown", detail=detail, present=bool(record))}
    )
