import logging
from typing import List

import requests

from app.core.config import settings

logger = logging.getLogger(__name__)

CNAME_RECORD_TYPE = 5


class DnsResolver:
    def resolve_cname(self, domain: str) -> List[str]:
        raise NotImplementedError

    def points_to(self, domain: str, target: str) -> bool:
        """True when ``domain`` has a CNAME equal to ``target``."""
        expected = target.rstrip(".").lower()
        return any(record.rstrip(".").lower() == expected for record in self.resolve_cname(domain))


class DohDnsResolver(DnsResolver):
    """Resolves through a DNS-over-HTTPS JSON endpoint (dns.google, cloudflare-dns.com)."""

    def __init__(self, endpoint: str, timeout: int):
        self.endpoint = endpoint
        self.timeout = timeout

    def resolve_cname(self, domain: str) -> List[str]:
        try:
            resp = requests.get(
                self.endpoint,
                params={"name": domain, "type": "CNAME"},
                headers={"Accept": "application/dns-json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"DNS lookup for {domain} failed: {e}")
            return []
        if resp.status_code >= 400:
            logger.warning(f"DNS lookup for {domain} returned HTTP {resp.status_code}")
            return []

        try:
            payload = resp.json() if resp.content else {}
        except ValueError:
            logger.warning(f"DNS lookup for {domain} returned a non-JSON body")
            return []
        if not isinstance(payload, dict):
            return []
        answers = payload.get("Answer") or []
        return [a.get("data", "") for a in answers if a.get("type") == CNAME_RECORD_TYPE]


def get_dns_resolver() -> DnsResolver:
    return DohDnsResolver(settings.DNS_RESOLVER_URL, settings.DNS_TIMEOUT_SECONDS)
