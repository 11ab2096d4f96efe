"""
DNS reachability and parked-page checks for guessed domains.
"""

import logging
from typing import Optional

import dns.asyncresolver
import dns.exception
import dns.resolver

from siteresolver.core.exceptions import BlockedError, FetchError
from siteresolver.filtering.blocklist import ContentFilter
from siteresolver.filtering.domains import registrable_domain


class DnsReachabilityChecker:
    """
    Reachability checker backed by dnspython and a raw body sniff.

    Domains that do not resolve are never fetched. A domain that resolves
    but serves a parking page (or nothing at all) is reported as parked.
    """

    def __init__(self, fetcher=None, timeout: float = 3.0):
        """
        Initialize the checker.

        Args:
            fetcher: HttpPageFetcher used to sniff bodies (optional)
            timeout: DNS lookup lifetime in seconds
        """
        self.fetcher = fetcher
        self.timeout = timeout
        self.logger = logging.getLogger('site_resolver')

    async def resolves(self, domain: str) -> bool:
        """Whether the domain has an A record."""
        host = registrable_domain(domain) or domain
        resolver = dns.asyncresolver.Resolver()
        resolver.lifetime = self.timeout
        try:
            answers = await resolver.resolve(host, 'A')
            return bool(answers)
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            return False
        except dns.exception.DNSException as e:
            self.logger.debug(f"DNS lookup failed for {host}: {e}")
            return False

    async def is_likely_parked(self, url: str) -> bool:
        """Whether the start of the body looks like a parking page.

        Unreachable pages count as parked; blocked pages do not (the site
        exists and protects itself).
        """
        if self.fetcher is None:
            return False
        body: Optional[str]
        try:
            body = await self.fetcher.sniff(url)
        except BlockedError:
            return False
        except FetchError as e:
            self.logger.debug(f"Sniff failed for {url}: {e}")
            return True
        return ContentFilter.is_parked_markup(body)
