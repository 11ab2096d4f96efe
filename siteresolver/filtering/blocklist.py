"""
Blocklist and content filtering for directories, social profiles and junk pages.
"""

from typing import Iterable, List, Optional, Tuple

from siteresolver.core.models import SearchResult
from siteresolver.filtering.domains import registrable_domain

DEFAULT_DIRECTORIES = (
    'paginegialle.it', 'paginebianche.it', 'yelp.it', 'yelp.com', 'tripadvisor.it',
    'facebook.com', 'instagram.com', 'linkedin.com', 'linkedin.it', 'twitter.com',
    'x.com', 'youtube.com', 'tiktok.com',
    'virgilio.it', 'kompass.com', 'europages.com', 'misterimprese.it',
    'prontopro.it', 'habitissimo.it', 'infojobs.it', 'indeed.com',
    'glassdoor.it', 'trovalavoro.it', 'bakeca.it', 'subito.it',
    'wikipedia.org', 'amazon.it', 'ebay.it', 'groupon.it',
    'guidatitolari.it', 'registroimprese.it', 'ufficiocamerale.it',
    'informazione-aziende.it', 'trovanumeri.com', 'reteimprese.it', 'area-clienti.com',
    'pagineimprese.it', 'aziende.virgilio.it', 'atoka.io', 'reportaziende.it',
)

DIRECTORY_TITLE_SIGNALS = (
    'elenco aziende', 'elenco imprese', 'trova aziende', 'directory aziende',
    'directory imprese', 'imprese in', 'recensioni di', 'scheda azienda',
)

PARKING_KEYWORDS = (
    'domain is for sale', 'buy this domain', 'questo dominio è in vendita',
    'domain parked', 'godaddy', 'sedo', 'dan.com', 'afternic',
    'huge domains', 'hugedomains', 'domain name is available', 'acquista questo dominio',
    'is available for purchase', 'sedoparking', 'bodis.com', 'register this domain',
)

CONSTRUCTION_KEYWORDS = (
    'coming soon', 'lavori in corso', 'sito in manutenzione', 'sito in costruzione',
    'website under construction', 'stiamo arrivando', 'work in progress',
    'sito in allestimento', 'torneremo presto',
)

ITALIAN_STOP_WORDS = (
    ' il ', ' lo ', ' la ', ' i ', ' gli ', ' le ',
    ' di ', ' a ', ' da ', ' in ', ' con ', ' su ', ' per ', ' tra ', ' fra ',
    ' è ', ' sono ', ' siamo ', ' azienda ', ' contatti ', ' chi siamo ', ' dove siamo ',
    ' home ', ' servizi ', ' prodotti ',
)

# Under-construction markers only count on short pages
CONSTRUCTION_MAX_LENGTH = 500
LANGUAGE_MIN_LENGTH = 120


def _domain_in(domain: str, blocklist: Iterable[str]) -> bool:
    """Exact or subdomain match against a list of blocked domains."""
    return any(domain == blocked or domain.endswith('.' + blocked) for blocked in blocklist)


class BlocklistFilter:
    """
    Filter search results to remove directory and social sites using a blocklist.

    Directories and social networks republish business data and are never
    the official website of the business.
    """

    def __init__(self, blocklist: Optional[List[str]] = None):
        """
        Initialize the blocklist filter.

        Args:
            blocklist: Domains to block (defaults to the built-in directory list)
        """
        if blocklist is None:
            blocklist = list(DEFAULT_DIRECTORIES)
        self.blocklist = [domain.lower().strip() for domain in blocklist if domain.strip()]

    def filter_results(self, results: List[SearchResult]) -> List[SearchResult]:
        """
        Filter search results to remove blocklisted domains.

        Args:
            results: List of SearchResult objects to filter

        Returns:
            List of SearchResult objects with blocklisted domains removed
        """
        if not results:
            return []

        return [result for result in results if not self.is_blocked(result.url)]

    def is_blocked(self, url: Optional[str]) -> bool:
        """
        Check if a URL is blocklisted.

        Args:
            url: URL to check

        Returns:
            True if the URL's domain or a parent domain is blocklisted
        """
        domain = registrable_domain(url)
        if not domain:
            return False
        return _domain_in(domain, self.blocklist)


class ContentFilter:
    """
    Junk detection for candidate URLs and fetched pages.

    Rejects directory/social domains, directory-like titles, parked and
    under-construction pages, and estimates whether a page is Italian.
    """

    def __init__(self, extra_blocklist: Optional[Iterable[str]] = None):
        """
        Initialize the content filter.

        Args:
            extra_blocklist: Domains added to the built-in directory list
        """
        domains = list(DEFAULT_DIRECTORIES) + list(extra_blocklist or [])
        self.blocklist = BlocklistFilter(domains)

    def is_directory_or_social(self, url: Optional[str]) -> bool:
        """Directory/social domains are rejected; so is anything without a host."""
        if not registrable_domain(url):
            return True
        return self.blocklist.is_blocked(url)

    @staticmethod
    def is_directory_like_title(title: Optional[str]) -> bool:
        """Multi-word directory phrases in the page title."""
        if not title:
            return False
        lowered = title.lower()
        return any(signal in lowered for signal in DIRECTORY_TITLE_SIGNALS)

    @staticmethod
    def check_content(text: Optional[str]) -> Tuple[bool, Optional[str]]:
        """Detect parked and under-construction pages.

        Args:
            text: Visible page text

        Returns:
            (is_valid, rejection reason tag)
        """
        lowered = (text or '').lower()

        for keyword in PARKING_KEYWORDS:
            if keyword in lowered:
                return False, 'parked_domain'

        if len(lowered) < CONSTRUCTION_MAX_LENGTH:
            for keyword in CONSTRUCTION_KEYWORDS:
                if keyword in lowered:
                    return False, 'under_construction'

        return True, None

    @staticmethod
    def is_italian(text: Optional[str]) -> bool:
        """Stop-word heuristic; short texts are given the benefit of the doubt."""
        lowered = f" {(text or '').lower()} "
        if len(lowered.strip()) < LANGUAGE_MIN_LENGTH:
            return True
        score = sum(1 for word in ITALIAN_STOP_WORDS if word in lowered)
        return score >= 2

    @staticmethod
    def is_parked_markup(body: Optional[str]) -> bool:
        """Parking indicators in the first 5 KB of a raw response body."""
        sniff = (body or '')[:5000].lower()
        if len(sniff) < 100:
            return True
        return any(keyword in sniff for keyword in PARKING_KEYWORDS)
