"""
Domain and URL utilities shared by the verifier and the orchestrator.
"""

from typing import Dict, List, Optional
from urllib.parse import urlparse

from siteresolver.core.models import Candidate

SEARCH_ENGINE_MARKERS = ('google.', 'bing.com', 'duckduckgo.com')


def _parse(url: str):
    """Parse a URL, assuming https when no scheme is given."""
    raw = url.strip()
    if not raw.lower().startswith(('http://', 'https://')):
        raw = f'https://{raw}'
    return urlparse(raw)


def registrable_domain(url: Optional[str]) -> Optional[str]:
    """Lower-case host with scheme, port and 'www.' stripped.

    Args:
        url: URL or bare domain

    Returns:
        Host name, or None if the input has no host
    """
    if not url or not url.strip():
        return None
    try:
        host = (_parse(url).hostname or '').lower().rstrip('.')
    except ValueError:
        return None
    if host.startswith('www.'):
        host = host[4:]
    return host or None


def normalize_url(url: Optional[str]) -> Optional[str]:
    """Reduce a URL to its 'scheme://host' root without 'www.'.

    Returns:
        The normalized root, or None for search engines, PDF links and
        unparsable input
    """
    if not url or not url.strip():
        return None
    try:
        parsed = _parse(url)
        host = (parsed.hostname or '').lower().rstrip('.')
    except ValueError:
        return None

    if host.startswith('www.'):
        host = host[4:]
    if not host or '.' not in host:
        return None
    if any(marker in host for marker in SEARCH_ENGINE_MARKERS):
        return None
    if parsed.path.lower().endswith('.pdf'):
        return None

    scheme = 'http' if parsed.scheme == 'http' else 'https'
    return f'{scheme}://{host}'


def navigation_targets(normalized_url: str) -> List[str]:
    """Fetch targets for a normalized root, preferred scheme first.

    'https://a.it' -> https://a.it, https://www.a.it, http://a.it, http://www.a.it
    """
    try:
        parsed = urlparse(normalized_url)
        host = (parsed.hostname or '').lower()
    except ValueError:
        return [normalized_url]
    if not host:
        return [normalized_url]
    if host.startswith('www.'):
        host = host[4:]

    schemes = ['http', 'https'] if parsed.scheme == 'http' else ['https', 'http']
    targets: List[str] = []
    for scheme in schemes:
        for candidate_host in (host, f'www.{host}'):
            target = f'{scheme}://{candidate_host}'
            if target not in targets:
                targets.append(target)
    return targets


def same_site(url: str, other: str) -> bool:
    """Whether two URLs share a registrable domain."""
    first = registrable_domain(url)
    return first is not None and first == registrable_domain(other)


def deduplicate_candidates(candidates: List[Candidate]) -> List[Candidate]:
    """Keep one candidate per registrable domain.

    The highest prior wins (first seen on ties) and survivors keep the
    position of their domain's first appearance, so applying this twice
    gives the same list as applying it once.

    Args:
        candidates: Candidates in source order

    Returns:
        Deduplicated candidates
    """
    best: Dict[str, Candidate] = {}
    order: List[str] = []

    for candidate in candidates:
        key = registrable_domain(candidate.url) or candidate.url
        current = best.get(key)
        if current is None:
            best[key] = candidate
            order.append(key)
        elif candidate.prior > current.prior:
            best[key] = candidate

    return [best[key] for key in order]
