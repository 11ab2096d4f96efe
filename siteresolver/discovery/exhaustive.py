"""
Exhaustive triangulation strategy for the hardest records.
"""

import asyncio
import logging
from collections import OrderedDict
from typing import Awaitable, Callable, Dict, List, Optional
from urllib.parse import urlparse

from siteresolver.core.models import BusinessRecord, Candidate, SearchResult
from siteresolver.filtering.blocklist import ContentFilter
from siteresolver.filtering.domains import normalize_url, registrable_domain
from siteresolver.normalization.identity import tokenize_company_name
from siteresolver.search.queries import QueryBuilder

SearchFunction = Callable[[str], Awaitable[List[SearchResult]]]

NAME_IN_HOST_SCORE = 5
ITALIAN_TLD_SCORE = 2
DIRECTORY_PENALTY = -10
CONTACT_PATH_SCORE = 1
SCORE_SCALE = 20.0
MAX_CONFIDENCE = 0.95

CONTACT_PATH_MARKERS = ('contatti', 'contact', 'chi-siamo', 'about', 'dove-siamo')


class ExhaustiveSearchStrategy:
    """
    High-volume search triangulation.

    Runs every exhaustive query permutation, scores each returned site by
    host/name/TLD/path heuristics, sums the scores per site and returns the
    best sites as candidates whose prior is the scaled score.
    """

    def __init__(self, content_filter: Optional[ContentFilter] = None, query_concurrency: int = 3,
                 max_candidates: int = 3):
        """
        Initialize the strategy.

        Args:
            content_filter: Directory detection
            query_concurrency: Queries in flight at once
            max_candidates: Number of best sites returned
        """
        self.content_filter = content_filter or ContentFilter()
        self.query_concurrency = query_concurrency
        self.max_candidates = max_candidates
        self.logger = logging.getLogger('site_resolver')

    def score_url(self, url: str, record: BusinessRecord) -> int:
        """Heuristic score of one search result URL."""
        score = 0
        host = registrable_domain(url) or ''
        compact_name = ''.join(tokenize_company_name(record.name))

        if len(compact_name) >= 3 and compact_name in host.replace('-', ''):
            score += NAME_IN_HOST_SCORE
        if host.endswith('.it'):
            score += ITALIAN_TLD_SCORE
        if self.content_filter.is_directory_or_social(url):
            score += DIRECTORY_PENALTY

        path = urlparse(url).path.lower()
        if any(marker in path for marker in CONTACT_PATH_MARKERS):
            score += CONTACT_PATH_SCORE
        return score

    async def find(self, record: BusinessRecord, search: SearchFunction) -> List[Candidate]:
        """Triangulate candidates for a record.

        Args:
            record: Business record
            search: Rate-limited search function (never raises on source errors)

        Returns:
            Best candidates, highest score first
        """
        queries = QueryBuilder.build_exhaustive_queries(record)
        self.logger.info(f"Exhaustive search: {len(queries)} queries for '{record.name}'")

        semaphore = asyncio.Semaphore(self.query_concurrency)

        async def run(query: str) -> List[SearchResult]:
            async with semaphore:
                return await search(query)

        batches = await asyncio.gather(*(run(query) for query in queries))

        scores: Dict[str, int] = OrderedDict()
        for results in batches:
            for result in self.content_filter.blocklist.filter_results(results):
                root = normalize_url(result.url)
                if root is None:
                    continue
                scores[root] = scores.get(root, 0) + self.score_url(result.url, record)

        ranked = sorted(
            ((root, score) for root, score in scores.items() if score > 0),
            key=lambda item: -item[1],
        )
        return [
            Candidate(url=root, source_tag='exhaustive', prior=min(score / SCORE_SCALE, MAX_CONFIDENCE))
            for root, score in ranked[:self.max_candidates]
        ]
