"""
Candidate generator: unions strategy output and ranks candidate domains.
"""

import logging
import re
from typing import List, Optional, Sequence, Set, Tuple

from siteresolver.generation.strategies import DomainStrategy, GenerationContext, default_strategies

DEFAULT_TLDS = ('.it', '.com', '.eu')
MAX_CANDIDATES = 150
MIN_LABEL_LENGTH = 3
MAX_LABEL_LENGTH = 63


def sanitize_label(label: str) -> Optional[str]:
    """Reduce a label to [a-z0-9-] with single, inner hyphens.

    Returns:
        The label, or None if it is too short or too long
    """
    safe = re.sub(r'[^a-z0-9-]', '', (label or '').lower())
    safe = re.sub(r'-+', '-', safe).strip('-')
    if len(safe) < MIN_LABEL_LENGTH or len(safe) > MAX_LABEL_LENGTH:
        return None
    return safe


class CandidateGenerator:
    """
    Synthesizes plausible official-website URLs from a business identity.

    Every strategy contributes labels independently; a failing strategy is
    logged and contributes nothing. Output is deterministic and ranked
    shortest-and-cleanest first: fewer hyphens, preferred TLD, shorter domain.
    """

    def __init__(self, strategies: Optional[Sequence[DomainStrategy]] = None,
                 tlds: Sequence[str] = DEFAULT_TLDS, include_net: bool = False,
                 max_candidates: int = MAX_CANDIDATES):
        """
        Initialize the generator.

        Args:
            strategies: Strategies to run (defaults to the built-in set)
            tlds: TLDs in preference order
            include_net: Also emit '.net' domains
            max_candidates: Maximum number of URLs returned by generate()
        """
        if max_candidates <= 0:
            raise ValueError("Max candidates must be positive")

        self.strategies = list(strategies) if strategies is not None else default_strategies()
        tld_list = [tld if tld.startswith('.') else f'.{tld}' for tld in tlds]
        if include_net and '.net' not in tld_list:
            tld_list.append('.net')
        self.tlds = tuple(tld_list)
        self.max_candidates = max_candidates
        self.logger = logging.getLogger('site_resolver')

    def generate_labels(self, ctx: GenerationContext) -> Set[str]:
        """Union of sanitized labels from every strategy."""
        labels: Set[str] = set()
        for strategy in self.strategies:
            try:
                produced = strategy.generate(ctx)
            except Exception as e:
                self.logger.warning(f"Generation strategy '{strategy.name}' failed: {e}")
                continue
            for label in produced:
                safe = sanitize_label(label)
                if safe:
                    labels.add(safe)
        return labels

    def _rank_key(self, domain: str) -> Tuple[int, int, int, str]:
        tld_rank = len(self.tlds)
        for index, tld in enumerate(self.tlds):
            if domain.endswith(tld):
                tld_rank = index
                break
        return domain.count('-'), tld_rank, len(domain), domain

    def generate_domains(self, name: str, city: Optional[str] = None, province: Optional[str] = None,
                         category: Optional[str] = None) -> List[str]:
        """Ranked bare domains (label + TLD).

        Args:
            name: Company name
            city: City name
            province: Province name or code
            category: Free-text sector hint

        Returns:
            Domains ordered by (hyphens, TLD preference, length, name)
        """
        ctx = GenerationContext.build(name, city, province, category)
        labels = self.generate_labels(ctx)
        domains = {f'{label}{tld}' for label in labels for tld in self.tlds}
        return sorted(domains, key=self._rank_key)

    def generate(self, name: str, city: Optional[str] = None, province: Optional[str] = None,
                 category: Optional[str] = None) -> List[str]:
        """Ranked candidate URLs, capped at max_candidates.

        Each domain yields 'https://{domain}' then 'https://www.{domain}'.

        Returns:
            List of https URLs
        """
        urls: List[str] = []
        for domain in self.generate_domains(name, city, province, category):
            urls.append(f'https://{domain}')
            urls.append(f'https://www.{domain}')
            if len(urls) >= self.max_candidates:
                break
        return urls[:self.max_candidates]
