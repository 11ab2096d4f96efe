"""
Search query construction for the discovery layers.

Golden queries use exclusion operators and anchors (tax ID, phone,
address, legal footer) that push the official site to the top of the
results; each carries an expected precision used to rank candidates.
"""

import re
from dataclasses import dataclass
from typing import List, Optional

from siteresolver.core.models import BusinessRecord, IdentityResult
from siteresolver.generation.generator import CandidateGenerator
from siteresolver.normalization.identity import normalize_phone, normalize_tax_id, tokenize_company_name

EXCLUSION_SITES = (
    'facebook.com', 'instagram.com', 'paginegialle.it', 'linkedin.com',
    'twitter.com', 'paginebianche.it', 'yelp.it', 'kompass.com',
    'europages.com', 'tripadvisor.it', 'subito.it', 'infojobs.it',
    'indeed.com', 'virgilio.it',
)


@dataclass(frozen=True)
class GoldenQuery:
    """A search query with its kind and expected precision (0-1)."""
    query: str
    kind: str
    expected_precision: float


def _squash(query: str) -> str:
    """Collapse whitespace and drop empty quoted phrases."""
    query = query.replace('""', '')
    return re.sub(r'\s+', ' ', query).strip()


def _unique(queries: List[GoldenQuery]) -> List[GoldenQuery]:
    seen = set()
    result = []
    for query in queries:
        if query.query and query.query not in seen:
            seen.add(query.query)
            result.append(query)
    return result


def _clean_name(name: str) -> str:
    """Company name without legal suffixes, for query phrases."""
    tokens = tokenize_company_name(name)
    return ' '.join(tokens) if tokens else name.strip()


class QueryBuilder:
    """Builds the query sets used by each discovery layer."""

    @staticmethod
    def build_golden_queries(record: BusinessRecord) -> List[GoldenQuery]:
        """Ranked golden queries for a record, most precise first.

        Args:
            record: Business record

        Returns:
            GoldenQuery list sorted by expected precision (descending)
        """
        name = record.name.strip()
        city = record.city or ''
        queries: List[GoldenQuery] = []

        tax_id = normalize_tax_id(record.tax_id)
        if len(tax_id) == 11:
            queries.append(GoldenQuery(f'"P.IVA {tax_id}"', 'tax_id_anchor', 0.95))
            queries.append(GoldenQuery(f'"{tax_id}" site:.it', 'tax_id_anchor', 0.90))

        exclusions = ' '.join(f'-site:{site}' for site in EXCLUSION_SITES)
        queries.append(GoldenQuery(_squash(f'"{name}" "{city}" {exclusions}'), 'exclusionary', 0.80))
        queries.append(GoldenQuery(_squash(f'intitle:"{name}" "contatti" "{city}"'), 'contact_vector', 0.78))
        queries.append(GoldenQuery(
            _squash(f'"{name}" "{city}" "privacy policy" OR "note legali"'), 'legal_footer', 0.72))

        phone = record.phone or ''
        if len(normalize_phone(phone)) >= 7:
            queries.append(GoldenQuery(f'"{phone.strip()}" "{name}"', 'phone_anchor', 0.82))

        address = (record.address or '').strip()
        if len(address) > 5:
            queries.append(GoldenQuery(_squash(f'"{address}" "{city}" "{name}"'), 'address_anchor', 0.75))

        queries.append(GoldenQuery(_squash(f'site:.it "{name}" "{city}"'), 'it_domain', 0.65))
        queries.append(GoldenQuery(_squash(f'"{name}" {city} sito ufficiale'), 'standard', 0.55))

        # Stable sort keeps insertion order between equal precisions
        return sorted(_unique(queries), key=lambda q: -q.expected_precision)

    @staticmethod
    def build_base_queries(record: BusinessRecord,
                           generator: Optional[CandidateGenerator] = None) -> List[GoldenQuery]:
        """Two cheap queries: the cleaned name with its city, and the top guessed domain.

        Args:
            record: Business record
            generator: Generator whose best-ranked domain is searched for

        Returns:
            GoldenQuery list (at most two)
        """
        clean = _clean_name(record.name)
        city = record.city or ''
        queries = [GoldenQuery(_squash(f'"{clean}" {city} sito ufficiale'), 'base_name', 0.55)]

        generator = generator or CandidateGenerator()
        domains = generator.generate_domains(record.name, record.city, record.province, record.category)
        if domains:
            queries.append(GoldenQuery(f'"{domains[0]}"', 'base_domain', 0.60))
        return _unique(queries)

    @staticmethod
    def build_identity_queries(identity: IdentityResult, record: BusinessRecord) -> List[GoldenQuery]:
        """High-precision queries anchored on a resolved legal identity.

        Tax-ID anchored queries come first, then legal-name + geo queries.
        """
        queries: List[GoldenQuery] = []
        tax_id = normalize_tax_id(identity.tax_id)
        if tax_id:
            queries.extend([
                GoldenQuery(f'"{tax_id}" site:.it', 'tax_id_anchor', 0.95),
                GoldenQuery(f'"{tax_id}" (contatti OR "contattaci")', 'tax_id_anchor', 0.92),
                GoldenQuery(f'"{tax_id}" ("privacy policy" OR "note legali")', 'tax_id_anchor', 0.90),
            ])

        legal_name = identity.legal_name.strip() or record.name.strip()
        queries.append(GoldenQuery(_squash(f'"{legal_name}" "{record.city or ""}"'), 'legal_name_geo', 0.80))
        if record.address:
            queries.append(GoldenQuery(_squash(f'"{legal_name}" "{record.address}"'), 'legal_name_geo', 0.78))
        queries.append(GoldenQuery(f'"{legal_name}" "sito ufficiale"', 'legal_name_geo', 0.70))
        queries.append(GoldenQuery(f'"{legal_name}" ("P. IVA" OR "Partita IVA")', 'legal_name_geo', 0.70))
        return _unique(queries)

    @staticmethod
    def build_exhaustive_queries(record: BusinessRecord) -> List[str]:
        """At least fifteen query permutations for the exhaustive layer.

        Args:
            record: Business record

        Returns:
            Distinct query strings
        """
        name = record.name.strip()
        clean = _clean_name(name)
        city = record.city or ''
        province = record.province or ''
        category = record.category or ''
        tax_id = normalize_tax_id(record.tax_id)
        phone = (record.phone or '').strip()

        raw = [
            # Standard variations
            f'"{clean}" {city} sito ufficiale',
            f'"{clean}" {province} website',
            f'{clean} {city} contatti',
            f'{clean} {city} "chi siamo"',
            f'"{name}" {city}',
            f'"{clean}" {city} azienda',
            f'{clean} {category} {city}',
            # Operators
            f'site:it "{clean}" {city}',
            f'intitle:"{clean}" {city}',
            # Legal pages
            f'"{clean}" "cookie policy"',
            f'"{clean}" "privacy policy"',
            f'"{clean}" "partita iva"',
            f'"{clean}" {city} "note legali"',
            f'"{clean}" {province} contatti',
            # Contact details usually sit on the official site's footer
            f'"{clean}" {city} telefono',
            f'"{clean}" {city} email',
            f'"{clean}" sede {city}',
        ]
        if len(tax_id) == 11:
            raw.append(f'{tax_id} sito')
            raw.append(f'"P.IVA {tax_id}"')
        if phone:
            raw.append(f'"{phone}" sito')

        queries: List[str] = []
        for query in raw:
            squashed = _squash(query)
            if squashed and squashed not in queries:
                queries.append(squashed)
        return queries
