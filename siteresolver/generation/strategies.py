"""
Domain generation strategies.

Each strategy turns a pre-computed GenerationContext into domain labels
(no TLD). Strategies are independent and pure; the generator unions and
ranks their output.
"""

import re
import unicodedata
from dataclasses import dataclass
from typing import Dict, List, Optional

from siteresolver.normalization.identity import normalize_text, tokenize, tokenize_company_name

GENERIC_WORDS = frozenset({'azienda', 'servizi', 'service', 'solutions', 'italia', 'official'})

# Extra words dropped from names for domain purposes only
DOMAIN_STOP_WORDS = frozenset({'gmbh', 'gruppo', 'studio'})


@dataclass(frozen=True)
class GenerationContext:
    """Normalized identity shared by all strategies."""
    company_name: str
    name_tokens: List[str]
    clean_name: str
    ultra_clean_name: str
    clean_city: str
    clean_province: str
    category: str
    clean_category: str
    words: List[str]
    first_word: str
    second_word: str

    @classmethod
    def build(cls, name: str, city: Optional[str] = None, province: Optional[str] = None,
              category: Optional[str] = None) -> 'GenerationContext':
        """Pre-compute the normalized forms of a business identity.

        Args:
            name: Company name
            city: City name
            province: Province name or 2-letter code
            category: Free-text sector hint

        Returns:
            GenerationContext
        """
        tokens = [t for t in tokenize_company_name(name) if t not in DOMAIN_STOP_WORDS]
        words = [t for t in tokens if len(t) >= 3 and t not in GENERIC_WORDS]
        if not words:
            # Short brand names ("AB Meccanica") rely on their 2-char tokens
            words = [t for t in tokens if t not in GENERIC_WORDS]

        clean_name = ' '.join(tokens)
        return cls(
            company_name=name or '',
            name_tokens=tokens,
            clean_name=clean_name,
            ultra_clean_name=clean_name.replace(' ', ''),
            clean_city=''.join(tokenize(city)),
            clean_province=''.join(tokenize(province)),
            category=(category or '').lower().strip(),
            clean_category=''.join(tokenize(category)),
            words=words,
            first_word=words[0] if words else '',
            second_word=words[1] if len(words) > 1 else '',
        )


class DomainStrategy:
    """Base class for domain label generation strategies."""

    name = 'strategy'

    def generate(self, ctx: GenerationContext) -> List[str]:
        """Return domain labels (without TLD) for the context."""
        raise NotImplementedError


class BaseStrategy(DomainStrategy):
    """Exact, hyphenated and compact joins of the cleaned name."""

    name = 'base'

    def generate(self, ctx: GenerationContext) -> List[str]:
        labels: List[str] = []
        if not ctx.name_tokens:
            return labels

        labels.append(ctx.ultra_clean_name)
        labels.append('-'.join(ctx.name_tokens))

        if len(ctx.first_word) >= 4:
            labels.append(ctx.first_word)
        if ctx.first_word and ctx.second_word:
            labels.append(f'{ctx.first_word}{ctx.second_word}')
            labels.append(f'{ctx.first_word}-{ctx.second_word}')

        labels.append(f'{ctx.ultra_clean_name}italia')
        if ctx.first_word and ctx.first_word != ctx.ultra_clean_name:
            labels.append(f'{ctx.first_word}italia')

        if len(ctx.clean_category) >= 4:
            labels.append(f'{ctx.ultra_clean_name}{ctx.clean_category}')
            if len(ctx.first_word) >= 4:
                labels.append(f'{ctx.first_word}{ctx.clean_category}')
        return labels


class PhoneticStrategy(DomainStrategy):
    """Italian elisions, ampersands and phonetic simplifications."""

    name = 'phonetic'

    ELISIONS = ('dell', 'all', 'nell', 'sull', 'l', 'd')

    def generate(self, ctx: GenerationContext) -> List[str]:
        raw = self._fold(ctx.company_name)
        variants: List[str] = []
        variants.extend(self._expand_apostrophes(raw))
        variants.extend(self._expand_ampersand(raw))
        variants.extend(self._phonetic_rules(raw))

        labels: List[str] = []
        for variant in variants:
            label = ''.join(tokenize_company_name(variant))
            if len(label) >= 3 and label not in labels:
                labels.append(label)
        return labels

    @staticmethod
    def _fold(name: str) -> str:
        decomposed = unicodedata.normalize('NFD', (name or '').lower())
        folded = ''.join(c for c in decomposed if not unicodedata.combining(c))
        return folded.replace('’', "'")

    def _expand_apostrophes(self, name: str) -> List[str]:
        results: List[str] = []
        for article in self.ELISIONS:
            pattern = re.compile(rf"\b{article}'(\w)")
            if pattern.search(name):
                results.append(pattern.sub(rf'{article}\1', name))
                results.append(pattern.sub(r'\1', name))
        if "'" in name:
            results.append(name.replace("'", ''))
        return results

    @staticmethod
    def _expand_ampersand(name: str) -> List[str]:
        if '&' not in name:
            return []
        return [
            re.sub(r'\s*&\s*c\b\.?\s*', 'ec ', name),
            re.sub(r'\s*&\s*c\b\.?\s*', ' ', name),
            re.sub(r'\s*&\s*', 'e', name),
            re.sub(r'\s*&\s*', '', name),
        ]

    @staticmethod
    def _phonetic_rules(name: str) -> List[str]:
        results: List[str] = []
        simplified = re.sub(r'([a-z])\1', r'\1', name)
        if simplified != name:
            results.append(simplified)
        if 'ph' in name:
            results.append(name.replace('ph', 'f'))
        if 'ck' in name:
            results.append(name.replace('ck', 'k'))
            results.append(name.replace('ck', 'c'))
        return results


class AcronymStrategy(DomainStrategy):
    """Initials and word-skipping joins for multi-word names."""

    name = 'acronym'

    def generate(self, ctx: GenerationContext) -> List[str]:
        labels: List[str] = []
        words = ctx.words
        if len(words) < 2:
            return labels

        acronym = ''.join(word[0] for word in words)
        if 2 <= len(acronym) <= 6:
            labels.append(acronym)
            if ctx.clean_city:
                labels.append(f'{acronym}{ctx.clean_city}')
                labels.append(f'{acronym}-{ctx.clean_city}')
            if len(ctx.clean_province) == 2:
                labels.append(f'{acronym}{ctx.clean_province}')

        if len(words) >= 3:
            first_last = f'{words[0]}{words[-1]}'
            if len(first_last) >= 4:
                labels.append(first_last)
            first_two = f'{words[0]}{words[1]}'
            if len(first_two) >= 4:
                labels.append(first_two)
            last_two = f'{words[-2]}{words[-1]}'
            if len(last_two) >= 4 and last_two != first_two:
                labels.append(last_two)

        initials = ''.join(word[0] for word in words[:-1])
        if initials and len(words[-1]) >= 3:
            labels.append(f'{initials}{words[-1]}')
        return labels


class SectorStrategy(DomainStrategy):
    """Category-derived suffixes from a curated sector table."""

    name = 'sector'

    SECTOR_SUFFIXES: Dict[str, List[str]] = {
        # Construction
        'edilizia': ['costruzioni', 'edilizia', 'ristrutturazioni', 'edil', 'build'],
        'costruzioni': ['costruzioni', 'edilizia', 'edil'],
        'impiantistica': ['impianti', 'impiantistica', 'termoidraulica'],
        'idraulica': ['impianti', 'idraulica', 'termoidraulica'],
        'elettricista': ['impianti', 'elettrica', 'elettricista'],
        # Food
        'ristorazione': ['ristorante', 'trattoria', 'pizzeria', 'food', 'cucina'],
        'alimentari': ['alimentari', 'food', 'gastronomia'],
        'pasticceria': ['pasticceria', 'dolci', 'bakery'],
        'panificio': ['panificio', 'forno', 'bakery'],
        # Manufacturing
        'meccanica': ['meccanica', 'officina', 'meccaniche'],
        'meccatronica': ['meccatronica', 'meccanica', 'automazione'],
        'manifattura': ['manifattura', 'produzione', 'manufacturing'],
        'metalmeccanica': ['metalmeccanica', 'meccanica', 'metal'],
        'plastica': ['plastica', 'plastiche', 'stampaggio'],
        'tessile': ['tessile', 'tessuti', 'textile'],
        # Services
        'consulenza': ['consulting', 'consulenza', 'advisory'],
        'informatica': ['informatica', 'software', 'tech', 'digital'],
        'trasporti': ['trasporti', 'logistica', 'transport', 'spedizioni'],
        'pulizie': ['pulizie', 'cleaning', 'servizi'],
        'giardinaggio': ['giardini', 'verde', 'garden'],
        # Automotive
        'autofficina': ['auto', 'autofficina', 'carrozzeria'],
        'carrozzeria': ['carrozzeria', 'auto', 'car'],
        'autonoleggio': ['noleggio', 'rent', 'autonoleggio'],
        # Health and beauty
        'farmacia': ['farmacia', 'pharma', 'salute'],
        'estetica': ['estetica', 'beauty', 'benessere'],
        'dentista': ['dental', 'dentista', 'odontoiatria'],
        # Real estate and agriculture
        'immobiliare': ['immobiliare', 'casa', 'realestate'],
        'agricoltura': ['agricola', 'aziendaagricola', 'farm'],
    }

    def generate(self, ctx: GenerationContext) -> List[str]:
        labels: List[str] = []
        suffixes = self.find_suffixes(ctx.category)
        base = ctx.ultra_clean_name
        for suffix in suffixes:
            if base.endswith(suffix):
                continue
            if len(base) >= 3:
                labels.append(f'{base}{suffix}')
            if ctx.first_word and ctx.first_word != base and len(ctx.first_word) >= 3:
                labels.append(f'{ctx.first_word}{suffix}')
        return labels

    @classmethod
    def find_suffixes(cls, category: Optional[str]) -> List[str]:
        """Suffixes for a category: direct key match first, then partial match."""
        key = normalize_text(category)
        if not key:
            return []
        if key in cls.SECTOR_SUFFIXES:
            return cls.SECTOR_SUFFIXES[key]
        for sector, suffixes in cls.SECTOR_SUFFIXES.items():
            if sector in key or key in sector:
                return suffixes
        return []


class LocationStrategy(DomainStrategy):
    """City and province combinations."""

    name = 'location'

    def generate(self, ctx: GenerationContext) -> List[str]:
        labels: List[str] = []
        base = ctx.ultra_clean_name
        if len(base) < 3 or not (ctx.clean_city or ctx.clean_province):
            return labels

        if len(ctx.clean_city) >= 2:
            labels.append(f'{base}{ctx.clean_city}')
            labels.append(f'{base}-{ctx.clean_city}')
            labels.append(f'{ctx.clean_city}{base}')
            if len(ctx.first_word) >= 3 and ctx.first_word != base:
                labels.append(f'{ctx.first_word}{ctx.clean_city}')
                labels.append(f'{ctx.first_word}-{ctx.clean_city}')

        if len(ctx.clean_province) >= 2:
            code = ctx.clean_province[:2]
            labels.append(f'{base}{code}')
            labels.append(f'{base}-{code}')
            if len(ctx.clean_province) > 2 and ctx.clean_province != ctx.clean_city:
                labels.append(f'{base}{ctx.clean_province}')
        return labels


def default_strategies() -> List[DomainStrategy]:
    """The built-in strategy set, in registration order."""
    return [BaseStrategy(), PhoneticStrategy(), AcronymStrategy(), SectorStrategy(), LocationStrategy()]
