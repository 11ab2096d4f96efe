"""
Confidence evaluation of a fetched page against a business record.
"""

import re
from dataclasses import replace
from typing import Dict, List, Optional, Set, Tuple

from siteresolver.core.exceptions import ScoringError
from siteresolver.core.models import BusinessRecord, Evaluation, MatchSignals
from siteresolver.filtering.blocklist import ContentFilter
from siteresolver.filtering.domains import registrable_domain
from siteresolver.normalization.identity import (
    address_tokens,
    contains_word,
    extract_phones,
    is_plausible_tax_id,
    match_phone,
    normalize_tax_id,
    normalize_text,
    tokenize,
    tokenize_company_name,
)

DEFAULT_WEIGHTS: Dict[str, float] = {
    "base": 0.05,
    "phone": 0.65,
    "name_high": 0.26,        # name coverage >= 0.85
    "name_mid": 0.20,         # >= 0.65
    "name_low": 0.12,         # >= 0.40
    "city": 0.08,
    "address_high": 0.18,     # address coverage >= 0.80
    "address_mid": 0.14,      # >= 0.65
    "address_low": 0.08,      # >= 0.45
    "domain_high": 0.20,      # domain coverage >= 0.80
    "domain_mid": 0.10,       # >= 0.50
    "domain_low": 0.05,       # >= 0.30
    "contact_keywords": 0.08,
    "og_image": 0.05,
    "title_match": 0.10,
    "synergy": 0.06,
    "convergence": 0.10,
    "short_text_penalty": 0.10,
    "foreign_penalty": 0.03,
    "phone_only_cap": 0.68,
    "hard_cap": 0.35,
}

CONTACT_KEYWORDS = (
    'contatti', 'contattaci', 'contattami',
    'chi siamo', 'dove siamo', 'about us',
    'privacy', 'cookie policy', 'note legali',
    'impressum', 'mappa del sito', 'sitemap',
)

GOLDEN_CONFIDENCE = 1.0
MAX_RULE_CONFIDENCE = 0.99
SHORT_TEXT_LENGTH = 160

_STANDALONE_TAX_ID = re.compile(r'(?<!\d)(\d{11})(?!\d)')
_LABELED_TAX_ID = re.compile(
    r'\b(?:P\.?\s*I\.?\s*V\.?\s*A\.?|Partita\s*Iva|VAT|Tax\s*ID|'
    r'C\.?\s*F\.?\s*(?:/|e)\s*P\.?\s*I\.?\s*V\.?\s*A\.?)'
    r'[\s:.\-]*(?:IT)?\s?(\d{11})(?!\d)',
    re.IGNORECASE,
)
_PREFIXED_TAX_ID = re.compile(r'\bIT\s?(\d{11})(?!\d)')
_OG_IMAGE = re.compile(
    r'<meta\s+[^>]*property=["\']og:image["\'][^>]*content=["\']([^"\']+)["\']'
    r'|<meta\s+[^>]*content=["\']([^"\']+)["\'][^>]*property=["\']og:image["\']',
    re.IGNORECASE,
)


def extract_tax_ids(text: Optional[str]) -> Set[str]:
    """Tax ID candidates found in page text.

    Standalone 11-digit numbers must pass the province-office plausibility
    check; labelled ("P.IVA", "Partita IVA", "VAT"...) and IT-prefixed
    forms are taken as-is.
    """
    if not text:
        return set()
    found = {m for m in _STANDALONE_TAX_ID.findall(text) if is_plausible_tax_id(m)}
    found.update(_LABELED_TAX_ID.findall(text))
    found.update(_PREFIXED_TAX_ID.findall(text))
    return found


class ConfidenceEvaluator:
    """
    Score a candidate page against a business record.

    Pure and deterministic: the result depends only on the arguments and the
    configured weights. The confidence (0-1) expresses how likely the page is
    the business's official website. A tax ID match is the golden signal and
    short-circuits all other scoring with confidence 1.0; rule-based scores
    never exceed 0.99.
    """

    def __init__(self, weights: Optional[Dict[str, float]] = None):
        """
        Initialize the evaluator.

        Args:
            weights: Partial overrides of DEFAULT_WEIGHTS

        Raises:
            ScoringError: If an override names an unknown weight
        """
        self.weights = dict(DEFAULT_WEIGHTS)
        for key, value in (weights or {}).items():
            if key not in DEFAULT_WEIGHTS:
                raise ScoringError(f"Unknown scoring weight: {key}")
            self.weights[key] = float(value)

    def evaluate(self, record: BusinessRecord, url: str, page_text: str, page_title: str = "",
                 page_html: Optional[str] = None) -> Evaluation:
        """Evaluate a page against a business record.

        Args:
            record: Business record under resolution
            url: Candidate (final) URL of the page
            page_text: Visible page text
            page_title: Page <title>
            page_html: Raw markup, used for the OpenGraph image signal

        Returns:
            Evaluation with confidence, reason tags and raw signals
        """
        page_text = page_text or ""
        page_title = page_title or ""

        matched_tax_id = self._match_tax_id(record, page_text)
        if matched_tax_id:
            return Evaluation(
                confidence=GOLDEN_CONFIDENCE,
                reason_tags=("tax_id_match",),
                reason="tax ID match (golden signal)",
                matched_tax_id=matched_tax_id,
                signals=MatchSignals(tax_id_match=True, domain_coverage=self.domain_coverage(record.name, url)),
                final_url=url,
            )

        normalized_text = normalize_text(page_text)
        normalized_title = normalize_text(page_title)

        matched_phone = match_phone(record.phone, extract_phones(page_text))
        signals = MatchSignals(
            phone_match=matched_phone is not None,
            name_coverage=self.name_coverage(record.name, normalized_text),
            title_coverage=self.name_coverage(record.name, normalized_title),
            city_match=self._city_match(record.city, normalized_text),
            address_coverage=self._address_coverage(record.address, normalized_text),
            domain_coverage=self.domain_coverage(record.name, url),
            has_contact_keywords=self._has_contact_keywords(normalized_text, normalized_title),
            og_image_match=self._og_image_match(page_html, record.name),
            appears_italian=ContentFilter.is_italian(page_text),
        )

        confidence, tags = self._combine(signals, len(normalized_text))
        return Evaluation(
            confidence=confidence,
            reason_tags=tuple(tags),
            reason=", ".join(tag.replace("_", " ") for tag in tags),
            matched_phone=matched_phone,
            signals=signals,
            final_url=url,
        )

    def _combine(self, s: MatchSignals, text_length: int) -> Tuple[float, List[str]]:
        """Weighted combination of signals, caps and clamping."""
        w = self.weights
        tags: List[str] = []
        confidence = w["base"]

        if s.phone_match:
            confidence += w["phone"]
            tags.append("phone_match")

        if s.name_coverage >= 0.85:
            confidence += w["name_high"]
            tags.append("strong_name_match")
        elif s.name_coverage >= 0.65:
            confidence += w["name_mid"]
            tags.append("strong_name_match")
        elif s.name_coverage >= 0.4:
            confidence += w["name_low"]
            tags.append("partial_name_match")

        if s.city_match:
            confidence += w["city"]
            tags.append("city_match")

        if s.address_coverage >= 0.8:
            confidence += w["address_high"]
            tags.append("address_match")
        elif s.address_coverage >= 0.65:
            confidence += w["address_mid"]
            tags.append("address_match")
        elif s.address_coverage >= 0.45:
            confidence += w["address_low"]
            tags.append("address_match")

        if s.domain_coverage >= 0.8:
            confidence += w["domain_high"]
            tags.append("domain_match")
        elif s.domain_coverage >= 0.5:
            confidence += w["domain_mid"]
            tags.append("domain_match")
        elif s.domain_coverage >= 0.3:
            confidence += w["domain_low"]
            tags.append("partial_domain_match")

        if s.has_contact_keywords:
            confidence += w["contact_keywords"]
            tags.append("contact_keywords")

        if s.og_image_match:
            confidence += w["og_image"]
            tags.append("og_image_match")

        title_match = s.title_coverage >= 0.6
        if title_match:
            confidence += w["title_match"]
            tags.append("title_match")

        if s.domain_coverage >= 0.8 and s.name_coverage >= 0.4:
            confidence += w["synergy"]
            tags.append("synergy")

        convergence = sum([
            s.address_coverage >= 0.6,
            s.domain_coverage >= 0.7,
            title_match,
            s.city_match,
        ])
        if convergence >= 3:
            confidence += w["convergence"]
            tags.append("convergence")

        if not tags:
            tags.append("weak_evidence")

        # Landing pages that are just a logo and a title are not penalized
        if (text_length < SHORT_TEXT_LENGTH and s.name_coverage < 0.6
                and s.domain_coverage < 0.6 and s.title_coverage < 0.8):
            confidence -= w["short_text_penalty"]
            tags.append("short_text")

        if not s.appears_italian:
            confidence -= w["foreign_penalty"]
            tags.append("foreign_language")

        if s.phone_match and s.name_coverage < 0.25 and s.domain_coverage < 0.25:
            if confidence > w["phone_only_cap"]:
                confidence = w["phone_only_cap"]
                tags.append("phone_only_cap")

        # Hard cap is applied last: weak signals never add up to a strong match
        if not s.phone_match and s.name_coverage < 0.4 and s.domain_coverage < 0.5:
            if confidence > w["hard_cap"]:
                confidence = w["hard_cap"]
                tags.append("hard_cap")

        confidence = min(MAX_RULE_CONFIDENCE, max(0.0, confidence))
        return round(confidence, 4), tags

    @staticmethod
    def _match_tax_id(record: BusinessRecord, page_text: str) -> Optional[str]:
        target = normalize_tax_id(record.tax_id)
        # Truncated or partial IDs would match house numbers and postcodes
        if len(target) != 11 or not page_text:
            return None
        if target in extract_tax_ids(page_text):
            return target
        # The record's own ID as a stand-alone token, optionally IT-prefixed
        if re.search(rf'(?<!\d){re.escape(target)}(?!\d)', page_text):
            return target
        return None

    @staticmethod
    def name_coverage(name: str, text: str) -> float:
        """Fraction of name tokens present in the text.

        Tokens match as whole words; tokens of 4+ characters also match as
        substrings (compound words such as "rossiimpianti").

        Args:
            name: Company name
            text: Text to search (normalized here if it is not already)

        Returns:
            Coverage in [0, 1]
        """
        tokens = tokenize_company_name(name)
        if not tokens:
            return 0.0
        normalized = normalize_text(text)
        matched = 0
        for token in tokens:
            if contains_word(normalized, token):
                matched += 1
            elif len(token) >= 4 and token in normalized:
                matched += 1
        return round(matched / len(tokens), 4)

    @staticmethod
    def domain_coverage(name: str, url: str) -> float:
        """Fraction of name tokens found in the candidate's host name.

        The compact name (tokens joined) inside the host scores 1.0.
        """
        host = registrable_domain(url)
        if not host:
            return 0.0
        compact_host = re.sub(r'[^a-z0-9]', '', host)
        tokens = tokenize_company_name(name)
        if not tokens:
            return 0.0

        compact_name = ''.join(tokens)
        if len(compact_name) >= 3 and compact_name in compact_host:
            return 1.0
        matched = sum(1 for token in tokens if token in compact_host)
        return round(matched / len(tokens), 4)

    @staticmethod
    def _city_match(city: Optional[str], normalized_text: str) -> bool:
        tokens = [token for token in tokenize(city) if len(token) >= 3]
        if not tokens:
            return False
        return all(contains_word(normalized_text, token) for token in tokens)

    @staticmethod
    def _address_coverage(address: Optional[str], normalized_text: str) -> float:
        tokens = address_tokens(address)
        if not tokens:
            return 0.0
        matched = sum(1 for token in tokens if contains_word(normalized_text, token))
        return round(matched / len(tokens), 4)

    @staticmethod
    def _has_contact_keywords(normalized_text: str, normalized_title: str) -> bool:
        bucket = f"{normalized_title} {normalized_text}"
        return any(keyword in bucket for keyword in CONTACT_KEYWORDS)

    @staticmethod
    def _og_image_match(page_html: Optional[str], name: str) -> bool:
        if not page_html:
            return False
        match = _OG_IMAGE.search(page_html)
        if not match:
            return False
        image_url = (match.group(1) or match.group(2) or '').lower()
        compact_name = ''.join(tokenize_company_name(name))
        return len(compact_name) >= 3 and compact_name in re.sub(r'[^a-z0-9]', '', image_url)

    def apply_llm_verdict(self, evaluation: Evaluation, is_match: bool, llm_confidence: float,
                          floor: float = 0.20, ceiling: float = 0.90) -> Evaluation:
        """Fold a text-completion verdict into a rule-based evaluation.

        The verdict is ignored when negative or when the rule-based score is
        below the floor; it never lowers a score and never lifts it above
        the ceiling.

        Args:
            evaluation: Rule-based evaluation
            is_match: Whether the model judged the page to be the official site
            llm_confidence: Model confidence (0-1)
            floor: Minimum rule-based confidence for the verdict to count
            ceiling: Highest confidence the verdict can produce

        Returns:
            The original evaluation or an adjudicated copy
        """
        if not is_match or evaluation.rejection is not None or evaluation.confidence < floor:
            return evaluation

        proposed = min(ceiling, MAX_RULE_CONFIDENCE, max(0.0, float(llm_confidence)))
        if proposed <= evaluation.confidence:
            return evaluation

        tags = evaluation.reason_tags + ("llm_adjudicated",)
        return replace(
            evaluation,
            confidence=round(proposed, 4),
            reason_tags=tags,
            reason=f"{evaluation.reason}, llm adjudicated" if evaluation.reason else "llm adjudicated",
            llm_adjudicated=True,
        )
