"""
Verification of a single candidate URL against a business record.
"""

import asyncio
import json
import logging
import re
from typing import Awaitable, Callable, List, Optional, Tuple

from siteresolver.cache.verification_cache import VerificationCache
from siteresolver.core.config import DiscoverySettings
from siteresolver.core.exceptions import BlockedError, FetchError, FetchTimeoutError
from siteresolver.core.models import BusinessRecord, Evaluation, PageContent, ReasonCode
from siteresolver.filtering.blocklist import ContentFilter
from siteresolver.filtering.domains import navigation_targets, normalize_url, same_site
from siteresolver.scoring.evaluator import ConfidenceEvaluator

SUPPLEMENTAL_LINK_KEYWORDS = (
    'contatti', 'contattaci', 'contact', 'chi-siamo', 'chi siamo', 'about',
    'azienda', 'dove-siamo', 'dove siamo', 'privacy', 'note-legali', 'note legali',
    'impressum', 'company',
)

LLM_PROMPT = """Sei un analista che verifica siti web aziendali italiani.
Azienda: {name}
Città: {city}
Indirizzo: {address}
Telefono: {phone}
Partita IVA: {tax_id}

URL candidato: {url}
Titolo pagina: {title}
Testo pagina (estratto):
{excerpt}

Il sito è il sito ufficiale di questa azienda?
Rispondi solo con JSON: {{"match": true|false, "confidence": 0.0-1.0}}"""

LLM_EXCERPT_LENGTH = 3000

_VERDICT_WORD = re.compile(r'\b(si|sì|yes|true|no|false)\b', re.IGNORECASE)
_VERDICT_NUMBER = re.compile(r'(?<![\d.])(0(?:\.\d+)?|1(?:\.0+)?)(?![\d.])')


def parse_llm_verdict(text: Optional[str]) -> Optional[Tuple[bool, float]]:
    """Parse a completion into (is_match, confidence).

    JSON answers are preferred; a bare yes/no with an optional number is
    accepted as well. Returns None when nothing usable is found.
    """
    if not text:
        return None

    match = re.search(r'\{.*\}', text, re.DOTALL)
    if match:
        try:
            data = json.loads(match.group(0))
        except ValueError:
            data = None
        if isinstance(data, dict) and 'match' in data:
            try:
                confidence = float(data.get('confidence', 0.0))
            except (TypeError, ValueError):
                confidence = 0.0
            return bool(data['match']), min(1.0, max(0.0, confidence))

    word = _VERDICT_WORD.search(text)
    if not word:
        return None
    is_match = word.group(1).lower() in ('si', 'sì', 'yes', 'true')
    number = _VERDICT_NUMBER.search(text[word.end():])
    confidence = float(number.group(1)) if number else 0.0
    return is_match, confidence


class CandidateVerifier:
    """
    Fetch, filter and score one candidate URL.

    Fetch failures never raise: they come back as failed evaluations with
    confidence 0 and a timeout or blocked reason code. Only definitive
    evaluations are cached; failures are retried on the next call.
    """

    def __init__(self, fetcher, evaluator: Optional[ConfidenceEvaluator] = None,
                 cache: Optional[VerificationCache] = None,
                 content_filter: Optional[ContentFilter] = None,
                 completion=None, settings: Optional[DiscoverySettings] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        """
        Initialize the verifier.

        Args:
            fetcher: PageFetcher implementation
            evaluator: Confidence evaluator
            cache: Shared verification cache
            content_filter: Directory and junk filter
            completion: Optional TextCompletionService for ambiguous scores
            settings: Discovery settings (retries, band, thresholds)
            sleep: Coroutine used for retry backoff
        """
        self.settings = settings or DiscoverySettings()
        self.fetcher = fetcher
        self.evaluator = evaluator or ConfidenceEvaluator(self.settings.scoring_weights)
        self.cache = cache or VerificationCache(self.settings.cache_ttl_seconds, self.settings.cache_max_entries)
        self.content_filter = content_filter or ContentFilter(self.settings.extra_blocklist)
        self.completion = completion
        self._sleep = sleep
        self.logger = logging.getLogger('site_resolver')

    async def verify(self, url: str, record: BusinessRecord) -> Evaluation:
        """Verify a candidate URL.

        Args:
            url: Candidate URL
            record: Business record under resolution

        Returns:
            Evaluation (rejections and fetch failures included)
        """
        if self.content_filter.is_directory_or_social(url):
            return Evaluation.rejected(ReasonCode.REJECTED_DIRECTORY_OR_SOCIAL, 'directory_or_social', url)

        normalized = normalize_url(url)
        if normalized is None:
            return Evaluation.rejected(ReasonCode.REJECTED_NO_MATCHING_SIGNALS, 'invalid_url', url)

        key = VerificationCache.build_key(normalized, record)
        cached = self.cache.get(key)
        if cached is not None:
            self.logger.debug(f"Cache hit for {normalized}")
            return cached

        page, failure = await self._fetch_home(normalized)
        if page is None:
            return failure

        evaluation = await self._evaluate_page(page, record)
        if not evaluation.is_failure:
            self.cache.set(key, evaluation)
        return evaluation

    async def _evaluate_page(self, page: PageContent, record: BusinessRecord) -> Evaluation:
        final_url = page.final_url

        if self.content_filter.is_directory_or_social(final_url):
            return Evaluation.rejected(ReasonCode.REJECTED_DIRECTORY_OR_SOCIAL, 'redirect_to_directory', final_url)
        if self.content_filter.is_directory_like_title(page.title):
            return Evaluation.rejected(ReasonCode.REJECTED_DIRECTORY_OR_SOCIAL, 'directory_title', final_url)

        valid, reason = self.content_filter.check_content(page.visible_text)
        if not valid:
            return Evaluation.rejected(ReasonCode.REJECTED_NO_MATCHING_SIGNALS, reason, final_url)

        evaluation = self.evaluator.evaluate(record, final_url, page.visible_text, page.title,
                                             page_html=page.html)

        if not evaluation.matched_tax_id and evaluation.confidence < self.settings.acceptance_threshold:
            evaluation = await self._with_supplemental_pages(page, record, evaluation)

        if (self.completion is not None and not evaluation.matched_tax_id
                and self.settings.llm_band[0] <= evaluation.confidence < self.settings.llm_band[1]):
            evaluation = await self._adjudicate(page, record, evaluation)

        return evaluation

    async def _fetch_home(self, normalized: str) -> Tuple[Optional[PageContent], Optional[Evaluation]]:
        """Try each navigation target; one timeout retry per verification."""
        retries_left = self.settings.fetch_retries
        timed_out = False

        for target in navigation_targets(normalized):
            attempt = 0
            while True:
                try:
                    return await self.fetcher.fetch(target), None
                except BlockedError as e:
                    self.logger.info(f"Blocked while fetching {target}: {e}")
                    return None, Evaluation.failed(ReasonCode.ERROR_BLOCKED, 'blocked', target)
                except FetchTimeoutError:
                    timed_out = True
                    if retries_left <= 0:
                        break
                    retries_left -= 1
                    delay = self.settings.retry_backoff * (2 ** attempt)
                    attempt += 1
                    self.logger.debug(f"Timeout on {target}, retrying in {delay}s")
                    await self._sleep(delay)
                except FetchError as e:
                    self.logger.debug(f"Fetch failed for {target}: {e}")
                    break
            if timed_out and retries_left <= 0:
                break

        tag = 'fetch_timeout' if timed_out else 'unreachable'
        return None, Evaluation.failed(ReasonCode.ERROR_TIMEOUT_FETCH, tag, normalized)

    def _supplemental_links(self, page: PageContent) -> List[str]:
        links: List[str] = []
        for href, text in page.links:
            if len(links) >= self.settings.supplemental_pages:
                break
            if not href.startswith(('http://', 'https://')) or not same_site(href, page.final_url):
                continue
            haystack = f"{href.lower()} {text}"
            if any(keyword in haystack for keyword in SUPPLEMENTAL_LINK_KEYWORDS):
                if href.rstrip('/') != page.final_url.rstrip('/') and href not in links:
                    links.append(href)
        return links

    async def _with_supplemental_pages(self, page: PageContent, record: BusinessRecord,
                                       evaluation: Evaluation) -> Evaluation:
        """Re-evaluate with contact/about/privacy pages appended to the home text."""
        links = self._supplemental_links(page)
        if not links:
            return evaluation

        texts = [page.visible_text]
        for link in links:
            try:
                extra = await self.fetcher.fetch(link)
            except (FetchError, BlockedError) as e:
                self.logger.debug(f"Supplemental page {link} skipped: {e}")
                continue
            texts.append(extra.visible_text)

        if len(texts) == 1:
            return evaluation

        combined = self.evaluator.evaluate(record, page.final_url, ' '.join(texts), page.title,
                                           page_html=page.html)
        return combined if combined.confidence > evaluation.confidence else evaluation

    async def _adjudicate(self, page: PageContent, record: BusinessRecord,
                          evaluation: Evaluation) -> Evaluation:
        prompt = LLM_PROMPT.format(
            name=record.name,
            city=record.city or '-',
            address=record.address or '-',
            phone=record.phone or '-',
            tax_id=record.tax_id or '-',
            url=page.final_url,
            title=page.title or '-',
            excerpt=page.visible_text[:LLM_EXCERPT_LENGTH],
        )
        try:
            answer = await self.completion.complete(prompt)
        except Exception as e:
            self.logger.warning(f"Text completion failed for {page.final_url}: {e}")
            return evaluation

        verdict = parse_llm_verdict(answer)
        if verdict is None:
            self.logger.warning(f"Unusable completion verdict for {page.final_url}")
            return evaluation

        is_match, llm_confidence = verdict
        return self.evaluator.apply_llm_verdict(
            evaluation, is_match, llm_confidence,
            floor=self.settings.llm_band[0], ceiling=self.settings.llm_ceiling,
        )
