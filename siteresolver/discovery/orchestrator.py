"""
Layered discovery of a business's official website.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence, Set, Union

from siteresolver.cache.verification_cache import VerificationCache
from siteresolver.core.config import DiscoverySettings
from siteresolver.core.exceptions import BlockedError, ConfigurationError, RateLimitError, SearchAPIError
from siteresolver.core.models import (
    BusinessRecord,
    Candidate,
    DiscoveryResult,
    DiscoveryStatus,
    Evaluation,
    IdentityResult,
    ReasonCode,
    SearchResult,
)
from siteresolver.core.modes import DiscoveryMode, ModeProfile, effective_threshold, get_profile
from siteresolver.discovery.collaborators import (
    AlwaysReachable,
    NullIdentityResolver,
    NullPhoneLookup,
    NullPresenceFallback,
)
from siteresolver.discovery.exhaustive import ExhaustiveSearchStrategy
from siteresolver.discovery.verifier import CandidateVerifier
from siteresolver.filtering.blocklist import ContentFilter
from siteresolver.filtering.domains import deduplicate_candidates, registrable_domain
from siteresolver.generation.generator import CandidateGenerator
from siteresolver.normalization.identity import email_domain, normalize_tax_id
from siteresolver.scoring.evaluator import ConfidenceEvaluator
from siteresolver.search.queries import GoldenQuery, QueryBuilder
from siteresolver.search.rate_limiter import AdaptiveRateLimiter

EMAIL_DOMAIN_PRIOR = 0.85
DOMAIN_GUESS_PRIOR = 0.70
TAX_ID_SEARCH_PRIOR = 0.92
PHONE_DIRECTORY_PRIOR = 0.90
EXISTING_URL_PRIOR = 0.50
PRESENCE_PRIOR = 0.50
GOLDEN_QUERY_LIMIT = 5
DOMAIN_COVERAGE_WEIGHT = 0.25
DNS_CONCURRENCY = 10


class DiscoveryLayer(str, Enum):
    """Waterfall layers, in execution order."""
    PRE_CHECK = "PRE_CHECK"
    IDENTITY_CANDIDATES = "IDENTITY_CANDIDATES"
    CHEAP_SEARCH = "CHEAP_SEARCH"
    SWARM_SEARCH = "SWARM_SEARCH"
    EXHAUSTIVE_FALLBACK = "EXHAUSTIVE_FALLBACK"
    EXHAUSTED = "EXHAUSTED"


@dataclass
class _Verified:
    candidate: Candidate
    evaluation: Evaluation
    layer: DiscoveryLayer
    order: int


@dataclass
class _RunState:
    """Call-local bookkeeping of one discover() run."""
    record: BusinessRecord
    profile: ModeProfile
    threshold: float
    layer: DiscoveryLayer = DiscoveryLayer.PRE_CHECK
    identity: Optional[IdentityResult] = None
    verified: List[_Verified] = field(default_factory=list)
    seen_domains: Set[str] = field(default_factory=set)
    released_domains: Set[str] = field(default_factory=set)
    candidates_seen: int = 0
    directory_domains: Set[str] = field(default_factory=set)
    search_calls: int = 0
    rate_limited_calls: int = 0

    def record_evaluation(self, candidate: Candidate, evaluation: Evaluation, order: int) -> _Verified:
        entry = _Verified(candidate, evaluation, self.layer, order)
        self.verified.append(entry)
        return entry

    def best(self) -> Optional[_Verified]:
        """Confidence descending, then prior descending, then candidate order."""
        if not self.verified:
            return None
        return min(self.verified, key=lambda v: (-v.evaluation.confidence, -v.candidate.prior, v.order))


class DiscoveryOrchestrator:
    """
    Resolve the official website of a business record through a waterfall
    of increasingly expensive layers.

    Collaborators are injected; the optional ones default to no-op
    implementations. The rate limiter and verification cache may be shared
    between orchestrators and concurrent discover() calls.
    """

    def __init__(self, fetcher, search_providers: Optional[Sequence] = None,
                 identity_resolver=None, completion=None, reachability=None,
                 phone_lookup=None, presence_fallback=None,
                 exhaustive_strategy: Optional[ExhaustiveSearchStrategy] = None,
                 settings: Optional[DiscoverySettings] = None,
                 rate_limiter: Optional[AdaptiveRateLimiter] = None,
                 cache: Optional[VerificationCache] = None,
                 generator: Optional[CandidateGenerator] = None,
                 content_filter: Optional[ContentFilter] = None,
                 evaluator: Optional[ConfidenceEvaluator] = None):
        """
        Initialize the orchestrator.

        Args:
            fetcher: PageFetcher implementation
            search_providers: SearchProvider implementations (queried in order)
            identity_resolver: Optional IdentityResolver
            completion: Optional TextCompletionService
            reachability: Optional ReachabilityChecker
            phone_lookup: Optional DirectoryPhoneLookup
            presence_fallback: Optional PresenceFallback
            exhaustive_strategy: Strategy of the exhaustive layer
            settings: Discovery settings
            rate_limiter: Shared search rate limiter
            cache: Shared verification cache
            generator: Domain candidate generator
            content_filter: Directory and junk filter
            evaluator: Confidence evaluator
        """
        self.settings = settings or DiscoverySettings()
        self.search_providers = list(search_providers or [])
        self.identity_resolver = identity_resolver or NullIdentityResolver()
        self.reachability = reachability or AlwaysReachable()
        self.phone_lookup = phone_lookup or NullPhoneLookup()
        self.presence_fallback = presence_fallback or NullPresenceFallback()
        self.content_filter = content_filter or ContentFilter(self.settings.extra_blocklist)
        self.exhaustive_strategy = exhaustive_strategy or ExhaustiveSearchStrategy(self.content_filter)
        self.rate_limiter = rate_limiter or AdaptiveRateLimiter(
            min_delay=self.settings.rate_min_delay,
            max_delay=self.settings.rate_max_delay,
            max_wait=self.settings.rate_max_wait,
        )
        self.cache = cache or VerificationCache(self.settings.cache_ttl_seconds, self.settings.cache_max_entries)
        self.generator = generator or CandidateGenerator()
        self.evaluator = evaluator or ConfidenceEvaluator(self.settings.scoring_weights)
        self.verifier = CandidateVerifier(
            fetcher,
            evaluator=self.evaluator,
            cache=self.cache,
            content_filter=self.content_filter,
            completion=completion,
            settings=self.settings,
        )
        self.logger = logging.getLogger('site_resolver')

    async def verify(self, url: str, record: BusinessRecord) -> Evaluation:
        """Verify a single candidate URL (lower-level entry point)."""
        return await self.verifier.verify(url, record)

    async def discover(self, record: BusinessRecord,
                       mode: Union[str, DiscoveryMode] = DiscoveryMode.DEEP) -> DiscoveryResult:
        """Run the discovery waterfall for a record.

        Never raises: configuration problems, timeouts and internal errors
        are reported through the result's status and reason code.

        Args:
            record: Business record under resolution
            mode: Discovery mode (name or enum member)

        Returns:
            DiscoveryResult
        """
        try:
            profile = get_profile(mode)
        except ConfigurationError as e:
            self.logger.error(f"Invalid discovery configuration: {e}")
            return DiscoveryResult(
                url=None, status=DiscoveryStatus.ERROR, confidence=0.0, method='none',
                layer=DiscoveryLayer.PRE_CHECK.value, reason_code=ReasonCode.ERROR_CONFIG_INVALID,
                error=str(e),
            )

        state = _RunState(
            record=record,
            profile=profile,
            threshold=effective_threshold(self.settings.acceptance_threshold, profile),
        )
        self.logger.info(
            f"Discovering '{record.name}' in {DiscoveryMode.parse(mode).value} mode "
            f"(threshold {state.threshold:.2f}, cap {profile.max_candidates})"
        )

        try:
            return await asyncio.wait_for(self._run(state), timeout=self.settings.call_timeout)
        except asyncio.TimeoutError:
            self.logger.warning(
                f"Discovery of '{record.name}' timed out after {self.settings.call_timeout}s "
                f"in {state.layer.value}"
            )
            return self._timeout_result(state)
        except Exception as e:
            self.logger.error(f"Discovery of '{record.name}' failed in {state.layer.value}: {e}", exc_info=True)
            return DiscoveryResult(
                url=None, status=DiscoveryStatus.ERROR, confidence=0.0, method='none',
                layer=state.layer.value, reason_code=ReasonCode.ERROR_INTERNAL,
                error=f"{type(e).__name__}: {e}",
            )

    async def _run(self, state: _RunState) -> DiscoveryResult:
        layers = [
            (DiscoveryLayer.PRE_CHECK, self._pre_check),
            (DiscoveryLayer.IDENTITY_CANDIDATES, self._identity_candidates),
            (DiscoveryLayer.CHEAP_SEARCH, self._cheap_search),
            (DiscoveryLayer.SWARM_SEARCH, self._swarm_search),
        ]
        if state.profile.run_exhaustive:
            layers.append((DiscoveryLayer.EXHAUSTIVE_FALLBACK, self._exhaustive_fallback))

        for layer, step in layers:
            state.layer = layer
            self.logger.info(f"[{state.record.name}] entering {layer.value}")
            accepted = await step(state)
            if accepted is not None:
                self.logger.info(
                    f"[{state.record.name}] found {accepted.evaluation.final_url or accepted.candidate.url} "
                    f"in {layer.value} ({accepted.evaluation.confidence:.2f})"
                )
                return self._found(accepted, state)

        state.layer = DiscoveryLayer.EXHAUSTED
        return self._exhausted_result(state)

    # Layers

    async def _pre_check(self, state: _RunState) -> Optional[_Verified]:
        url = state.record.existing_url
        if not url:
            return None
        if self.content_filter.is_directory_or_social(url):
            self._skip_directory(state, url)
            self.logger.info(f"Existing URL {url} is a directory or social profile")
            return None

        candidate = Candidate(url=url, source_tag='existing_url', prior=EXISTING_URL_PRIOR)
        verified = await self._verify_candidates(state, [candidate], state.record)
        return self._accept(verified, self.settings.min_valid_threshold)

    async def _identity_candidates(self, state: _RunState) -> Optional[_Verified]:
        identity = await self._guarded(
            self.identity_resolver.resolve_identity(state.record), 'identity resolver', None)
        if identity is None or len(normalize_tax_id(identity.tax_id)) != 11:
            return None
        state.identity = identity

        record = state.record
        if len(normalize_tax_id(record.tax_id)) != 11:
            # Local copy carrying the resolved tax ID; the caller's record is untouched
            record = replace(record, tax_id=normalize_tax_id(identity.tax_id))
            state.record = record

        queries = QueryBuilder.build_identity_queries(identity, record)
        candidates = await self._candidates_from_queries(state, queries, 'identity-search')
        verified = await self._verify_candidates(state, self._prepare(state, candidates), record)
        golden = [v for v in verified if v.evaluation.matched_tax_id]
        accepted = self._accept(golden, self.settings.min_valid_threshold)
        if accepted is None:
            # Only a tax ID match is accepted here; other pages stay open to the later layers
            for entry in verified:
                if not entry.evaluation.matched_tax_id:
                    domain = registrable_domain(entry.candidate.url) or entry.candidate.url
                    state.seen_domains.discard(domain)
                    state.released_domains.add(domain)
        return accepted

    async def _cheap_search(self, state: _RunState) -> Optional[_Verified]:
        candidates: List[Candidate] = []
        domain = email_domain(state.record.email)
        if domain:
            candidates.append(Candidate(url=f"https://{domain}", source_tag='email-domain',
                                        prior=EMAIL_DOMAIN_PRIOR))

        queries = QueryBuilder.build_base_queries(state.record, self.generator)
        candidates.extend(await self._candidates_from_queries(
            state, queries, 'search-engine', providers=self.search_providers[:1]))

        verified = await self._verify_candidates(state, self._prepare(state, candidates), state.record)
        return self._accept(verified, state.threshold)

    async def _swarm_search(self, state: _RunState) -> Optional[_Verified]:
        record = state.record
        golden = QueryBuilder.build_golden_queries(record)[:GOLDEN_QUERY_LIMIT]
        sources = {
            'domain-guess': self._guess_candidates(record),
            'golden-search': self._candidates_from_queries(state, golden, 'golden-search', golden_prior=True),
            'tax-id-search': self._tax_id_candidates(state),
            'phone-directory': self._phone_candidates(record),
        }
        outcomes = await asyncio.gather(*sources.values(), return_exceptions=True)

        candidates: List[Candidate] = []
        for name, outcome in zip(sources.keys(), outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                self.logger.warning(f"Swarm source {name} failed: {outcome}")
                continue
            self.logger.debug(f"Swarm source {name}: {len(outcome)} candidates")
            candidates.extend(outcome)

        verified = await self._verify_candidates(state, self._prepare(state, candidates), record)
        return self._accept(verified, state.threshold)

    async def _exhaustive_fallback(self, state: _RunState) -> Optional[_Verified]:
        async def search(query: str) -> List[SearchResult]:
            return await self._search_all_providers(state, query)

        candidates = await self.exhaustive_strategy.find(state.record, search)
        url = await self._directory_lookup('presence', lambda: self.presence_fallback.find_website(state.record))
        if url:
            candidates.append(Candidate(url=url, source_tag='presence-fallback', prior=PRESENCE_PRIOR))

        verified = await self._verify_candidates(state, self._prepare(state, candidates), state.record)
        return self._accept(verified, self.settings.min_valid_threshold)

    # Candidate sources

    async def _guess_candidates(self, record: BusinessRecord) -> List[Candidate]:
        domains = self.generator.generate_domains(record.name, record.city, record.province, record.category)
        domains = domains[:self.settings.guess_limit]
        semaphore = asyncio.Semaphore(DNS_CONCURRENCY)

        async def check(domain: str) -> Optional[Candidate]:
            async with semaphore:
                url = f"https://{domain}"
                try:
                    if not await self.reachability.resolves(domain):
                        return None
                    if await self.reachability.is_likely_parked(url):
                        self.logger.debug(f"Guessed domain {domain} looks parked")
                        return None
                except Exception as e:
                    self.logger.warning(f"Reachability check of {domain} failed: {type(e).__name__}: {e}")
                    return None
                return Candidate(url=url, source_tag='domain-guess', prior=DOMAIN_GUESS_PRIOR)

        checked = await asyncio.gather(*(check(domain) for domain in domains))
        return [candidate for candidate in checked if candidate is not None]

    async def _tax_id_candidates(self, state: _RunState) -> List[Candidate]:
        tax_id = normalize_tax_id(state.record.tax_id)
        if len(tax_id) != 11:
            return []
        queries = [
            GoldenQuery(f'"{tax_id}"', 'tax_id_search', TAX_ID_SEARCH_PRIOR),
            GoldenQuery(f'partita iva {tax_id}', 'tax_id_search', TAX_ID_SEARCH_PRIOR),
        ]
        return await self._candidates_from_queries(state, queries, 'tax-id-search')

    async def _phone_candidates(self, record: BusinessRecord) -> List[Candidate]:
        if not record.phone:
            return []
        url = await self._directory_lookup('phone-directory', lambda: self.phone_lookup.lookup_by_phone(record))
        if not url:
            return []
        return [Candidate(url=url, source_tag='phone-directory', prior=PHONE_DIRECTORY_PRIOR)]

    async def _candidates_from_queries(self, state: _RunState, queries: List[GoldenQuery], source_tag: str,
                                       providers: Optional[Sequence] = None,
                                       golden_prior: bool = False) -> List[Candidate]:
        """Run queries in order and turn the top results into candidates."""
        candidates: List[Candidate] = []
        for query in queries:
            for provider in (self.search_providers if providers is None else providers):
                results = await self._search(state, provider, query.query)
                if golden_prior:
                    prior = min(1.0, 0.60 + 0.2 * query.expected_precision)
                else:
                    prior = min(1.0, query.expected_precision)
                for result in results[:self.settings.results_per_query]:
                    candidates.append(Candidate(url=result.url, source_tag=source_tag, prior=prior))
        return candidates

    async def _search_all_providers(self, state: _RunState, query: str) -> List[SearchResult]:
        results: List[SearchResult] = []
        for provider in self.search_providers:
            results.extend(await self._search(state, provider, query))
        return results

    async def _search(self, state: _RunState, provider, query: str) -> List[SearchResult]:
        """One rate-limited search call; source failures are logged, never raised."""
        await self.rate_limiter.wait_for_slot(provider.name)
        state.search_calls += 1
        try:
            results = await provider.search(query)
        except RateLimitError as e:
            state.rate_limited_calls += 1
            self.rate_limiter.report_failure(provider.name)
            self.logger.warning(f"Search provider {provider.name} rate limited: {e}")
            return []
        except (SearchAPIError, BlockedError) as e:
            self.rate_limiter.report_failure(provider.name)
            self.logger.warning(f"Search provider {provider.name} failed on '{query}': {e}")
            return []
        self.rate_limiter.report_success(provider.name)
        return list(results or [])

    async def _guarded(self, awaitable: Awaitable, source: str, default):
        """Await an optional collaborator; its failures degrade to the default."""
        try:
            return await awaitable
        except Exception as e:
            self.logger.warning(f"{source} failed: {e}")
            return default

    async def _directory_lookup(self, source: str, call: Callable[[], Awaitable[Optional[str]]]) -> Optional[str]:
        """One rate-limited call to a directory source; failures degrade to no URL."""
        await self.rate_limiter.wait_for_slot(source)
        try:
            url = await call()
        except Exception as e:
            self.rate_limiter.report_failure(source)
            self.logger.warning(f"Directory source {source} failed: {e}")
            return None
        self.rate_limiter.report_success(source)
        return url

    # Verification

    def _priority(self, state: _RunState, candidate: Candidate) -> float:
        return candidate.prior + DOMAIN_COVERAGE_WEIGHT * self.evaluator.domain_coverage(
            state.record.name, candidate.url)

    @staticmethod
    def _skip_directory(state: _RunState, url: str) -> None:
        domain = registrable_domain(url) or url
        if domain not in state.directory_domains:
            state.directory_domains.add(domain)
            state.candidates_seen += 1

    def _prepare(self, state: _RunState, candidates: List[Candidate]) -> List[Candidate]:
        """Deduplicate, drop directories and already verified domains, rank and cap."""
        fresh: List[Candidate] = []
        for candidate in deduplicate_candidates(candidates):
            domain = registrable_domain(candidate.url) or candidate.url
            if domain in state.seen_domains:
                continue
            if self.content_filter.is_directory_or_social(candidate.url):
                self._skip_directory(state, candidate.url)
                continue
            fresh.append(candidate)

        ranked = sorted(fresh, key=lambda c: -self._priority(state, c))
        return ranked[:state.profile.max_candidates]

    async def _verify_candidates(self, state: _RunState, candidates: List[Candidate],
                                 record: BusinessRecord) -> List[_Verified]:
        """Verify candidates concurrently under the verification semaphore."""
        if not candidates:
            return []
        for candidate in candidates:
            domain = registrable_domain(candidate.url) or candidate.url
            if domain not in state.seen_domains:
                state.seen_domains.add(domain)
                if domain not in state.released_domains:
                    state.candidates_seen += 1

        semaphore = asyncio.Semaphore(self.settings.verification_concurrency)
        base = len(state.verified)

        async def run(index: int, candidate: Candidate) -> _Verified:
            async with semaphore:
                try:
                    evaluation = await self.verifier.verify(candidate.url, record)
                except Exception as e:
                    # One broken candidate must not abort the others
                    self.logger.warning(f"Verification of {candidate.url} failed: {type(e).__name__}: {e}")
                    evaluation = Evaluation.failed(ReasonCode.ERROR_TIMEOUT_FETCH, 'verification_error',
                                                   candidate.url)
            # Recorded as soon as it completes so a timeout keeps partial results
            return state.record_evaluation(candidate, evaluation, base + index)

        return list(await asyncio.gather(*(run(i, c) for i, c in enumerate(candidates))))

    @staticmethod
    def _accept(verified: List[_Verified], threshold: float) -> Optional[_Verified]:
        accepted = [v for v in verified if v.evaluation.confidence >= threshold]
        if not accepted:
            return None
        return min(accepted, key=lambda v: (-v.evaluation.confidence, -v.candidate.prior, v.order))

    # Results

    @staticmethod
    def _result(entry: _Verified, status: DiscoveryStatus, reason_code: Optional[ReasonCode],
                state: Optional[_RunState] = None, layer: Optional[DiscoveryLayer] = None) -> DiscoveryResult:
        return DiscoveryResult(
            url=entry.evaluation.final_url or entry.candidate.url,
            status=status,
            confidence=entry.evaluation.confidence,
            method=entry.candidate.source_tag,
            layer=(layer or entry.layer).value,
            reason_code=reason_code,
            evaluation=entry.evaluation,
            identity=state.identity if state else None,
        )

    def _found(self, entry: _Verified, state: _RunState) -> DiscoveryResult:
        return self._result(entry, DiscoveryStatus.FOUND_VALID, None, state)

    def _exhausted_result(self, state: _RunState) -> DiscoveryResult:
        best = state.best()
        if best is not None and best.evaluation.confidence >= self.settings.invalid_floor:
            return self._result(best, DiscoveryStatus.FOUND_INVALID, ReasonCode.REJECTED_NO_MATCHING_SIGNALS,
                                state, DiscoveryLayer.EXHAUSTED)

        reason = self._not_found_reason(state)
        self.logger.info(f"[{state.record.name}] not found ({reason.value})")
        return DiscoveryResult(
            url=None, status=DiscoveryStatus.NOT_FOUND, confidence=0.0, method='none',
            layer=DiscoveryLayer.EXHAUSTED.value, reason_code=reason,
            evaluation=best.evaluation if best else None, identity=state.identity,
        )

    @staticmethod
    def _not_found_reason(state: _RunState) -> ReasonCode:
        all_rate_limited = state.search_calls > 0 and state.rate_limited_calls == state.search_calls

        if state.candidates_seen == 0:
            return ReasonCode.ERROR_PROVIDER_RATE_LIMIT if all_rate_limited else ReasonCode.NOT_FOUND_NO_CANDIDATES

        evaluations = [v.evaluation for v in state.verified]
        directory = [e for e in evaluations if e.rejection == ReasonCode.REJECTED_DIRECTORY_OR_SOCIAL]
        failures = [e for e in evaluations if e.is_failure]
        content = len(evaluations) - len(directory) - len(failures)

        if content > 0:
            return ReasonCode.REJECTED_NO_MATCHING_SIGNALS
        if not failures:
            if state.directory_domains or directory:
                return ReasonCode.REJECTED_DIRECTORY_OR_SOCIAL
            return ReasonCode.ERROR_PROVIDER_RATE_LIMIT if all_rate_limited \
                else ReasonCode.REJECTED_NO_MATCHING_SIGNALS
        if any(e.rejection == ReasonCode.ERROR_TIMEOUT_FETCH for e in failures):
            return ReasonCode.ERROR_TIMEOUT_FETCH
        return ReasonCode.ERROR_BLOCKED

    def _timeout_result(self, state: _RunState) -> DiscoveryResult:
        best = state.best()
        if best is not None and best.evaluation.confidence >= state.threshold:
            return self._result(best, DiscoveryStatus.FOUND_VALID, None, state)
        if best is not None and best.evaluation.confidence >= self.settings.invalid_floor:
            return self._result(best, DiscoveryStatus.FOUND_INVALID, ReasonCode.REJECTED_NO_MATCHING_SIGNALS, state)
        return DiscoveryResult(
            url=None, status=DiscoveryStatus.NOT_FOUND, confidence=0.0, method='none',
            layer=state.layer.value, reason_code=ReasonCode.ERROR_TIMEOUT_FETCH,
            evaluation=best.evaluation if best else None, identity=state.identity,
            error=f"Timed out after {self.settings.call_timeout}s",
        )
