"""End-to-end tests of the discovery waterfall with fake collaborators."""

import asyncio
from dataclasses import replace
from unittest.mock import AsyncMock, Mock

import pytest

from siteresolver.core.exceptions import BlockedError, FetchError, RateLimitError
from siteresolver.core.models import BusinessRecord, DiscoveryStatus, IdentityResult, ReasonCode
from siteresolver.discovery.collaborators import (
    DirectoryPhoneLookup,
    IdentityResolver,
    PageFetcher,
    ReachabilityChecker,
    SearchProvider,
    TextCompletionService,
)

STRONG_PAGE = (
    "Rossi Impianti - impianti elettrici a Milano. Via Roma 12. "
    "Tel. 02 1234 5678. Contatti e chi siamo."
)
GOLDEN_PAGE = "Rossi Impianti SRL - P.IVA 12345678901 - Milano"
WEAK_PAGE = "Benvenuti da Rossi Impianti"                          # 0.57
MID_PAGE = "Benvenuti da Rossi Impianti a Milano. Contatti"         # 0.73
EXHAUSTIVE_PAGE = "Benvenuti da Rossi Impianti a Milano"            # 0.65


class SlowFetcher:
    async def fetch(self, url):
        await asyncio.sleep(30)


class SlowSearchProvider:
    name = "slow"

    async def search(self, query):
        await asyncio.sleep(30)
        return []


class TestCollaboratorContracts:
    """The fakes used below honour the collaborator protocols."""

    def test_fakes_satisfy_protocols(self, fetcher, search_provider, reachability, fakes):
        assert isinstance(fetcher, PageFetcher)
        assert isinstance(search_provider, SearchProvider)
        assert isinstance(reachability, ReachabilityChecker)
        assert isinstance(fakes.IdentityResolver(), IdentityResolver)
        assert isinstance(fakes.Completion(), TextCompletionService)
        assert isinstance(fakes.PhoneLookup(), DirectoryPhoneLookup)


class TestDiscoveryWaterfall:
    """Layer-by-layer outcomes of discover()."""

    @pytest.mark.asyncio
    async def test_no_candidates(self, orchestrator_factory, fetcher, search_provider, rossi_record):
        result = await orchestrator_factory().discover(rossi_record, "DEEP")

        assert result.status == DiscoveryStatus.NOT_FOUND
        assert result.reason_code == ReasonCode.NOT_FOUND_NO_CANDIDATES
        assert result.layer == "EXHAUSTED"
        assert result.url is None
        assert result.confidence == 0.0
        assert fetcher.calls == []
        assert search_provider.queries

    @pytest.mark.asyncio
    async def test_existing_url_accepted_in_pre_check(self, orchestrator_factory, fetcher, search_provider,
                                                      rossi_record):
        record = replace(rossi_record, existing_url="https://www.rossiimpianti.it/")
        fetcher.add("https://rossiimpianti.it", text=GOLDEN_PAGE)

        result = await orchestrator_factory().discover(record, "FAST")

        assert result.status == DiscoveryStatus.FOUND_VALID
        assert result.layer == "PRE_CHECK"
        assert result.method == "existing_url"
        assert result.url == "https://rossiimpianti.it"
        assert result.confidence == 1.0
        assert result.reason_code is None
        assert search_provider.queries == []

    @pytest.mark.asyncio
    async def test_directory_existing_url_skipped(self, orchestrator_factory, fetcher, rossi_record):
        record = replace(rossi_record, existing_url="https://www.facebook.com/rossiimpianti")

        result = await orchestrator_factory().discover(record)

        assert result.status == DiscoveryStatus.NOT_FOUND
        assert result.reason_code == ReasonCode.REJECTED_DIRECTORY_OR_SOCIAL
        assert fetcher.calls == []

    @pytest.mark.asyncio
    async def test_identity_golden_match(self, orchestrator_factory, fetcher, search_provider, fakes):
        record = BusinessRecord(name="Rossi Impianti", city="Milano")
        identity = IdentityResult(legal_name="ROSSI IMPIANTI S.R.L.", tax_id="IT12345678901")
        search_provider.add("12345678901", "https://www.rossiimpianti.it/", "https://www.paginegialle.it/rossi")
        fetcher.add("https://rossiimpianti.it", text=GOLDEN_PAGE)

        orchestrator = orchestrator_factory(identity_resolver=fakes.IdentityResolver(identity))
        result = await orchestrator.discover(record)

        assert result.status == DiscoveryStatus.FOUND_VALID
        assert result.layer == "IDENTITY_CANDIDATES"
        assert result.method == "identity-search"
        assert result.evaluation.matched_tax_id == "12345678901"
        assert result.identity == identity
        assert record.tax_id is None

    @pytest.mark.asyncio
    async def test_identity_resolver_failure_is_degraded(self, orchestrator_factory, rossi_record, fakes):
        orchestrator = orchestrator_factory(
            identity_resolver=fakes.IdentityResolver(error=RuntimeError("registry down")))

        result = await orchestrator.discover(rossi_record)

        assert result.reason_code == ReasonCode.NOT_FOUND_NO_CANDIDATES

    @pytest.mark.asyncio
    async def test_email_domain_in_cheap_search(self, orchestrator_factory, fetcher, rossi_record):
        record = replace(rossi_record, email="info@rossiimpianti.it")
        fetcher.add("https://rossiimpianti.it", text=STRONG_PAGE, title="Rossi Impianti")

        result = await orchestrator_factory().discover(record)

        assert result.status == DiscoveryStatus.FOUND_VALID
        assert result.layer == "CHEAP_SEARCH"
        assert result.method == "email-domain"
        assert result.confidence == 0.99

    @pytest.mark.asyncio
    async def test_guessed_domain_in_swarm(self, orchestrator_factory, fetcher, reachability, rossi_record):
        reachability.resolvable.add("rossiimpianti.it")
        fetcher.add("https://rossiimpianti.it", text=STRONG_PAGE, title="Rossi Impianti")

        result = await orchestrator_factory().discover(rossi_record)

        assert result.status == DiscoveryStatus.FOUND_VALID
        assert result.layer == "SWARM_SEARCH"
        assert result.method == "domain-guess"
        assert result.url == "https://rossiimpianti.it"
        assert "rossiimpianti.it" in reachability.checked

    @pytest.mark.asyncio
    async def test_parked_guess_not_verified(self, orchestrator_factory, fetcher, reachability, rossi_record):
        reachability.resolvable.add("rossiimpianti.it")
        reachability.parked.add("rossiimpianti.it")

        result = await orchestrator_factory().discover(rossi_record)

        assert result.reason_code == ReasonCode.NOT_FOUND_NO_CANDIDATES
        assert fetcher.calls == []

    @pytest.mark.asyncio
    async def test_failing_swarm_source_is_isolated(self, orchestrator_factory, fetcher, search_provider,
                                                    rossi_record):
        reachability = Mock()
        reachability.resolves = AsyncMock(side_effect=RuntimeError("dns down"))
        search_provider.add('"P.IVA 12345678901"', "https://rossiimpianti.it")
        fetcher.add("https://rossiimpianti.it", text=STRONG_PAGE, title="Rossi Impianti")

        result = await orchestrator_factory(reachability=reachability).discover(rossi_record)

        assert result.status == DiscoveryStatus.FOUND_VALID
        assert result.method == "golden-search"

    @pytest.mark.asyncio
    async def test_below_threshold_is_found_invalid(self, orchestrator_factory, fetcher, reachability,
                                                    rossi_record):
        reachability.resolvable.add("rossiimpianti.it")
        fetcher.add("https://rossiimpianti.it", text=WEAK_PAGE)

        result = await orchestrator_factory().discover(rossi_record)

        assert result.status == DiscoveryStatus.FOUND_INVALID
        assert result.reason_code == ReasonCode.REJECTED_NO_MATCHING_SIGNALS
        assert result.url == "https://rossiimpianti.it"
        assert result.confidence == 0.57
        assert result.layer == "EXHAUSTED"

    @pytest.mark.asyncio
    async def test_directories_only(self, orchestrator_factory, fetcher, search_provider, rossi_record):
        search_provider.add("", "https://www.paginegialle.it/rossi", "https://www.facebook.com/rossi")

        result = await orchestrator_factory().discover(rossi_record)

        assert result.status == DiscoveryStatus.NOT_FOUND
        assert result.reason_code == ReasonCode.REJECTED_DIRECTORY_OR_SOCIAL
        assert fetcher.calls == []

    @pytest.mark.asyncio
    async def test_every_search_rate_limited(self, orchestrator_factory, search_provider, rate_limiter,
                                             rossi_record):
        search_provider.error = RateLimitError("Rate limit exceeded")

        result = await orchestrator_factory().discover(rossi_record)

        assert result.status == DiscoveryStatus.NOT_FOUND
        assert result.reason_code == ReasonCode.ERROR_PROVIDER_RATE_LIMIT
        assert rate_limiter.stats()["fake"]["consecutive_failures"] > 0

    @pytest.mark.asyncio
    async def test_unreachable_candidate(self, orchestrator_factory, reachability, rossi_record):
        reachability.resolvable.add("rossiimpianti.it")

        result = await orchestrator_factory().discover(rossi_record)

        assert result.status == DiscoveryStatus.NOT_FOUND
        assert result.reason_code == ReasonCode.ERROR_TIMEOUT_FETCH

    @pytest.mark.asyncio
    async def test_blocked_candidate(self, orchestrator_factory, fetcher, reachability, rossi_record):
        reachability.resolvable.add("rossiimpianti.it")
        fetcher.fail("https://rossiimpianti.it", BlockedError("captcha"))

        result = await orchestrator_factory().discover(rossi_record)

        assert result.reason_code == ReasonCode.ERROR_BLOCKED

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error", [FetchError("renderer crashed"), RuntimeError("renderer crashed")])
    async def test_broken_candidate_does_not_abort_the_others(self, orchestrator_factory, fetcher, search_provider,
                                                              rossi_record, error):
        search_provider.add("", "https://bad.it", "https://www.rossiimpianti.it/")
        fetcher.fail("https://bad.it", error)
        fetcher.add("https://rossiimpianti.it", text=STRONG_PAGE, title="Rossi Impianti")

        result = await orchestrator_factory().discover(rossi_record)

        assert result.status == DiscoveryStatus.FOUND_VALID
        assert result.url == "https://rossiimpianti.it"
        assert "https://bad.it" in fetcher.calls

    @pytest.mark.asyncio
    async def test_failing_reachability_check_skips_only_that_domain(self, orchestrator_factory, fetcher, fakes,
                                                                     rossi_record):
        class UndecodableParkingCheck(fakes.Reachability):
            async def is_likely_parked(self, url):
                if url != "https://rossiimpianti.it":
                    raise LookupError("unknown encoding: x-not-a-charset")
                return False

        reachability = UndecodableParkingCheck()
        fetcher.add("https://rossiimpianti.it", text=STRONG_PAGE, title="Rossi Impianti")
        guesses = orchestrator_factory().generator.generate_domains(
            rossi_record.name, rossi_record.city, rossi_record.province, rossi_record.category)
        reachability.resolvable.update(guesses)

        result = await orchestrator_factory(reachability=reachability).discover(rossi_record)

        assert result.status == DiscoveryStatus.FOUND_VALID
        assert result.method == "domain-guess"
        assert result.url == "https://rossiimpianti.it"

    @pytest.mark.asyncio
    async def test_identity_layer_leaves_pages_without_tax_id_to_later_layers(self, orchestrator_factory, fetcher,
                                                                              search_provider, rossi_record, fakes):
        record = replace(rossi_record, tax_id=None)
        identity = IdentityResult(legal_name="ROSSI IMPIANTI S.R.L.", tax_id="IT12345678901")
        search_provider.add("", "https://www.rossiimpianti.it/")
        fetcher.add("https://rossiimpianti.it", text=STRONG_PAGE, title="Rossi Impianti")

        orchestrator = orchestrator_factory(identity_resolver=fakes.IdentityResolver(identity))
        result = await orchestrator.discover(record)

        assert result.status == DiscoveryStatus.FOUND_VALID
        assert result.layer == "CHEAP_SEARCH"
        assert result.method == "search-engine"
        assert result.confidence == 0.99
        assert fetcher.calls == ["https://rossiimpianti.it"]

    @pytest.mark.asyncio
    async def test_identity_with_partial_tax_id_skipped(self, orchestrator_factory, search_provider, rossi_record,
                                                        fakes):
        identity = IdentityResult(legal_name="ROSSI IMPIANTI S.R.L.", tax_id="IT123")
        orchestrator = orchestrator_factory(identity_resolver=fakes.IdentityResolver(identity))

        result = await orchestrator.discover(replace(rossi_record, tax_id=None))

        assert result.identity is None
        assert not any('"123"' in query for query in search_provider.queries)

    @pytest.mark.asyncio
    async def test_phone_directory_is_rate_limited(self, orchestrator_factory, fetcher, rate_limiter, rossi_record,
                                                   fakes):
        fetcher.add("https://rossiimpianti.it", text=STRONG_PAGE, title="Rossi Impianti")
        orchestrator = orchestrator_factory(phone_lookup=fakes.PhoneLookup("https://www.rossiimpianti.it/"))

        result = await orchestrator.discover(rossi_record)

        assert result.method == "phone-directory"
        assert rate_limiter.stats()["phone-directory"]["requests"] == 1
        assert rate_limiter.stats()["phone-directory"]["consecutive_failures"] == 0

    @pytest.mark.asyncio
    async def test_presence_fallback_failure_reported_to_rate_limiter(self, orchestrator_factory, rate_limiter,
                                                                      rossi_record):
        presence = Mock()
        presence.find_website = AsyncMock(side_effect=RuntimeError("maps quota exceeded"))

        result = await orchestrator_factory(presence_fallback=presence).discover(rossi_record, "EXHAUSTIVE")

        assert result.reason_code == ReasonCode.NOT_FOUND_NO_CANDIDATES
        assert rate_limiter.stats()["presence"]["requests"] == 1
        assert rate_limiter.stats()["presence"]["consecutive_failures"] == 1

    @pytest.mark.asyncio
    async def test_exhaustive_fallback(self, orchestrator_factory, fetcher, search_provider, rossi_record):
        search_provider.add('"chi siamo"', "https://www.rossiimpianti.it/chi-siamo")
        fetcher.add("https://rossiimpianti.it", text=EXHAUSTIVE_PAGE)

        deep = await orchestrator_factory().discover(rossi_record, "DEEP")
        exhaustive = await orchestrator_factory().discover(rossi_record, "EXHAUSTIVE")

        assert deep.reason_code == ReasonCode.NOT_FOUND_NO_CANDIDATES
        assert exhaustive.status == DiscoveryStatus.FOUND_VALID
        assert exhaustive.layer == "EXHAUSTIVE_FALLBACK"
        assert exhaustive.method == "exhaustive"
        assert exhaustive.confidence == 0.65


class TestDiscoveryPolicies:
    """Modes, errors, timeouts and caching."""

    @pytest.mark.asyncio
    async def test_invalid_mode(self, orchestrator_factory, rossi_record):
        result = await orchestrator_factory().discover(rossi_record, "TURBO")

        assert result.status == DiscoveryStatus.ERROR
        assert result.reason_code == ReasonCode.ERROR_CONFIG_INVALID
        assert "TURBO" in result.error

    @pytest.mark.asyncio
    async def test_internal_error(self, orchestrator_factory, rossi_record):
        generator = Mock()
        generator.generate_domains.side_effect = RuntimeError("boom")

        result = await orchestrator_factory(generator=generator).discover(rossi_record)

        assert result.status == DiscoveryStatus.ERROR
        assert result.reason_code == ReasonCode.ERROR_INTERNAL
        assert result.error == "RuntimeError: boom"
        assert result.layer == "CHEAP_SEARCH"

    @pytest.mark.asyncio
    async def test_timeout_without_results(self, orchestrator_factory, settings, rossi_record):
        record = replace(rossi_record, existing_url="https://rossiimpianti.it")
        orchestrator = orchestrator_factory(fetcher=SlowFetcher(), settings=replace(settings, call_timeout=0.2))

        result = await orchestrator.discover(record)

        assert result.status == DiscoveryStatus.NOT_FOUND
        assert result.reason_code == ReasonCode.ERROR_TIMEOUT_FETCH
        assert result.layer == "PRE_CHECK"
        assert result.error.startswith("Timed out")

    @pytest.mark.asyncio
    async def test_timeout_keeps_best_partial_result(self, orchestrator_factory, fetcher, settings, rossi_record):
        record = replace(rossi_record, existing_url="https://rossiimpianti.it")
        fetcher.add("https://rossiimpianti.it", text=WEAK_PAGE)
        orchestrator = orchestrator_factory(search_providers=[SlowSearchProvider()],
                                            settings=replace(settings, call_timeout=0.2))

        result = await orchestrator.discover(record)

        assert result.status == DiscoveryStatus.FOUND_INVALID
        assert result.url == "https://rossiimpianti.it"
        assert result.confidence == 0.57

    @pytest.mark.asyncio
    async def test_threshold_monotonic_across_modes(self, orchestrator_factory, fetcher, reachability,
                                                    rossi_record):
        reachability.resolvable.add("rossiimpianti.it")
        fetcher.add("https://rossiimpianti.it", text=MID_PAGE)

        statuses = {}
        for mode in ("FAST", "DEEP", "AGGRESSIVE", "EXHAUSTIVE"):
            result = await orchestrator_factory().discover(rossi_record, mode)
            statuses[mode] = result.status
            assert result.confidence == 0.73

        assert statuses == {
            "FAST": DiscoveryStatus.FOUND_INVALID,
            "DEEP": DiscoveryStatus.FOUND_INVALID,
            "AGGRESSIVE": DiscoveryStatus.FOUND_VALID,
            "EXHAUSTIVE": DiscoveryStatus.FOUND_VALID,
        }

    @pytest.mark.asyncio
    async def test_cache_cold_and_warm_identical(self, orchestrator_factory, fetcher, reachability, rossi_record):
        reachability.resolvable.add("rossiimpianti.it")
        fetcher.add("https://rossiimpianti.it", text=STRONG_PAGE, title="Rossi Impianti")
        orchestrator = orchestrator_factory()

        cold = await orchestrator.discover(rossi_record)
        calls_after_cold = list(fetcher.calls)
        warm = await orchestrator.discover(rossi_record)

        assert warm == cold
        assert fetcher.calls == calls_after_cold

    @pytest.mark.asyncio
    async def test_concurrent_discoveries_share_collaborators(self, orchestrator_factory, fetcher):
        fetcher.add("https://rossiimpianti.it", text=GOLDEN_PAGE)
        fetcher.add("https://bianchiedilizia.it", text="Bianchi Edilizia SRL - P.IVA 00743110157")
        orchestrator = orchestrator_factory()
        rossi = BusinessRecord(name="Rossi Impianti SRL", tax_id="12345678901",
                               existing_url="https://rossiimpianti.it")
        bianchi = BusinessRecord(name="Bianchi Edilizia SRL", tax_id="00743110157",
                                 existing_url="https://www.bianchiedilizia.it")

        first, second = await asyncio.gather(orchestrator.discover(rossi), orchestrator.discover(bianchi))

        assert first.url == "https://rossiimpianti.it"
        assert second.url == "https://bianchiedilizia.it"
