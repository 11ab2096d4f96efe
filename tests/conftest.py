"""Shared fixtures and fake collaborators for the test suite."""

from types import SimpleNamespace
from typing import Dict, List, Optional, Set, Union

import pytest

from siteresolver.core.config import DiscoverySettings
from siteresolver.core.exceptions import NavigationError
from siteresolver.core.models import BusinessRecord, IdentityResult, PageContent, SearchResult
from siteresolver.discovery.orchestrator import DiscoveryOrchestrator
from siteresolver.search.rate_limiter import AdaptiveRateLimiter


class FakeFetcher:
    """PageFetcher serving canned pages; unknown URLs fail navigation."""

    def __init__(self):
        self.pages: Dict[str, Union[PageContent, Exception]] = {}
        self.calls: List[str] = []

    def add(self, url: str, text: str = "", title: str = "", html: str = "",
            links=(), final_url: Optional[str] = None) -> None:
        self.pages[url.rstrip('/')] = PageContent(
            final_url=final_url or url,
            status_code=200,
            html=html or f"<html><head><title>{title}</title></head><body>{text}</body></html>",
            visible_text=text,
            title=title,
            links=tuple(links),
        )

    def fail(self, url: str, error: Exception) -> None:
        self.pages[url.rstrip('/')] = error

    async def fetch(self, url: str) -> PageContent:
        self.calls.append(url)
        page = self.pages.get(url.rstrip('/'))
        if page is None:
            raise NavigationError(f"No route to {url}")
        if isinstance(page, Exception):
            raise page
        return page


class FakeSearchProvider:
    """SearchProvider answering from a query-substring table."""

    def __init__(self, name: str = "fake"):
        self.name = name
        self.answers: List[tuple] = []
        self.error: Optional[Exception] = None
        self.queries: List[str] = []

    def add(self, fragment: str, *urls: str) -> None:
        self.answers.append((fragment, list(urls)))

    async def search(self, query: str) -> List[SearchResult]:
        self.queries.append(query)
        if self.error is not None:
            raise self.error
        for fragment, urls in self.answers:
            if fragment in query:
                return [SearchResult(url=url, title="", snippet="", position=i)
                        for i, url in enumerate(urls, 1)]
        return []


class FakeReachability:
    """ReachabilityChecker with explicit resolvable and parked sets."""

    def __init__(self, resolvable: Optional[Set[str]] = None, parked: Optional[Set[str]] = None):
        self.resolvable = set(resolvable or ())
        self.parked = set(parked or ())
        self.checked: List[str] = []

    async def resolves(self, domain: str) -> bool:
        self.checked.append(domain)
        return domain in self.resolvable

    async def is_likely_parked(self, url: str) -> bool:
        return url.split('://', 1)[-1] in self.parked


class FakeIdentityResolver:
    def __init__(self, identity: Optional[IdentityResult] = None, error: Optional[Exception] = None):
        self.identity = identity
        self.error = error

    async def resolve_identity(self, record: BusinessRecord) -> Optional[IdentityResult]:
        if self.error is not None:
            raise self.error
        return self.identity


class FakeCompletion:
    def __init__(self, answer: str = '{"match": true, "confidence": 0.85}'):
        self.answer = answer
        self.prompts: List[str] = []

    async def complete(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.answer


class FakePhoneLookup:
    def __init__(self, url: Optional[str] = None):
        self.url = url

    async def lookup_by_phone(self, record: BusinessRecord) -> Optional[str]:
        return self.url


@pytest.fixture
def fakes():
    """The fake collaborator classes, for tests that build their own instances."""
    return SimpleNamespace(
        Fetcher=FakeFetcher,
        SearchProvider=FakeSearchProvider,
        Reachability=FakeReachability,
        IdentityResolver=FakeIdentityResolver,
        Completion=FakeCompletion,
        PhoneLookup=FakePhoneLookup,
    )


@pytest.fixture
def settings():
    """Discovery settings without waits, suitable for tests."""
    return DiscoverySettings(
        call_timeout=5.0,
        retry_backoff=0.0,
        rate_min_delay=0.0,
        rate_max_wait=0.0,
        guess_limit=10,
    )


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def search_provider():
    return FakeSearchProvider()


@pytest.fixture
def reachability():
    return FakeReachability()


@pytest.fixture
def rate_limiter():
    return AdaptiveRateLimiter(min_delay=0.0, max_delay=1.0, max_wait=0.0)


@pytest.fixture
def orchestrator_factory(fetcher, search_provider, reachability, settings, rate_limiter):
    """Build an orchestrator around the fake collaborators; keyword overrides allowed."""
    def build(**overrides) -> DiscoveryOrchestrator:
        kwargs = dict(
            fetcher=fetcher,
            search_providers=[search_provider],
            reachability=reachability,
            settings=settings,
            rate_limiter=rate_limiter,
        )
        kwargs.update(overrides)
        return DiscoveryOrchestrator(**kwargs)
    return build


@pytest.fixture
def rossi_record():
    return BusinessRecord(
        name="Rossi Impianti SRL",
        city="Milano",
        province="MI",
        address="Via Roma 12",
        phone="02 1234 5678",
        tax_id="12345678901",
        category="impianti elettrici",
    )
