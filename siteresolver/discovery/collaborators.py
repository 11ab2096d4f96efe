"""
Contracts of the external collaborators consumed by the discovery engine,
with no-op defaults for the optional ones.
"""

from typing import List, Optional, Protocol, runtime_checkable

from siteresolver.core.models import BusinessRecord, IdentityResult, PageContent, SearchResult


@runtime_checkable
class PageFetcher(Protocol):
    """Fetches a page, following redirects.

    Raises FetchTimeoutError, NavigationError or BlockedError on failure.
    """

    async def fetch(self, url: str) -> PageContent:
        ...


@runtime_checkable
class SearchProvider(Protocol):
    """A named web search backend (the name keys the rate limiter)."""

    name: str

    async def search(self, query: str) -> List[SearchResult]:
        ...


@runtime_checkable
class IdentityResolver(Protocol):
    """Resolves the legal identity (legal name, tax ID) of a record."""

    async def resolve_identity(self, record: BusinessRecord) -> Optional[IdentityResult]:
        ...


@runtime_checkable
class TextCompletionService(Protocol):
    """LLM completion backend used to adjudicate ambiguous evaluations."""

    async def complete(self, prompt: str) -> str:
        ...


@runtime_checkable
class ReachabilityChecker(Protocol):
    """DNS resolution and parked-page detection for guessed domains."""

    async def resolves(self, domain: str) -> bool:
        ...

    async def is_likely_parked(self, url: str) -> bool:
        ...


@runtime_checkable
class DirectoryPhoneLookup(Protocol):
    """Reverse lookup of the official website through a phone directory."""

    async def lookup_by_phone(self, record: BusinessRecord) -> Optional[str]:
        ...


@runtime_checkable
class PresenceFallback(Protocol):
    """Physical-presence source (maps listing) for the hardest cases."""

    async def find_website(self, record: BusinessRecord) -> Optional[str]:
        ...


class NullIdentityResolver:
    """Identity resolver that never resolves; the identity layer is skipped."""

    async def resolve_identity(self, record: BusinessRecord) -> Optional[IdentityResult]:
        return None


class NullPhoneLookup:
    async def lookup_by_phone(self, record: BusinessRecord) -> Optional[str]:
        return None


class NullPresenceFallback:
    async def find_website(self, record: BusinessRecord) -> Optional[str]:
        return None


class AlwaysReachable:
    """Reachability checker that trusts every domain."""

    async def resolves(self, domain: str) -> bool:
        return True

    async def is_likely_parked(self, url: str) -> bool:
        return False
