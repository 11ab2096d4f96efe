"""
Custom exceptions for the Official Website Resolver.
"""


class SiteResolverError(Exception):
    """Base exception for all Official Website Resolver errors."""
    pass


class ConfigurationError(SiteResolverError):
    """Raised when there's an error in configuration loading or validation."""
    pass


class SearchAPIError(SiteResolverError):
    """Raised when there's an error with a search provider."""
    pass


class RateLimitError(SearchAPIError):
    """Raised when a search provider rate limit is exceeded."""
    pass


class BlockedError(SiteResolverError):
    """Raised when a source answers with a CAPTCHA or an anti-bot block."""
    pass


class FetchError(SiteResolverError):
    """Raised when a page cannot be fetched."""
    pass


class FetchTimeoutError(FetchError):
    """Raised when a page fetch exceeds its timeout."""
    pass


class NavigationError(FetchError):
    """Raised when navigation fails (DNS, TLS, refused connection, bad status)."""
    pass


class ScoringError(SiteResolverError):
    """Raised when there's an error in confidence evaluation."""
    pass


class CacheError(SiteResolverError):
    """Raised when the verification cache is in an inconsistent state."""
    pass
