"""Search providers, query construction and rate limiting."""
