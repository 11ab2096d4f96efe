"""
DuckDuckGo RapidAPI client and its asynchronous search provider adapter.
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional

import requests

from siteresolver.core.exceptions import SearchAPIError, RateLimitError
from siteresolver.core.models import SearchResult
from siteresolver.search.rate_limiter import RateLimiter


class DuckDuckGoClient:
    """
    Client for DuckDuckGo RapidAPI search service.

    Provides rate-limited search functionality with retry logic
    and comprehensive error handling.
    """

    def __init__(self, api_key: str, rate_limit: float = 4.5, max_retries: int = 3,
                 base_delay: float = 1.0, max_delay: float = 30.0, timeout: float = 30.0,
                 base_url: str = "https://duckduckgo8.p.rapidapi.com"):
        """
        Initialize the DuckDuckGo API client.

        Args:
            api_key: RapidAPI key for DuckDuckGo service
            rate_limit: Maximum requests per second (default: 4.5 for safety)
            max_retries: Retries on 429, 5xx and network errors
            base_delay: First retry delay in seconds, doubled on each attempt
            max_delay: Upper bound of a retry delay
            timeout: Per-request timeout in seconds
            base_url: API endpoint

        Raises:
            ValueError: If API key is not provided or invalid
        """
        if not api_key or len(api_key.strip()) < 10:
            raise ValueError(
                "DuckDuckGo API key is required and must be at least 10 characters. "
                "Please set the DUCKDUCKGO_API_KEY environment variable."
            )

        self.api_key = api_key
        self.base_url = base_url
        self.host = base_url.split("://", 1)[-1].rstrip("/")
        self.rate_limiter = RateLimiter(rate_limit)
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.timeout = timeout
        self.logger = logging.getLogger('site_resolver')

    def search(self, query: str, max_results: int = 10) -> List[SearchResult]:
        """
        Search the web using DuckDuckGo API.

        Args:
            query: Search query
            max_results: Maximum number of results to return

        Returns:
            List of SearchResult objects

        Raises:
            SearchAPIError: For API errors, network issues, or invalid responses
            RateLimitError: When rate limit is exceeded
        """
        self.rate_limiter.wait_if_needed()

        headers = {
            "X-RapidAPI-Key": self.api_key,
            "X-RapidAPI-Host": self.host,
        }
        params = {
            "q": query,
            "max_results": str(max_results),
        }

        response = self._make_api_request_with_retry(self.base_url, headers, params)

        if response.status_code == 429:
            raise RateLimitError("Rate limit exceeded. Please wait before retrying.")

        if response.status_code != 200:
            raise SearchAPIError(
                f"API request failed with status {response.status_code}: {response.text[:200]}"
            )

        try:
            data = response.json()
        except ValueError as e:
            raise SearchAPIError(f"Invalid JSON response: {e}")

        results = []
        raw_results = data.get("results", []) if isinstance(data, dict) else []

        for position, result in enumerate(raw_results, 1):
            # Skip malformed results
            if not isinstance(result, dict):
                continue

            url = result.get("url")
            if not url:
                continue

            results.append(SearchResult(
                url=url,
                title=result.get("title", "") or "",
                snippet=result.get("description", "") or "",
                position=position,
            ))

        return results[:max_results]

    def _make_api_request_with_retry(self, url: str, headers: Dict[str, str],
                                     params: Dict[str, str]) -> requests.Response:
        """
        Make API request with exponential backoff retry logic.

        Args:
            url: API endpoint URL
            headers: Request headers
            params: Query parameters

        Returns:
            Response object (a final 429 is returned to the caller)

        Raises:
            SearchAPIError: After all retries exhausted on network errors
        """
        attempt = 0
        last_exception: Optional[Exception] = None
        response: Optional[requests.Response] = None

        while attempt <= self.max_retries:
            try:
                response = requests.get(url, headers=headers, params=params, timeout=self.timeout)
            except requests.RequestException as e:
                last_exception = e
                response = None
                delay = self._delay(attempt)
                self.logger.warning(f"Network error: {e}. Retrying in {delay}s...")
                time.sleep(delay)
                attempt += 1
                continue

            if response.status_code == 429 or response.status_code >= 500:
                if attempt == self.max_retries:
                    break
                delay = self._delay(attempt)
                if response.status_code == 429:
                    self._adjust_rate_limit("429")
                    self.logger.warning(f"Rate limited. Retrying in {delay}s...")
                else:
                    self._adjust_rate_limit("500")
                    self.logger.warning(f"Server error {response.status_code}. Retrying in {delay}s...")
                time.sleep(delay)
                attempt += 1
                continue

            return response

        if response is not None:
            return response
        raise SearchAPIError(f"API request failed after {self.max_retries} retries: {last_exception}")

    def _delay(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    def _adjust_rate_limit(self, error_type: str) -> None:
        """
        Adjust rate limit based on error type.

        Args:
            error_type: Type of error ('429', '500')
        """
        current = self.rate_limiter.rate_limit
        if current <= 0:
            return
        if error_type == "429":
            new_rate = max(1.0, current * 0.6)
        else:
            new_rate = max(2.0, current * 0.8)
        if new_rate < current:
            self.rate_limiter.update_rate(new_rate)
            self.logger.warning(f"Reduced rate limit to {new_rate:.2f} req/s")


class DuckDuckGoSearchProvider:
    """Asynchronous search provider running the blocking client in a worker thread."""

    def __init__(self, client: DuckDuckGoClient, max_results: int = 10, name: str = "duckduckgo"):
        self.client = client
        self.max_results = max_results
        self.name = name

    async def search(self, query: str) -> List[SearchResult]:
        return await asyncio.to_thread(self.client.search, query, self.max_results)
