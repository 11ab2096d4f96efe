"""
HTTP page fetcher built on aiohttp, with BeautifulSoup text extraction.
"""

import asyncio
import logging
import re
from typing import List, Optional, Tuple
from urllib.parse import urljoin

from aiohttp import ClientError, ClientSession, ClientTimeout, TCPConnector
from bs4 import BeautifulSoup

from siteresolver.core.exceptions import BlockedError, FetchTimeoutError, NavigationError
from siteresolver.core.models import PageContent

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)

BLOCK_STATUS_CODES = (403, 429)
CAPTCHA_MARKERS = (
    'captcha', 'cf-challenge', 'attention required! | cloudflare',
    'verify you are human', 'access denied', 'ddos protection by',
)
MAX_TEXT_LENGTH = 20000
MAX_LINKS = 220
CHALLENGE_TEXT_LIMIT = 1500


class SessionPool:
    """
    Explicitly constructed owner of the shared aiohttp session.

    Passed by reference to fetchers; close() (or the async context
    manager) releases the connection pool.
    """

    def __init__(self, timeout: float = 15.0, user_agent: str = DEFAULT_USER_AGENT, limit: int = 50):
        self.timeout = timeout
        self.user_agent = user_agent
        self.limit = limit
        self._session: Optional[ClientSession] = None

    async def get_session(self) -> ClientSession:
        """Get or create the aiohttp session."""
        if self._session is None or self._session.closed:
            self._session = ClientSession(
                timeout=ClientTimeout(total=self.timeout),
                headers={"User-Agent": self.user_agent, "Accept": "text/html,application/xhtml+xml"},
                connector=TCPConnector(limit=self.limit),
            )
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def __aenter__(self) -> 'SessionPool':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


def extract_page(html: str, final_url: str) -> Tuple[str, str, List[Tuple[str, str]]]:
    """Visible text, title and absolute links of an HTML document.

    Args:
        html: Raw markup
        final_url: URL the markup was served from (base for relative links)

    Returns:
        (visible_text, title, [(href, anchor text)])
    """
    soup = BeautifulSoup(html, "html.parser")
    title = soup.title.get_text(strip=True) if soup.title else ""

    links: List[Tuple[str, str]] = []
    for anchor in soup.find_all("a", href=True)[:MAX_LINKS]:
        href = anchor["href"].strip()
        if not href or href.startswith(("mailto:", "tel:", "javascript:", "#")):
            continue
        links.append((urljoin(final_url, href), anchor.get_text(" ", strip=True).lower()))

    for tag in soup(["script", "style", "noscript", "template", "svg"]):
        tag.decompose()
    body = soup.body or soup
    text = re.sub(r"\s+", " ", body.get_text(" ", strip=True)).strip()
    return text[:MAX_TEXT_LENGTH], title, links


class HttpPageFetcher:
    """
    Fetches pages over plain HTTP (no script execution).

    Navigation failures (DNS, TLS, refused connections, error statuses)
    raise NavigationError, timeouts raise FetchTimeoutError and anti-bot
    answers raise BlockedError, so callers can tell them apart from pages
    that were fetched but are not valid content.
    """

    def __init__(self, pool: SessionPool, timeout: Optional[float] = None):
        """
        Initialize the fetcher.

        Args:
            pool: Shared session pool
            timeout: Per-request timeout (defaults to the pool's)
        """
        self.pool = pool
        self.timeout = timeout or pool.timeout
        self.logger = logging.getLogger('site_resolver')

    async def _get(self, url: str, limit: Optional[int] = None) -> Tuple[str, int, str]:
        session = await self.pool.get_session()
        try:
            async with session.get(url, allow_redirects=True, max_redirects=5,
                                   timeout=ClientTimeout(total=self.timeout)) as resp:
                if limit is not None:
                    raw = await resp.content.read(limit)
                    body = raw.decode(resp.charset or "utf-8", errors="replace")
                else:
                    body = await resp.text(errors="replace")
                return str(resp.url), resp.status, body
        except asyncio.TimeoutError as e:
            raise FetchTimeoutError(f"Timed out fetching {url}") from e
        except ClientError as e:
            raise NavigationError(f"Navigation to {url} failed: {e}") from e
        except (UnicodeDecodeError, LookupError) as e:
            raise NavigationError(f"Undecodable response from {url}: {e}") from e

    async def fetch(self, url: str) -> PageContent:
        """Fetch and parse a page.

        Raises:
            FetchTimeoutError: If the request times out
            BlockedError: On 403/429 or a CAPTCHA page
            NavigationError: On connection errors and other error statuses
        """
        final_url, status, html = await self._get(url)

        if status in BLOCK_STATUS_CODES:
            raise BlockedError(f"{url} answered {status}")
        if status >= 400:
            raise NavigationError(f"{url} answered {status}")

        text, title, links = extract_page(html, final_url)

        # Challenge pages are short; a long page mentioning "captcha" is real content
        if len(text) < CHALLENGE_TEXT_LIMIT:
            head = f"{title} {html[:5000]}".lower()
            if any(marker in head for marker in CAPTCHA_MARKERS):
                raise BlockedError(f"{url} served an anti-bot challenge")

        self.logger.debug(f"Fetched {final_url} ({status}, {len(text)} chars)")
        return PageContent(
            final_url=final_url,
            status_code=status,
            html=html,
            visible_text=text,
            title=title,
            links=tuple(links),
        )

    async def sniff(self, url: str, limit: int = 5000) -> str:
        """First bytes of a response body, for parked-page detection."""
        _, _, body = await self._get(url, limit=limit)
        return body
