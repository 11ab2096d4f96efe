import pytest
import requests
from unittest.mock import Mock, patch

from siteresolver.core.exceptions import RateLimitError, SearchAPIError
from siteresolver.search.client import DuckDuckGoClient, DuckDuckGoSearchProvider
from siteresolver.core.models import SearchResult


def _response(status_code=200, payload=None, text=""):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else {}
    response.text = text
    return response


@pytest.fixture(autouse=True)
def no_sleep():
    with patch('siteresolver.search.client.time.sleep') as mock_sleep:
        yield mock_sleep


class TestDuckDuckGoClient:
    """Test suite for DuckDuckGo RapidAPI client."""

    def test_client_initialization(self):
        client = DuckDuckGoClient(api_key="test_key_12345")
        assert client.api_key == "test_key_12345"
        assert client.base_url == "https://duckduckgo8.p.rapidapi.com"
        assert client.host == "duckduckgo8.p.rapidapi.com"
        assert client.rate_limiter.rate_limit == 4.5

    @pytest.mark.parametrize("api_key", ["", "short", "         "])
    def test_invalid_api_key(self, api_key):
        with pytest.raises(ValueError, match="DUCKDUCKGO_API_KEY"):
            DuckDuckGoClient(api_key=api_key)

    @patch('siteresolver.search.client.requests.get')
    def test_successful_search(self, mock_get):
        mock_get.return_value = _response(payload={
            "results": [
                {"url": "https://rossiimpianti.it", "title": "Rossi Impianti", "description": "Impianti elettrici"},
                {"url": "https://www.paginegialle.it/rossi", "title": "Rossi - PagineGialle", "description": None},
            ]
        })

        client = DuckDuckGoClient(api_key="test_key_12345", rate_limit=0)
        results = client.search("Rossi Impianti Milano")

        assert results == [
            SearchResult("https://rossiimpianti.it", "Rossi Impianti", "Impianti elettrici", 1),
            SearchResult("https://www.paginegialle.it/rossi", "Rossi - PagineGialle", "", 2),
        ]
        _, kwargs = mock_get.call_args
        assert kwargs['params'] == {"q": "Rossi Impianti Milano", "max_results": "10"}
        assert kwargs['headers']["X-RapidAPI-Host"] == "duckduckgo8.p.rapidapi.com"

    @patch('siteresolver.search.client.requests.get')
    def test_malformed_results_skipped_and_truncated(self, mock_get):
        mock_get.return_value = _response(payload={
            "results": ["garbage", {"title": "no url"}, {"url": "https://a.it"}, {"url": "https://b.it"}]
        })

        client = DuckDuckGoClient(api_key="test_key_12345", rate_limit=0)
        results = client.search("query", max_results=1)

        assert [r.url for r in results] == ["https://a.it"]
        assert results[0].position == 3

    @patch('siteresolver.search.client.requests.get')
    def test_empty_search_results(self, mock_get):
        mock_get.return_value = _response(payload={"results": []})
        client = DuckDuckGoClient(api_key="test_key_12345", rate_limit=0)
        assert client.search("Nonexistent Company") == []

    @patch('siteresolver.search.client.requests.get')
    def test_rate_limit_after_retries(self, mock_get):
        mock_get.return_value = _response(status_code=429)

        client = DuckDuckGoClient(api_key="test_key_12345", max_retries=2)

        with pytest.raises(RateLimitError):
            client.search("query")
        assert mock_get.call_count == 3
        assert client.rate_limiter.rate_limit < 4.5

    @patch('siteresolver.search.client.requests.get')
    def test_server_error_retried_then_success(self, mock_get, no_sleep):
        mock_get.side_effect = [
            _response(status_code=503),
            _response(payload={"results": [{"url": "https://a.it"}]}),
        ]

        client = DuckDuckGoClient(api_key="test_key_12345", rate_limit=0, max_retries=2, base_delay=1.0)
        results = client.search("query")

        assert len(results) == 1
        no_sleep.assert_called_once_with(1.0)

    @patch('siteresolver.search.client.requests.get')
    def test_client_error_not_retried(self, mock_get):
        mock_get.return_value = _response(status_code=400, text="Bad request")

        client = DuckDuckGoClient(api_key="test_key_12345", rate_limit=0)

        with pytest.raises(SearchAPIError, match="status 400"):
            client.search("query")
        assert mock_get.call_count == 1

    @patch('siteresolver.search.client.requests.get')
    def test_network_error_exhausts_retries(self, mock_get):
        mock_get.side_effect = requests.ConnectionError("Connection refused")

        client = DuckDuckGoClient(api_key="test_key_12345", rate_limit=0, max_retries=2)

        with pytest.raises(SearchAPIError, match="after 2 retries"):
            client.search("query")
        assert mock_get.call_count == 3

    @patch('siteresolver.search.client.requests.get')
    def test_invalid_json(self, mock_get):
        response = _response()
        response.json.side_effect = ValueError("Expecting value")
        mock_get.return_value = response

        client = DuckDuckGoClient(api_key="test_key_12345", rate_limit=0)

        with pytest.raises(SearchAPIError, match="Invalid JSON response"):
            client.search("query")

    def test_retry_delay_capped(self):
        client = DuckDuckGoClient(api_key="test_key_12345", base_delay=1.0, max_delay=5.0)
        assert [client._delay(attempt) for attempt in range(5)] == [1.0, 2.0, 4.0, 5.0, 5.0]


class TestDuckDuckGoSearchProvider:
    """Test the asynchronous provider adapter."""

    @pytest.mark.asyncio
    async def test_search_runs_client(self):
        client = Mock()
        client.search.return_value = [SearchResult("https://a.it")]
        provider = DuckDuckGoSearchProvider(client, max_results=5)

        results = await provider.search("Rossi Impianti")

        assert results == [SearchResult("https://a.it")]
        client.search.assert_called_once_with("Rossi Impianti", 5)
        assert provider.name == "duckduckgo"

    @pytest.mark.asyncio
    async def test_errors_propagate(self):
        client = Mock()
        client.search.side_effect = RateLimitError("Rate limit exceeded")
        provider = DuckDuckGoSearchProvider(client)

        with pytest.raises(RateLimitError):
            await provider.search("Rossi Impianti")
