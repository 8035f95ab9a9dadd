"""
Web search provider - self-hosted search using SearXNG with async page scraping.

This module provides:
- SearxngClient: thin async client for a SearXNG instance's JSON API
- SearchProvider: query -> SearchResponse(content, sources), optionally
  enriched with scraped text from the top result pages
- search_many(): parallel fan-out over several queries where a failed query
  degrades to an empty, error-tagged response instead of aborting the others
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urlparse

import httpx
from bs4 import BeautifulSoup

from newscast.config import (
    SEARXNG_URL, SEARCH_TIMEOUT, SCRAPING_TIMEOUT, USER_AGENT,
    SEARCH_ENGINES, SEARCH_RESULTS_PER_QUERY, SCRAPE_TOP_N, MAX_PAGE_CHARS,
)
from newscast.errors import ProviderFailure
from newscast.utils import dedupe, extract_content_from_html

logger = logging.getLogger(__name__)


@dataclass
class SearchResult:
    """Represents a single search result."""

    title: str
    url: str
    snippet: str


@dataclass
class ScrapedContent:
    """Represents scraped and cleaned content from a webpage."""

    url: str
    title: str
    content: str
    word_count: int
    error: Optional[str] = None


@dataclass
class SearchResponse:
    """Text and source URLs returned for one query (or a joined batch)."""

    query: str
    content: str = ""
    sources: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return bool(self.content or self.sources)


class SearxngClient:
    """
    Client for interacting with a SearXNG search instance.

    Attributes:
        base_url: Base URL of the SearXNG instance (default: http://localhost:8080)
        client: Async HTTP client for making requests
    """

    def __init__(self, base_url: str = SEARXNG_URL, timeout: float = SEARCH_TIMEOUT):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self.client = httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.client:
            await self.client.aclose()

    async def validate_connection(self) -> bool:
        """
        Validate that the SearXNG instance is accessible.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            if not self.client:
                async with httpx.AsyncClient(timeout=5.0) as client:
                    response = await client.get(self.base_url)
                    return response.status_code == 200
            response = await self.client.get(self.base_url)
            return response.status_code == 200
        except httpx.RequestError as e:
            logger.error(f"Connection error: {e}")
            logger.error("Is SearXNG running? Check SEARXNG_URL (currently %s)", self.base_url)
            return False

    async def search(
        self,
        query: str,
        engines: List[str] = None,
        num_results: int = SEARCH_RESULTS_PER_QUERY,
        language: str = "en",
        time_range: Optional[str] = None,
    ) -> List[SearchResult]:
        """
        Perform a search query using SearXNG.

        Args:
            query: Search query string
            engines: Search engines to use (default: config.SEARCH_ENGINES)
            num_results: Maximum number of results to return
            language: Search language code (default: 'en')
            time_range: Optional SearXNG time range ('day', 'week', 'month', 'year')

        Returns:
            List of SearchResult objects

        Raises:
            httpx.HTTPStatusError, httpx.RequestError: If the request fails
        """
        if engines is None:
            engines = SEARCH_ENGINES
        if not self.client:
            raise RuntimeError("Client not initialized. Use 'async with' context manager.")

        params = {
            'q': query,
            'format': 'json',
            'language': language,
            'engines': ','.join(engines)
        }
        if time_range:
            params['time_range'] = time_range

        try:
            response = await self.client.get(f"{self.base_url}/search", params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error during search: {e.response.status_code}")
            raise
        except httpx.RequestError as e:
            logger.error(f"Request error during search: {e}")
            raise

        data = response.json()
        results = []
        for item in data.get('results', [])[:num_results]:
            results.append(SearchResult(
                title=item.get('title', 'No title'),
                url=item.get('url', ''),
                snippet=item.get('content', ''),
            ))

        logger.info(f"Found {len(results)} results for query: {query}")
        return results


class SearchProvider:
    """
    Search capability used by the pipeline: search(query) -> SearchResponse.

    Wraps a SearxngClient and scrapes the top result pages in parallel so
    downstream insight extraction sees article text, not just snippets.
    """

    def __init__(self, searxng_client: SearxngClient = None, scrape_top_n: int = SCRAPE_TOP_N,
                 time_range: Optional[str] = "month"):
        self.searxng_client = searxng_client or SearxngClient()
        self.scrape_top_n = scrape_top_n
        self.time_range = time_range
        self.scraping_client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        await self.searxng_client.__aenter__()
        self.scraping_client = httpx.AsyncClient(
            timeout=SCRAPING_TIMEOUT,
            headers={"User-Agent": USER_AGENT},
            follow_redirects=True
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self.scraping_client:
            await self.scraping_client.aclose()
        await self.searxng_client.__aexit__(exc_type, exc_val, exc_tb)

    async def fetch_page_content(self, url: str) -> ScrapedContent:
        """
        Fetch and extract content from a single webpage.

        Returns:
            ScrapedContent object with extracted content or error information
        """
        try:
            if not self.scraping_client:
                raise RuntimeError("Scraping client not initialized. Use 'async with' context manager.")

            response = await self.scraping_client.get(url)
            response.raise_for_status()

            soup = BeautifulSoup(response.text, 'lxml')
            title_tag = soup.find('title')
            title = title_tag.get_text().strip() if title_tag else urlparse(url).netloc
            content = extract_content_from_html(soup, max_chars=MAX_PAGE_CHARS)

            return ScrapedContent(url=url, title=title, content=content,
                                  word_count=len(content.split()))

        except httpx.TimeoutException:
            error_msg = f"Timeout while scraping {url}"
        except httpx.HTTPStatusError as e:
            error_msg = f"HTTP {e.response.status_code} error for {url}"
        except Exception as e:
            error_msg = f"Error scraping {url}: {str(e)}"
        logger.warning(error_msg)
        return ScrapedContent(url=url, title="", content="", word_count=0, error=error_msg)

    async def search(self, query: str) -> SearchResponse:
        """Search one query and return its snippets, scraped text and source URLs.

        Raises:
            ProviderFailure: If the search request itself fails.
        """
        try:
            results = await self.searxng_client.search(query, time_range=self.time_range)
        except (httpx.HTTPError, RuntimeError) as e:
            raise ProviderFailure(f"search failed for '{query}': {e}", provider="search") from e

        if not results:
            logger.warning(f"No search results for: {query}")
            return SearchResponse(query=query)

        blocks = []
        for i, r in enumerate(results, 1):
            blocks.append(f"[{i}] {r.title}\n{r.snippet}\nSource: {r.url}")

        errors = []
        if self.scrape_top_n and self.scraping_client:
            urls = [r.url for r in results[:self.scrape_top_n] if r.url]
            pages = await asyncio.gather(*[self.fetch_page_content(u) for u in urls])
            scraped_words = 0
            for page in pages:
                if page.error:
                    errors.append(page.error)
                elif page.word_count:
                    blocks.append(f"Article: {page.title}\n{page.content}\nSource: {page.url}")
                    scraped_words += page.word_count
            logger.info(f"Scraped {len(pages) - len(errors)}/{len(urls)} pages ({scraped_words} words) for: {query}")

        return SearchResponse(
            query=query,
            content="\n\n".join(blocks),
            sources=dedupe(r.url for r in results),
            errors=errors,
        )


def combine_search_responses(responses: List[SearchResponse]) -> SearchResponse:
    """Join several responses; failed ones contribute only their errors."""
    blocks = []
    sources = []
    errors = []
    for r in responses:
        errors.extend(r.errors)
        if r.content:
            blocks.append(f"Results for: {r.query}\n{r.content}")
        sources.extend(r.sources)
    return SearchResponse(
        query=" | ".join(r.query for r in responses),
        content="\n\n".join(blocks),
        sources=dedupe(sources),
        errors=errors,
    )


async def search_many(search_provider, queries: List[str]) -> SearchResponse:
    """Run queries in parallel and join whatever succeeded.

    A query that raises is logged and contributes an error entry; the other
    branches still run to completion.
    """
    queries = dedupe(q.strip() for q in queries if q and q.strip())

    async def search_one(query: str) -> SearchResponse:
        try:
            return await search_provider.search(query)
        except Exception as e:
            logger.warning(f"Search failed for '{query}': {e}")
            return SearchResponse(query=query, errors=[f"{query}: {e}"])

    responses = await asyncio.gather(*[search_one(q) for q in queries])
    combined = combine_search_responses(list(responses))
    ok = sum(1 for r in responses if r.ok)
    logger.info(f"Parallel search: {ok}/{len(queries)} queries returned results")
    return combined
